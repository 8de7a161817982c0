from enum import Enum
from typing import Optional


class ErrorCodes(Enum):
    SAMPLE_FAILED = "sample_failed"
    ENUMERATION_FAILED = "enumeration_failed"
    MISSING_CREDENTIALS = "missing_credentials"
    MODEL_CALL_FAILED = "model_call_failed"


class NavigatorError(Exception):
    def __init__(self, code: ErrorCodes, message: str, details: Optional[str] = None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{code.value}: {message}")


class DataAccessError(NavigatorError):
    """Sampling or enumeration against the document store failed."""


class TransportError(NavigatorError):
    """The model service could not be reached or refused the request."""
