from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class AiRequest(BaseModel):
    database: Optional[str] = None
    collection: str = Field(..., min_length=1)
    prompt: str


class AiResponse(BaseModel):
    query: Dict[str, Any]
    source: str
    used_prompt: str = Field(..., alias="usedPrompt")
    raw_response: Dict[str, Any] = Field(..., alias="rawResponse")
