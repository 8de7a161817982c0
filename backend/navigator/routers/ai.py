import logging

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ..deps import get_ai_service
from ..schemas import AiRequest, AiResponse
from ..services.ai_query import AiQueryService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ai"])


@router.post("/ai/query", response_model=AiResponse)
def ai_query(payload: AiRequest, service: AiQueryService = Depends(get_ai_service)):
    """
    payload: { database?, collection, prompt }
    Returns: { query, source, usedPrompt, rawResponse }
    An empty query means no filter could be derived from the model reply.
    """
    try:
        return service.run(payload)
    except Exception as e:
        logger.exception(f"AI query failed: {e}")
        return PlainTextResponse("failed", status_code=500)
