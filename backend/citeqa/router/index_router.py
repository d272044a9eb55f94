from __future__ import annotations
import logging

from fastapi import APIRouter, HTTPException, status

from citeqa.core.errors import ConfigurationError, ServiceError
from citeqa.models.schemas import PrewarmResult

logger = logging.getLogger("citeqa.index")

router = APIRouter(prefix="/index", tags=["index"])

# Set by main.py at startup
indexing_service = None


@router.post("/prewarm", response_model=PrewarmResult)
async def prewarm():
    if indexing_service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Indexing service not ready")
    try:
        summary = await indexing_service.prewarm()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except ServiceError as e:
        logger.error(f"❌ Prewarm failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.body or str(e))
    logger.info(
        "✅ Prewarm done | total=%d | indexed=%d | skipped=%d | missing=%d | failed=%d",
        summary["total"], summary["indexed"], summary["skipped"], summary["missing"], summary["failed"],
    )
    return PrewarmResult(**summary)
