from __future__ import annotations
import logging
from typing import List

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from citeqa.core.entities import ChatMessage
from citeqa.core.errors import ConfigurationError, ServiceError
from citeqa.models.schemas import ChatRequest, ChatResponse, DocumentInfo, Source

logger = logging.getLogger("citeqa.api")

router = APIRouter(prefix="/api", tags=["chat"])

# Set by main.py at startup
qa_service = None
documents = None


def _error(code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=code, content={"error": message})


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(payload: ChatRequest):
    if qa_service is None:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "QA service not ready")
    question = payload.resolved_question()
    if not question:
        return _error(status.HTTP_400_BAD_REQUEST, "A question or a user message is required.")

    conversation = [ChatMessage(role=t.role, content=t.content) for t in payload.conversation]
    try:
        result = await qa_service.answer(
            question=question,
            selected=payload.selected_documents,
            conversation=conversation,
            model=payload.model,
        )
    except ConfigurationError as e:
        logger.error(f"❌ Configuration error: {e}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
    except ServiceError as e:
        logger.error(f"❌ Completion service failed ({e.status_code})")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, e.body or str(e))

    sources = None
    if result.sources is not None:
        sources = [
            Source(document=s.document_label, document_id=s.document_id, quote=s.quote_text)
            for s in result.sources
        ]
    return ChatResponse(reply=result.reply, sources=sources, context=result.context)


@router.get("/documents", response_model=List[DocumentInfo])
def list_documents():
    if documents is None:
        return []
    out = []
    for label in documents.list_labels():
        author, title = documents.describe(label)
        out.append(DocumentInfo(label=label, author=author, title=title))
    return out
