from __future__ import annotations
import asyncio
import logging
from typing import List, Optional, Set

from citeqa.core.entities import ChatMessage, RetrievalScope, ServiceAnswer
from citeqa.core.errors import DocumentNotFoundError
from citeqa.core.ports.completion import FAILED, ICompletionService
from citeqa.core.ports.documents import IDocumentSource
from citeqa.core.services.index_readiness import IndexReadinessWaiter

logger = logging.getLogger("citeqa.dispatch")

NO_RELEVANT_TEXT = "No relevant text found"

PAYLOAD_INSTRUCTIONS = (
    "Respond only with a JSON object of the form\n"
    "{\n"
    "  \"answer\": string,     // Markdown answer for the user\n"
    "  \"quotes\": [string]    // verbatim passages from the documents that support the answer\n"
    "}\n"
    "Copy quotes exactly as they appear in the source text. Use an empty list if nothing was quoted."
)

SCOPED_SYS_PROMPT = (
    "You are an AI assistant that answers questions about the documents available through file search.\n"
    "- Base the answer strictly on the retrieved passages.\n"
    "- If the passages lack the information, say that you do not have enough data to answer.\n"
    "- Give concise responses.\n\n"
    + PAYLOAD_INSTRUCTIONS
)

UNSCOPED_SYS_PROMPT = (
    "You are a helpful assistant. No reference documents were selected for this conversation, "
    "so answer from general knowledge and say so when you are unsure."
)

EXTRACT_SYS_PROMPT = (
    "Extract all relevant parts of the provided text in relation to the given question. "
    "Respond only with direct quotes and their citations. "
    f"If nothing is relevant, return '{NO_RELEVANT_TEXT}'."
)

SYNTHESIS_SYS_PROMPT = (
    "You are an AI assistant that provides accurate answers based strictly on the given context.\n"
    "- Format the answer in Markdown.\n"
    "- Do not generate content using information outside of the provided context.\n"
    "- If the context lacks relevant information, explicitly state that you do not have enough data to answer.\n"
    "- When possible, use direct quotes from the context and include references.\n"
    "- When quoting or paraphrasing, always attribute the source using the format provided in the context, "
    "such as [Source: Author, *Title*, Chapter or Section].\n"
    "- Give concise responses.\n\n"
    + PAYLOAD_INSTRUCTIONS
)


def render_conversation(conversation: List[ChatMessage]) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in conversation)


def with_question(conversation: List[ChatMessage], question: str) -> List[ChatMessage]:
    """Conversation turns ending in the question, without repeating it."""
    turns = list(conversation)
    if not turns or turns[-1].role != "user" or turns[-1].content.strip() != question.strip():
        turns.append(ChatMessage(role="user", content=question))
    return turns


def excerpt_header(author: str, title: str) -> str:
    by = f" by {author}" if author else ""
    return f"----- Relevant excerpts from '{title}'{by} -----"


class RetrievalDispatcher:
    """Sends a question to the completion service in indexed, unscoped or extract mode."""

    def __init__(
        self,
        service: ICompletionService,
        documents: IDocumentSource,
        waiter: IndexReadinessWaiter,
        ready_timeout: float = 30.0,
        query_model: Optional[str] = None,
        extract_model: Optional[str] = None,
        final_model: Optional[str] = None,
    ):
        self.service = service
        self.documents = documents
        self.waiter = waiter
        self.ready_timeout = ready_timeout
        self.query_model = query_model
        self.extract_model = extract_model
        self.final_model = final_model
        self._ready: Set[str] = set()

    # ------------------------------------------------------
    # Indexed mode
    # ------------------------------------------------------
    async def ensure_ready(self, scope: RetrievalScope) -> List[str]:
        """Wait for unseen indexes; returns the ids worth querying."""
        pending = [i for i in scope.index_ids if i not in self._ready]
        if pending:
            states = await self.waiter.wait_all(pending, self.ready_timeout)
            for index_id, state in zip(pending, states):
                if state != FAILED:
                    self._ready.add(index_id)
        usable = [i for i in scope.index_ids if i in self._ready]
        return usable or list(scope.index_ids)

    async def indexed(
        self,
        scope: RetrievalScope,
        question: str,
        conversation: List[ChatMessage],
        model: Optional[str] = None,
    ) -> ServiceAnswer:
        index_ids = await self.ensure_ready(scope)
        messages = [ChatMessage(role="system", content=SCOPED_SYS_PROMPT)] + with_question(conversation, question)
        logger.info(f"📨 Scoped query ({scope.reason}) over {len(index_ids)} index(es)")
        return await self.service.query(index_ids, messages, model=model or self.query_model)

    # ------------------------------------------------------
    # Unscoped fallback
    # ------------------------------------------------------
    async def unscoped(
        self, question: str, conversation: List[ChatMessage], model: Optional[str] = None
    ) -> str:
        messages = [ChatMessage(role="system", content=UNSCOPED_SYS_PROMPT)] + with_question(conversation, question)
        logger.info("📨 Unscoped completion (no documents selected)")
        return await self.service.direct_completion(messages, model=model or self.final_model)

    # ------------------------------------------------------
    # Per-document extraction
    # ------------------------------------------------------
    async def _extract_one(
        self, label: str, question: str, conversation: List[ChatMessage]
    ) -> Optional[str]:
        try:
            text = self.documents.read_text(label)
        except DocumentNotFoundError:
            logger.warning(f"⚠️ Could not read document {label}; skipping")
            return None

        author, title = self.documents.describe(label)
        user = (
            f"Title: {title}\n"
            f"Author: {author}\n\n"
            f"Conversation:\n{render_conversation(conversation)}\n\n"
            f"Question: {question}\n\n"
            f"Text:\n{text}\n\n"
            "Extract the relevant portion. If applicable, identify the chapter or section title:"
        )
        messages = [
            ChatMessage(role="system", content=EXTRACT_SYS_PROMPT),
            ChatMessage(role="user", content=user),
        ]
        result = await self.service.direct_completion(messages, model=self.extract_model)
        if not result or NO_RELEVANT_TEXT.lower() in result.lower():
            logger.info(f"📘 {label}: nothing relevant")
            return None
        return f"{excerpt_header(author, title)}\n{result}"

    async def extract(
        self, labels: List[str], question: str, conversation: List[ChatMessage]
    ) -> List[str]:
        """Run one extraction per document concurrently; results keep selection order."""
        results = await asyncio.gather(*(self._extract_one(label, question, conversation) for label in labels))
        extracts = [r for r in results if r]
        logger.info(f"🔍 Extracted context from {len(extracts)}/{len(labels)} documents")
        return extracts

    async def synthesize(
        self,
        extracts: List[str],
        question: str,
        conversation: List[ChatMessage],
        model: Optional[str] = None,
    ) -> str:
        turns = with_question(conversation, question)
        user = (
            f"Context:\n" + "\n\n".join(extracts) + "\n\n"
            f"Conversation:\n{render_conversation(turns)}\n\n"
            "Provide a well-formatted Markdown answer."
        )
        messages = [
            ChatMessage(role="system", content=SYNTHESIS_SYS_PROMPT),
            ChatMessage(role="user", content=user),
        ]
        return await self.service.direct_completion(messages, model=model or self.final_model)
