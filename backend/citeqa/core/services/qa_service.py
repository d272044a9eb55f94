from __future__ import annotations
import logging
from typing import Dict, Iterator, List, Mapping, Optional

from citeqa.core.entities import Answer, ChatMessage
from citeqa.core.errors import DocumentNotFoundError, EmptyResultError
from citeqa.core.ports.documents import IDocumentSource
from citeqa.core.services.answer_parser import parse_reply
from citeqa.core.services.citation_reconciler import CitationReconciler
from citeqa.core.services.index_aggregator import IndexAggregator
from citeqa.core.services.retrieval_dispatcher import RetrievalDispatcher

logger = logging.getLogger("citeqa.qa")

MODE_INDEXED = "indexed"
MODE_EXTRACT = "extract"

NO_CONTEXT_REPLY = (
    "I'm sorry, I couldn't find any relevant passages in the selected documents "
    "to answer that question."
)


class DocumentTexts(Mapping[str, str]):
    """Read-on-demand label -> text view; missing documents read as empty."""

    def __init__(self, documents: IDocumentSource, labels: List[str]):
        self.documents = documents
        self.labels = labels
        self._texts: Dict[str, str] = {}

    def __getitem__(self, label: str) -> str:
        if label not in self.labels:
            raise KeyError(label)
        if label not in self._texts:
            try:
                self._texts[label] = self.documents.read_text(label)
            except DocumentNotFoundError:
                self._texts[label] = ""
        return self._texts[label]

    def __iter__(self) -> Iterator[str]:
        return iter(self.labels)

    def __len__(self) -> int:
        return len(self.labels)


def _require_text(text: Optional[str]) -> str:
    if not text or not text.strip():
        raise EmptyResultError("completion service returned no text")
    return text.strip()


class QAService:
    """
    Question answering over a selection of documents:
    resolve scope -> dispatch -> parse payload -> reconcile citations.
    """

    def __init__(
        self,
        aggregator: IndexAggregator,
        dispatcher: RetrievalDispatcher,
        reconciler: CitationReconciler,
        documents: IDocumentSource,
        mode: str = MODE_INDEXED,
    ):
        if mode not in (MODE_INDEXED, MODE_EXTRACT):
            raise ValueError(f"unknown retrieval mode: {mode}")
        self.aggregator = aggregator
        self.dispatcher = dispatcher
        self.reconciler = reconciler
        self.documents = documents
        self.mode = mode

    def _available(self, labels: List[str]) -> List[str]:
        out = []
        for label in dict.fromkeys(labels):
            try:
                self.documents.path(label)
            except DocumentNotFoundError:
                logger.warning(f"⚠️ Selected document {label!r} not found; skipping")
                continue
            out.append(label)
        return out

    async def answer(
        self,
        question: str,
        selected: List[str],
        conversation: Optional[List[ChatMessage]] = None,
        model: Optional[str] = None,
    ) -> Answer:
        conversation = conversation or []
        if not selected:
            return await self._unscoped(question, conversation, model, sources=None)

        available = self._available(selected)
        if not available:
            return await self._unscoped(question, conversation, model, sources=[])
        if self.mode == MODE_EXTRACT:
            return await self._extracted(question, available, conversation, model)
        return await self._indexed(question, available, conversation, model)

    async def _unscoped(self, question, conversation, model, sources) -> Answer:
        try:
            reply = _require_text(await self.dispatcher.unscoped(question, conversation, model))
        except EmptyResultError:
            logger.warning("⚠️ Model returned empty response — using fallback.")
            reply = NO_CONTEXT_REPLY
        return Answer(reply=reply, sources=sources)

    async def _indexed(self, question, selected, conversation, model) -> Answer:
        scope = await self.aggregator.resolve(selected, question)
        if scope.is_empty:
            logger.warning("⚠️ No usable index for the selection; answering unscoped")
            return await self._unscoped(question, conversation, model, sources=[])

        result = await self.dispatcher.indexed(scope, question, conversation, model)
        text, payload = parse_reply(result.text)
        try:
            reply = _require_text(text)
        except EmptyResultError:
            logger.warning("⚠️ Model returned empty response — using fallback.")
            return Answer(reply=NO_CONTEXT_REPLY, sources=[])

        sources = self.reconciler.reconcile(
            quotes=payload.quotes,
            citations=result.citations,
            selected=selected,
            document_texts=DocumentTexts(self.documents, selected),
            document_labels=scope.document_labels,
        )
        logger.info(f"🧠 Answered with {len(sources)} sources (scope={scope.reason})")
        return Answer(reply=reply, sources=sources)

    async def _extracted(self, question, selected, conversation, model) -> Answer:
        extracts = await self.dispatcher.extract(selected, question, conversation)
        if not extracts:
            logger.warning("⚠️ No document had relevant text")
            return Answer(reply=NO_CONTEXT_REPLY, sources=[], context=[])

        raw = await self.dispatcher.synthesize(extracts, question, conversation, model)
        text, payload = parse_reply(raw)
        try:
            reply = _require_text(text)
        except EmptyResultError:
            logger.warning("⚠️ Model returned empty response — using fallback.")
            return Answer(reply=NO_CONTEXT_REPLY, sources=[], context=extracts)

        sources = self.reconciler.reconcile(
            quotes=payload.quotes,
            citations=[],
            selected=selected,
            document_texts=DocumentTexts(self.documents, selected),
            document_labels={},
        )
        return Answer(reply=reply, sources=sources, context=extracts)
