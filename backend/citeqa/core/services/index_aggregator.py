from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from citeqa.core.entities import (
    ALL_DOCUMENTS_KEY,
    PAIR_KEY_PREFIX,
    SELECTION_KEY_PREFIX,
    DocumentRecord,
    RetrievalScope,
)
from citeqa.core.ports.documents import IDocumentSource
from citeqa.core.services.indexing_service import IndexingService
from citeqa.models.fingerprint.file_fingerprint import combined_digest

logger = logging.getLogger("citeqa.scope")

AGGREGATE_ALL = "all"
AGGREGATE_SELECTION = "selection"
BROAD_THRESHOLD = 3


def lexical_head(label: str, separators: Sequence[str] = ("--", "_")) -> str:
    """Part of the label before its first separator token (usually an author surname)."""
    cut = len(label)
    for sep in separators:
        if not sep:
            continue
        pos = label.find(sep)
        if pos != -1:
            cut = min(cut, pos)
    return label[:cut].strip()


def _dedupe(labels: Iterable[str]) -> List[str]:
    seen, out = set(), []
    for label in labels:
        if label and label not in seen:
            seen.add(label)
            out.append(label)
    return out


def _id_map(records: Iterable[DocumentRecord]) -> Dict[str, str]:
    return {r.document_id: r.label for r in records if r.document_id}


class IndexAggregator:
    """
    Reduces a document selection to the index handles a query runs against.

    Precedence, first match wins:
      0 selected            -> empty scope (unscoped completion)
      1-2 selected and the question names exactly one label's head -> that document
      1 selected            -> its own index
      2 selected            -> ad-hoc pair index keyed by both content hashes
      3+ selected           -> broad aggregate (all known documents, or the selection)
    """

    def __init__(
        self,
        indexing: IndexingService,
        documents: IDocumentSource,
        aggregate_scope: str = AGGREGATE_ALL,
        persist_pairs: bool = False,
        separators: Sequence[str] = ("--", "_"),
    ):
        if aggregate_scope not in (AGGREGATE_ALL, AGGREGATE_SELECTION):
            raise ValueError(f"unknown aggregate scope: {aggregate_scope}")
        self.indexing = indexing
        self.documents = documents
        self.aggregate_scope = aggregate_scope
        self.persist_pairs = persist_pairs
        self.separators = tuple(separators)
        # pair indexes live for the process unless promoted to the cache;
        # at most one entry per distinct pair of document versions
        # TODO: evict entries whose member hashes are no longer current
        self._pairs: Dict[str, DocumentRecord] = {}

    def preferred_entity(self, selected: List[str], question: str) -> Optional[str]:
        if not selected or len(selected) >= BROAD_THRESHOLD:
            return None
        q = question.lower()
        matches = []
        for label in selected:
            head = lexical_head(label, self.separators)
            if head and head.lower() in q:
                matches.append(label)
        return matches[0] if len(matches) == 1 else None

    async def resolve(self, selected: Iterable[str], question: str) -> RetrievalScope:
        labels = _dedupe(selected)
        if not labels:
            return RetrievalScope(index_ids=[], labels=[], reason="unscoped")

        preferred = self.preferred_entity(labels, question)
        if preferred is not None:
            scope = await self._single(preferred, reason="entity")
            if not scope.is_empty:
                logger.info(f"🎯 Question names {preferred!r}; narrowing scope to it")
                return scope

        if len(labels) == 1:
            return await self._single(labels[0], reason="single")
        if len(labels) == 2:
            return await self._pair(labels)
        return await self._broad(labels)

    async def _single(self, label: str, reason: str) -> RetrievalScope:
        record = await self.indexing.ensure_document(label)
        if record is None:
            return RetrievalScope(index_ids=[], labels=[], reason=reason)
        return RetrievalScope(
            index_ids=[record.index_id], labels=[label], reason=reason,
            document_labels=_id_map([record]),
        )

    async def _pair(self, labels: List[str]) -> RetrievalScope:
        records = await self.indexing.ensure_documents(labels)
        if len(records) < 2:
            # one of the pair is missing or failed; fall back to whatever is left
            if not records:
                return RetrievalScope(index_ids=[], labels=[], reason="pair")
            return await self._single(next(iter(records)), reason="pair")

        members = [records[label] for label in labels]
        combined = combined_digest(sorted(m.content_hash for m in members))
        key = PAIR_KEY_PREFIX + combined

        aggregate = self._pairs.get(key)
        if aggregate is None:
            aggregate = await self.indexing.build_aggregate(
                key, members, combined, persist=self.persist_pairs
            )
            if aggregate is not None:
                self._pairs[key] = aggregate

        index_ids = [aggregate.index_id] if aggregate else [m.index_id for m in members]
        return RetrievalScope(
            index_ids=index_ids, labels=list(records), reason="pair",
            document_labels=_id_map(members),
        )

    async def _broad(self, labels: List[str]) -> RetrievalScope:
        if self.aggregate_scope == AGGREGATE_ALL:
            span = self.documents.list_labels()
            key_base = ALL_DOCUMENTS_KEY
        else:
            span = sorted(labels)
            key_base = None

        records = await self.indexing.ensure_documents(span)
        usable = [label for label in labels if label in records]
        if not records:
            return RetrievalScope(index_ids=[], labels=[], reason="aggregate")

        ordered = [records[label] for label in sorted(records)]
        combined = combined_digest(r.content_hash for r in ordered)
        if key_base is None:
            key_base = SELECTION_KEY_PREFIX + combined_digest(sorted(records))
        aggregate = await self.indexing.build_aggregate(key_base, ordered, combined)

        if aggregate is not None:
            index_ids = [aggregate.index_id]
        else:
            index_ids = [records[label].index_id for label in usable]
        logger.info(f"🗂️ Aggregate scope over {len(ordered)} documents for {len(usable)} selected")
        return RetrievalScope(
            index_ids=index_ids, labels=usable, reason="aggregate",
            document_labels=_id_map(ordered),
        )
