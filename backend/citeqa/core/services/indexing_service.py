from __future__ import annotations
import asyncio
import logging
import time
from typing import Dict, List, Optional

from citeqa.core.entities import DocumentRecord
from citeqa.core.errors import DocumentNotFoundError
from citeqa.core.ports.completion import FAILED, ICompletionService
from citeqa.core.ports.documents import IDocumentSource
from citeqa.core.ports.index_cache import IIndexCache
from citeqa.core.services.index_readiness import IndexReadinessWaiter

logger = logging.getLogger("citeqa.index")


class IndexingService:
    """Builds external indexes for documents, reusing cached ones whose bytes are unchanged."""

    def __init__(
        self,
        cache: IIndexCache,
        documents: IDocumentSource,
        service: ICompletionService,
        waiter: IndexReadinessWaiter,
        build_timeout: float = 120.0,
        name_prefix: str = "citeqa",
    ):
        self.cache = cache
        self.documents = documents
        self.service = service
        self.waiter = waiter
        self.build_timeout = build_timeout
        self.name_prefix = name_prefix
        # one lock per label or aggregate key; bounded by the library size
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _index_name(self, label: str) -> str:
        return f"{self.name_prefix}-{label}-{int(time.time() * 1000)}"

    async def ensure_document(self, label: str) -> Optional[DocumentRecord]:
        """
        Return a usable record for one document, building its index on a miss.
        Missing files and failed builds yield None.
        """
        async with self._lock_for(label):
            try:
                current = self.cache.current_hash(label)
            except DocumentNotFoundError:
                logger.warning(f"⚠️ Skipping {label}: no backing file")
                return None

            cached = await self.cache.get(label)
            if cached and cached.content_hash == current and cached.index_id:
                logger.info(f"[skip] {label} already indexed -> {cached.index_id}")
                return cached

            logger.info(f"[create] index for {label}")
            index_id = await self.service.create_index(self._index_name(label))
            logger.info(f"[upload] {label}")
            path = self.documents.path(label)
            document_id = await self.service.upload_document(path.name, self.documents.read_bytes(label))
            await self.service.attach(index_id, [document_id])
            logger.info(f"[indexing] wait for {label}")
            state = await self.waiter.wait(index_id, self.build_timeout)
            if state == FAILED:
                return None

            record = DocumentRecord(
                label=label, content_hash=current, index_id=index_id, document_id=document_id
            )
            await self.cache.put(label, record)
            logger.info(f"[done] {label} -> {index_id}")
            return record

    async def ensure_documents(self, labels: List[str]) -> Dict[str, DocumentRecord]:
        """Ensure several documents concurrently; preserves input order, drops unusable ones."""
        results = await asyncio.gather(*(self.ensure_document(label) for label in labels))
        return {label: rec for label, rec in zip(labels, results) if rec is not None}

    async def build_aggregate(
        self,
        key: str,
        members: List[DocumentRecord],
        combined_hash: str,
        persist: bool = True,
    ) -> Optional[DocumentRecord]:
        """
        Create one index spanning the members' already-uploaded documents.
        Reuses the cached aggregate while its stored hash still matches.
        """
        async with self._lock_for(key):
            cached = await self.cache.get(key)
            if cached and cached.content_hash == combined_hash:
                logger.info(f"[skip] aggregate {key} up to date -> {cached.index_id}")
                return cached

            document_ids = [m.document_id for m in members if m.document_id]
            if not document_ids:
                return None

            logger.info(f"[create] aggregate {key} over {len(document_ids)} documents")
            index_id = await self.service.create_index(self._index_name("aggregate"))
            await self.service.attach(index_id, document_ids)
            state = await self.waiter.wait(index_id, self.build_timeout)
            if state == FAILED:
                return None

            record = DocumentRecord(label=key, content_hash=combined_hash, index_id=index_id)
            if persist:
                await self.cache.put(key, record)
            return record

    async def prewarm(self) -> dict:
        """Index every known document; reports what was built, reused, missing or failed."""
        labels = self.documents.list_labels()
        present = []
        for label in labels:
            try:
                self.documents.path(label)
            except DocumentNotFoundError:
                continue
            present.append(label)

        before = await self.cache.snapshot()
        records = await self.ensure_documents(present)

        indexed = skipped = 0
        for label, rec in records.items():
            prior = before.get(label)
            if prior and prior.index_id == rec.index_id:
                skipped += 1
            else:
                indexed += 1
        summary = {
            "total": len(labels),
            "indexed": indexed,
            "skipped": skipped,
            "missing": len(labels) - len(present),
            "failed": len(present) - len(records),
        }
        logger.info(
            "📚 Prewarm summary | total=%d | indexed=%d | skipped=%d | missing=%d | failed=%d",
            summary["total"], summary["indexed"], summary["skipped"], summary["missing"], summary["failed"],
        )
        return summary
