from __future__ import annotations
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from citeqa.core.entities import DocumentRecord
from citeqa.core.ports.documents import IDocumentSource
from citeqa.core.ports.index_cache import IIndexCache
from citeqa.models.fingerprint.file_fingerprint import sha256_file

logger = logging.getLogger("citeqa.cache")


class JsonIndexCache(IIndexCache):
    """
    label -> {contentHash, indexId, documentId} persisted as one JSON object.

    Updates are serialized by an asyncio.Lock and each put re-reads the file,
    merges, and replaces it atomically, so concurrent requests in this process
    never drop each other's records.
    """

    def __init__(self, cache_path: str | Path, documents: IDocumentSource):
        self.cache_path = Path(cache_path)
        self.documents = documents
        self._lock = asyncio.Lock()
        self._records: Dict[str, DocumentRecord] = self._read()

    def _read(self) -> Dict[str, DocumentRecord]:
        try:
            if not self.cache_path.exists():
                return {}
            raw = self.cache_path.read_text(encoding="utf-8")
            data = json.loads(raw or "{}")
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Index cache unreadable, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning("⚠️ Index cache is not a JSON object, starting empty")
            return {}

        records: Dict[str, DocumentRecord] = {}
        for label, obj in data.items():
            if not isinstance(obj, dict):
                continue
            try:
                records[label] = DocumentRecord.from_json(label, obj)
            except ValueError as e:
                logger.warning(f"⚠️ Dropping cache entry: {e}")
        return records

    def _write(self, records: Dict[str, DocumentRecord]) -> None:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {label: rec.to_json() for label, rec in sorted(records.items())}
        fd, tmp = tempfile.mkstemp(dir=self.cache_path.parent, prefix=".cache-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp, self.cache_path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    async def get(self, label: str) -> Optional[DocumentRecord]:
        return self._records.get(label)

    async def put(self, label: str, record: DocumentRecord) -> None:
        async with self._lock:
            records = self._read()
            records[label] = record
            self._write(records)
            self._records = records
        logger.info(f"💾 Cached {label} -> {record.index_id}")

    def current_hash(self, label: str) -> str:
        return sha256_file(self.documents.path(label))

    async def snapshot(self) -> Dict[str, DocumentRecord]:
        return dict(self._records)

    def __len__(self) -> int:
        return len(self._records)
