from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict, Optional
from citeqa.core.entities import DocumentRecord


class IIndexCache(ABC):
    @abstractmethod
    async def get(self, label: str) -> Optional[DocumentRecord]: ...
    @abstractmethod
    async def put(self, label: str, record: DocumentRecord) -> None:
        """Overwrite and persist immediately."""
        ...
    @abstractmethod
    def current_hash(self, label: str) -> str:
        """Digest of the document's bytes as they are right now."""
        ...
    @abstractmethod
    async def snapshot(self) -> Dict[str, DocumentRecord]: ...
