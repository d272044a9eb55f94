from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Optional
from citeqa.core.entities import ChatMessage, ServiceAnswer

# Index lifecycle states reported by the service.
BUILDING = "building"
INDEXING = "indexing"
COMPLETED = "completed"
FAILED = "failed"


class ICompletionService(ABC):
    @abstractmethod
    async def create_index(self, name: str) -> str: ...
    @abstractmethod
    async def upload_document(self, filename: str, content: bytes) -> str: ...
    @abstractmethod
    async def attach(self, index_id: str, document_ids: List[str]) -> None: ...
    @abstractmethod
    async def index_status(self, index_id: str) -> str:
        """One of building | indexing | completed | failed."""
        ...
    @abstractmethod
    async def query(
        self, scope: List[str], messages: List[ChatMessage], model: Optional[str] = None
    ) -> ServiceAnswer: ...
    @abstractmethod
    async def direct_completion(self, messages: List[ChatMessage], model: Optional[str] = None) -> str: ...
