from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Tuple


class IDocumentSource(ABC):
    @abstractmethod
    def list_labels(self) -> List[str]: ...
    @abstractmethod
    def path(self, label: str) -> Path:
        """Raises DocumentNotFoundError when the label has no file."""
        ...
    @abstractmethod
    def read_bytes(self, label: str) -> bytes: ...
    @abstractmethod
    def read_text(self, label: str) -> str: ...
    @abstractmethod
    def describe(self, label: str) -> Tuple[str, str]:
        """(author, title) for display."""
        ...
