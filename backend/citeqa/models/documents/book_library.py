from __future__ import annotations
import logging
from pathlib import Path
from typing import List, Tuple

from citeqa.core.errors import DocumentNotFoundError
from citeqa.core.ports.documents import IDocumentSource

logger = logging.getLogger("citeqa.documents")

TITLE_SEPARATOR = "--"


class BookLibrary(IDocumentSource):
    """
    Plain-text books stored as <label>.txt in one directory.
    Labels follow Author--Title with underscores for spaces.
    """

    def __init__(self, books_dir: str | Path, suffix: str = ".txt"):
        self.books_dir = Path(books_dir)
        self.suffix = suffix

    def list_labels(self) -> List[str]:
        if not self.books_dir.is_dir():
            logger.warning(f"⚠️ Books directory missing: {self.books_dir}")
            return []
        return sorted(p.stem for p in self.books_dir.glob(f"*{self.suffix}") if p.is_file())

    def path(self, label: str) -> Path:
        fp = self.books_dir / f"{label}{self.suffix}"
        # labels come from clients; keep them inside the books directory
        if fp.resolve().parent != self.books_dir.resolve() or not fp.is_file():
            raise DocumentNotFoundError(label)
        return fp

    def read_bytes(self, label: str) -> bytes:
        return self.path(label).read_bytes()

    def read_text(self, label: str) -> str:
        return self.path(label).read_text(encoding="utf-8", errors="replace")

    def describe(self, label: str) -> Tuple[str, str]:
        if TITLE_SEPARATOR not in label:
            return "", label.replace("_", " ")
        author, title = label.split(TITLE_SEPARATOR, 1)
        return author.replace("_", " ").strip(), title.replace("_", " ").strip()
