from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

# Reserved cache keys for aggregate indexes; document labels never start with "__".
ALL_DOCUMENTS_KEY = "__all_documents__"
SELECTION_KEY_PREFIX = "__selection__:"
PAIR_KEY_PREFIX = "__pair__:"


@dataclass(frozen=True)
class DocumentRecord:
    label: str
    content_hash: str
    index_id: str
    document_id: Optional[str] = None  # absent for aggregate indexes

    def to_json(self) -> dict:
        return {
            "contentHash": self.content_hash,
            "indexId": self.index_id,
            "documentId": self.document_id,
        }

    @classmethod
    def from_json(cls, label: str, obj: dict) -> "DocumentRecord":
        # older cache files used hash/vectorStoreId/fileId
        content_hash = obj.get("contentHash") or obj.get("hash")
        index_id = obj.get("indexId") or obj.get("vectorStoreId")
        if not isinstance(content_hash, str) or not isinstance(index_id, str):
            raise ValueError(f"incomplete cache record for {label!r}")
        document_id = obj.get("documentId") or obj.get("fileId")
        return cls(label=label, content_hash=content_hash, index_id=index_id, document_id=document_id)


@dataclass(frozen=True)
class RetrievalScope:
    index_ids: List[str]
    labels: List[str]      # selected documents the scope serves, in selection order
    reason: str            # which aggregation rule produced it
    # documentId -> label for every document the scope spans
    document_labels: Dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.index_ids


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str


@dataclass(frozen=True)
class AnswerPayload:
    answer_text: str = ""
    quotes: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.answer_text and not self.quotes


@dataclass(frozen=True)
class CitationAnnotation:
    document_id: str
    quote_text: str


@dataclass(frozen=True)
class ServiceAnswer:
    text: str
    citations: List[CitationAnnotation]


@dataclass(frozen=True)
class ReconciledSource:
    document_label: str
    document_id: Optional[str]
    quote_text: str


@dataclass(frozen=True)
class Answer:
    reply: str
    sources: Optional[List[ReconciledSource]]
    context: Optional[List[str]] = None
