from __future__ import annotations
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ConversationTurn(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    question: Optional[str] = Field(default=None, description="User question; defaults to the last user turn")
    selected_documents: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("selectedDocuments", "selected_documents", "context"),
    )
    model: Optional[str] = None
    conversation: List[ConversationTurn] = Field(
        default_factory=list,
        validation_alias=AliasChoices("conversation", "messages"),
    )

    def resolved_question(self) -> str:
        if self.question and self.question.strip():
            return self.question.strip()
        for turn in reversed(self.conversation):
            if turn.role == "user" and turn.content.strip():
                return turn.content.strip()
        return ""


class Source(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: str
    document_id: Optional[str] = Field(default=None, alias="documentId")
    quote: str


class ChatResponse(BaseModel):
    reply: str
    sources: Optional[List[Source]] = None
    context: Optional[List[str]] = None


class DocumentInfo(BaseModel):
    label: str
    author: str
    title: str


class PrewarmResult(BaseModel):
    total: int
    indexed: int
    skipped: int
    missing: int
    failed: int
