from __future__ import annotations
import json
import logging
import re
from typing import Any, List, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from citeqa.core.entities import AnswerPayload
from citeqa.core.errors import PayloadParseError

logger = logging.getLogger("citeqa.parser")

# Accepted spellings per canonical field. "qoutes" is a frequent model typo.
ANSWER_KEYS = ("answer", "Answer", "ANSWER")
QUOTES_KEYS = ("quotes", "Quotes", "QUOTES", "qoutes", "Qoutes")

_FENCE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\r?\n(?P<body>.*?)\r?\n?```$", re.S)


class _PayloadSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    answer: str = Field(validation_alias=AliasChoices(*ANSWER_KEYS))
    quotes: List[str] = Field(default_factory=list, validation_alias=AliasChoices(*QUOTES_KEYS))

    @field_validator("quotes", mode="before")
    @classmethod
    def _strings_only(cls, v: Any) -> Any:
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("quotes must be a list")
        return [q.strip() for q in v if isinstance(q, str) and q.strip()]


def strip_fence(text: str) -> str:
    """Remove one enclosing ``` or ```json fence, if the whole text is fenced."""
    stripped = text.strip()
    m = _FENCE.match(stripped)
    return m.group("body").strip() if m else stripped


def parse_payload(text: str) -> AnswerPayload:
    """Strict parse; raises PayloadParseError on any shape it does not recognise."""
    body = strip_fence(text or "")
    try:
        obj = json.loads(body)
    except ValueError as e:
        raise PayloadParseError(f"not JSON: {e}") from e
    if not isinstance(obj, dict):
        raise PayloadParseError("payload is not an object")
    try:
        schema = _PayloadSchema.model_validate(obj)
    except ValidationError as e:
        raise PayloadParseError(str(e)) from e
    return AnswerPayload(answer_text=schema.answer.strip(), quotes=schema.quotes)


def parse_reply(text: str) -> Tuple[str, AnswerPayload]:
    """
    Reply text plus payload. The raw text stands in for the answer only when
    the payload does not parse; a parsed but blank answer stays blank.
    """
    try:
        payload = parse_payload(text)
    except PayloadParseError as e:
        logger.warning(f"⚠️ Completion was not a structured payload ({e}); using raw text")
        return text or "", AnswerPayload()
    return payload.answer_text, payload


def parse_answer_payload(text: str) -> AnswerPayload:
    """Lenient entry point: any failure yields an empty payload."""
    return parse_reply(text)[1]
