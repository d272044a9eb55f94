from __future__ import annotations


class CiteQAError(Exception):
    """Base class for pipeline failures."""


class ConfigurationError(CiteQAError):
    """A required credential or setting is missing. Fatal, never retried."""


class ServiceError(CiteQAError):
    """The external completion service answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(body or f"completion service returned HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class DocumentNotFoundError(CiteQAError):
    """A selected label has no backing file."""

    def __init__(self, label: str):
        super().__init__(f"document not found: {label}")
        self.label = label


class PayloadParseError(CiteQAError):
    """The completion text is not a well-formed answer payload."""


class IndexWaitTimeout(CiteQAError):
    """The indexing wait window elapsed before the index was ready."""


class EmptyResultError(CiteQAError):
    """The completion service produced no usable text."""
