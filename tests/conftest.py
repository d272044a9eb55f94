"""
Shared fixtures: an in-memory completion service, a controllable clock,
and a temporary books directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from citeqa.core.entities import ChatMessage, ServiceAnswer
from citeqa.core.ports.completion import COMPLETED, ICompletionService
from citeqa.core.services.citation_reconciler import CitationReconciler
from citeqa.core.services.index_aggregator import IndexAggregator
from citeqa.core.services.index_readiness import IndexReadinessWaiter
from citeqa.core.services.indexing_service import IndexingService
from citeqa.core.services.qa_service import QAService
from citeqa.core.services.retrieval_dispatcher import RetrievalDispatcher
from citeqa.models.cache.json_index_cache import JsonIndexCache
from citeqa.models.documents.book_library import BookLibrary


BOOKS = {
    "Madison--Federalist_No_10": (
        "Among the numerous advantages promised by a well constructed Union, none deserves "
        "to be more accurately developed than its tendency to break and control the violence of faction."
    ),
    "Hamilton--Federalist_No_78": (
        "The judiciary, from the nature of its functions, will always be the least dangerous "
        "to the political rights of the Constitution."
    ),
    "Jay--Federalist_No_2": (
        "Providence has been pleased to give this one connected country to one united people."
    ),
}


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeCompletionService(ICompletionService):
    def __init__(self):
        self.created: List[str] = []
        self.uploads: List[str] = []
        self.attached: Dict[str, List[str]] = {}
        self.status_script: Dict[str, List[str]] = {}
        self.default_status = COMPLETED
        self.status_calls: List[str] = []
        self.queries: List[tuple] = []
        self.completions: List[List[ChatMessage]] = []
        self.query_answer = ServiceAnswer(text="", citations=[])
        self.completion_fn: Callable[[List[ChatMessage]], str] = lambda messages: "plain reply"

    async def create_index(self, name: str) -> str:
        self.created.append(name)
        return f"vs_{len(self.created)}"

    async def upload_document(self, filename: str, content: bytes) -> str:
        self.uploads.append(filename)
        return f"file_{len(self.uploads)}"

    async def attach(self, index_id: str, document_ids: List[str]) -> None:
        self.attached[index_id] = list(document_ids)

    async def index_status(self, index_id: str) -> str:
        self.status_calls.append(index_id)
        script = self.status_script.get(index_id)
        if script:
            return script.pop(0) if len(script) > 1 else script[0]
        return self.default_status

    async def query(self, scope: List[str], messages: List[ChatMessage], model: Optional[str] = None) -> ServiceAnswer:
        self.queries.append((list(scope), messages, model))
        return self.query_answer

    async def direct_completion(self, messages: List[ChatMessage], model: Optional[str] = None) -> str:
        self.completions.append(messages)
        return self.completion_fn(messages)


def write_books(books_dir: Path, books: Dict[str, str]) -> None:
    books_dir.mkdir(parents=True, exist_ok=True)
    for label, text in books.items():
        (books_dir / f"{label}.txt").write_text(text, encoding="utf-8")


@pytest.fixture
def books_dir(tmp_path: Path) -> Path:
    d = tmp_path / "books"
    write_books(d, BOOKS)
    return d


@pytest.fixture
def library(books_dir: Path) -> BookLibrary:
    return BookLibrary(books_dir)


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / ".vector_cache.json"


@pytest.fixture
def cache(cache_path: Path, library: BookLibrary) -> JsonIndexCache:
    return JsonIndexCache(cache_path, library)


@pytest.fixture
def service() -> FakeCompletionService:
    return FakeCompletionService()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def waiter(service, clock) -> IndexReadinessWaiter:
    return IndexReadinessWaiter(service, poll_interval=1.0, clock=clock, sleep=clock.sleep)


@pytest.fixture
def indexing(cache, library, service, waiter) -> IndexingService:
    return IndexingService(cache=cache, documents=library, service=service, waiter=waiter, build_timeout=10)


@pytest.fixture
def aggregator(indexing, library) -> IndexAggregator:
    return IndexAggregator(indexing=indexing, documents=library)


@pytest.fixture
def dispatcher(service, library, waiter) -> RetrievalDispatcher:
    return RetrievalDispatcher(service=service, documents=library, waiter=waiter, ready_timeout=5)


@pytest.fixture
def qa(aggregator, dispatcher, library) -> QAService:
    return QAService(aggregator=aggregator, dispatcher=dispatcher, reconciler=CitationReconciler(), documents=library)
