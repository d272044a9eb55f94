from __future__ import annotations
import logging
from dataclasses import dataclass

from citeqa.core.services.citation_reconciler import CitationReconciler
from citeqa.core.services.index_aggregator import IndexAggregator
from citeqa.core.services.index_readiness import IndexReadinessWaiter
from citeqa.core.services.indexing_service import IndexingService
from citeqa.core.services.qa_service import QAService
from citeqa.core.services.retrieval_dispatcher import RetrievalDispatcher
from citeqa.models.cache.json_index_cache import JsonIndexCache
from citeqa.models.documents.book_library import BookLibrary
from citeqa.models.llm.openai_service import OpenAICompletionService

logger = logging.getLogger("citeqa.container")


@dataclass
class AppContainer:
    documents: BookLibrary
    cache: JsonIndexCache
    service: OpenAICompletionService
    indexing_service: IndexingService
    aggregator: IndexAggregator
    dispatcher: RetrievalDispatcher
    qa_service: QAService


def build_container(settings) -> AppContainer:
    """Wire adapters and services from settings."""
    documents = BookLibrary(settings.books_dir)
    cache = JsonIndexCache(settings.index_cache_path, documents)
    logger.info(f"📂 Books: {settings.books_dir} | cache: {settings.index_cache_path} ({len(cache)} entries)")

    service = OpenAICompletionService(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        default_model=settings.query_model,
        temperature=settings.temperature,
        timeout=settings.http_timeout,
    )
    waiter = IndexReadinessWaiter(service, poll_interval=settings.index_poll_interval)

    indexing_service = IndexingService(
        cache=cache,
        documents=documents,
        service=service,
        waiter=waiter,
        build_timeout=settings.index_build_timeout,
        name_prefix=settings.index_name_prefix,
    )
    aggregator = IndexAggregator(
        indexing=indexing_service,
        documents=documents,
        aggregate_scope=settings.aggregate_scope,
        persist_pairs=settings.persist_pair_aggregates,
        separators=settings.separators,
    )
    dispatcher = RetrievalDispatcher(
        service=service,
        documents=documents,
        waiter=waiter,
        ready_timeout=settings.query_ready_timeout,
        query_model=settings.query_model,
        extract_model=settings.extract_model,
        final_model=settings.final_model,
    )
    qa_service = QAService(
        aggregator=aggregator,
        dispatcher=dispatcher,
        reconciler=CitationReconciler(),
        documents=documents,
        mode=settings.retrieval_mode,
    )
    logger.info(f"🔌 Retrieval mode: {settings.retrieval_mode} | aggregate scope: {settings.aggregate_scope}")
    return AppContainer(
        documents=documents,
        cache=cache,
        service=service,
        indexing_service=indexing_service,
        aggregator=aggregator,
        dispatcher=dispatcher,
        qa_service=qa_service,
    )
