"""End-to-end question answering over fakes: scope, dispatch, parse, reconcile."""

import asyncio
import json

import pytest

from citeqa.core.entities import ChatMessage, CitationAnnotation, ServiceAnswer
from citeqa.core.errors import ServiceError
from citeqa.core.services.citation_reconciler import CitationReconciler
from citeqa.core.services.qa_service import NO_CONTEXT_REPLY, QAService
from citeqa.core.services.retrieval_dispatcher import EXTRACT_SYS_PROMPT, NO_RELEVANT_TEXT

MADISON = "Madison--Federalist_No_10"
HAMILTON = "Hamilton--Federalist_No_78"
JAY = "Jay--Federalist_No_2"


def _ids(cache):
    snapshot = asyncio.run(cache.snapshot())
    return {label: rec.document_id for label, rec in snapshot.items() if rec.document_id}


class TestIndexedMode:
    def test_three_documents_two_quotes_reconciled_in_quote_order(self, qa, indexing, cache, service):
        asyncio.run(indexing.prewarm())
        ids = _ids(cache)
        service.query_answer = ServiceAnswer(
            text="```json\n" + json.dumps({
                "answer": "Factions are controlled by union; courts are weakest.",
                "quotes": ["control the violence of faction", "least dangerous to the political rights"],
            }) + "\n```",
            citations=[
                CitationAnnotation(ids[JAY], "one connected country to one united people"),
                CitationAnnotation(ids[HAMILTON], "will always be the least dangerous to the political rights"),
                CitationAnnotation(ids[MADISON], "tendency to break and control the violence of faction"),
            ],
        )

        answer = asyncio.run(qa.answer("How is faction handled?", [MADISON, HAMILTON, JAY]))

        assert answer.reply == "Factions are controlled by union; courts are weakest."
        assert [(s.document_label, s.document_id, s.quote_text) for s in answer.sources] == [
            (MADISON, ids[MADISON], "control the violence of faction"),
            (HAMILTON, ids[HAMILTON], "least dangerous to the political rights"),
        ]
        scope_ids, _, _ = service.queries[0]
        assert len(scope_ids) == 1

    def test_zero_documents_bypass_indexing(self, qa, service):
        service.completion_fn = lambda messages: "General knowledge answer."
        answer = asyncio.run(qa.answer("Who wrote the Federalist?", []))

        assert answer.reply == "General knowledge answer."
        assert answer.sources is None
        assert service.created == [] and service.queries == []
        assert len(service.completions) == 1

    def test_unstructured_reply_is_used_verbatim(self, qa, service, cache):
        service.query_answer = ServiceAnswer(text="Just prose.", citations=[])
        answer = asyncio.run(qa.answer("What about the judiciary?", [HAMILTON]))
        assert answer.reply == "Just prose."
        assert answer.sources == []

    def test_unstructured_reply_keeps_deduplicated_citations(self, qa, indexing, cache, service):
        asyncio.run(indexing.ensure_document(HAMILTON))
        hid = _ids(cache)[HAMILTON]
        service.query_answer = ServiceAnswer(
            text="Just prose.",
            citations=[CitationAnnotation(hid, "least dangerous"), CitationAnnotation(hid, "least dangerous")],
        )
        answer = asyncio.run(qa.answer("What about the judiciary?", [HAMILTON]))
        assert [(s.document_label, s.quote_text) for s in answer.sources] == [(HAMILTON, "least dangerous")]

    def test_empty_reply_becomes_apology(self, qa, service):
        service.query_answer = ServiceAnswer(text="   ", citations=[])
        answer = asyncio.run(qa.answer("Anything?", [JAY]))
        assert answer.reply == NO_CONTEXT_REPLY

    def test_parsed_payload_with_blank_answer_becomes_apology(self, qa, service):
        service.query_answer = ServiceAnswer(
            text=json.dumps({"answer": "  ", "quotes": ["violence of faction"]}), citations=[],
        )
        answer = asyncio.run(qa.answer("What is faction?", [MADISON]))
        assert answer.reply == NO_CONTEXT_REPLY
        assert answer.sources == []

    def test_selection_with_only_missing_documents_answers_unscoped(self, qa, service):
        answer = asyncio.run(qa.answer("Anything?", ["Ghost--Book"]))
        assert answer.reply == "plain reply"
        assert answer.sources == []
        assert service.created == []

    def test_missing_documents_are_skipped_within_a_batch(self, qa, service):
        service.query_answer = ServiceAnswer(text='{"answer": "ok"}', citations=[])
        answer = asyncio.run(qa.answer("What is faction?", ["Ghost--Book", MADISON]))
        assert answer.reply == "ok"
        assert service.queries and service.queries[0][0]

    def test_question_is_not_repeated_after_conversation(self, qa, service):
        service.query_answer = ServiceAnswer(text='{"answer": "ok"}', citations=[])
        conversation = [
            ChatMessage("user", "Tell me about the union."),
            ChatMessage("assistant", "It is large."),
            ChatMessage("user", "And faction?"),
        ]
        asyncio.run(qa.answer("And faction?", [MADISON], conversation))
        _, messages, _ = service.queries[0]
        assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1].content == "And faction?"

    def test_service_errors_propagate(self, qa, service):
        async def boom(*args, **kwargs):
            raise ServiceError(429, '{"error": "rate limited"}')

        service.query = boom
        with pytest.raises(ServiceError) as exc:
            asyncio.run(qa.answer("What is faction?", [MADISON]))
        assert exc.value.body == '{"error": "rate limited"}'


class TestExtractMode:
    @pytest.fixture
    def extract_qa(self, aggregator, dispatcher, library):
        return QAService(
            aggregator=aggregator, dispatcher=dispatcher, reconciler=CitationReconciler(),
            documents=library, mode="extract",
        )

    def test_extracts_then_synthesizes_with_document_headers(self, extract_qa, service):
        def respond(messages):
            if messages[0].content == EXTRACT_SYS_PROMPT:
                if "Title: Federalist No 10" in messages[1].content:
                    return '"control the violence of faction" (Federalist No. 10)'
                return NO_RELEVANT_TEXT
            return json.dumps({"answer": "Union controls faction.", "quotes": ["the violence of faction"]})

        service.completion_fn = respond
        answer = asyncio.run(extract_qa.answer("What is faction?", [HAMILTON, MADISON, JAY]))

        assert answer.reply == "Union controls faction."
        assert len(answer.context) == 1
        assert answer.context[0].startswith("----- Relevant excerpts from 'Federalist No 10' by Madison -----")
        assert [(s.document_label, s.quote_text) for s in answer.sources] == [(MADISON, "the violence of faction")]
        # three extractions and one synthesis, no indexing
        assert len(service.completions) == 4
        assert service.created == []

    def test_synthesis_with_blank_answer_becomes_apology(self, extract_qa, service):
        def respond(messages):
            if messages[0].content == EXTRACT_SYS_PROMPT:
                return '"control the violence of faction"'
            return json.dumps({"answer": "", "quotes": ["the violence of faction"]})

        service.completion_fn = respond
        answer = asyncio.run(extract_qa.answer("What is faction?", [MADISON]))
        assert answer.reply == NO_CONTEXT_REPLY
        assert answer.sources == []
        assert len(answer.context) == 1

    def test_nothing_relevant_anywhere_returns_apology(self, extract_qa, service):
        service.completion_fn = lambda messages: NO_RELEVANT_TEXT
        answer = asyncio.run(extract_qa.answer("Unrelated?", [HAMILTON, JAY]))
        assert answer.reply == NO_CONTEXT_REPLY
        assert answer.context == []
        assert len(service.completions) == 2


def test_unknown_mode_is_rejected(aggregator, dispatcher, library):
    with pytest.raises(ValueError):
        QAService(aggregator=aggregator, dispatcher=dispatcher, reconciler=CitationReconciler(),
                  documents=library, mode="telepathy")
