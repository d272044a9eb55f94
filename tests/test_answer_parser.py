"""Structured answer extraction from raw completion text."""

import pytest

from citeqa.core.entities import AnswerPayload
from citeqa.core.errors import PayloadParseError
from citeqa.core.services.answer_parser import parse_answer_payload, parse_payload, parse_reply, strip_fence


def test_fenced_json_payload():
    raw = "```json\n{\"answer\":\"X\",\"quotes\":[\"a\",\"b\"]}\n```"
    assert parse_answer_payload(raw) == AnswerPayload(answer_text="X", quotes=["a", "b"])


def test_bare_fence_without_language():
    raw = "```\n{\"answer\": \"Y\"}\n```"
    assert parse_answer_payload(raw) == AnswerPayload(answer_text="Y", quotes=[])


def test_unfenced_json_payload():
    assert parse_answer_payload('{"answer": "Z", "quotes": []}').answer_text == "Z"


def test_plain_text_yields_empty_payload():
    payload = parse_answer_payload("Faction is the violence of parties.")
    assert payload.is_empty


@pytest.mark.parametrize("answer_key", ["answer", "Answer", "ANSWER"])
@pytest.mark.parametrize("quotes_key", ["quotes", "Quotes", "qoutes"])
def test_key_aliases(answer_key, quotes_key):
    raw = f'{{"{answer_key}": "ok", "{quotes_key}": ["q"]}}'
    assert parse_answer_payload(raw) == AnswerPayload(answer_text="ok", quotes=["q"])


def test_non_string_quotes_are_discarded():
    raw = '{"answer": "ok", "quotes": ["keep", 3, null, {"x": 1}, "  ", "also"]}'
    assert parse_answer_payload(raw).quotes == ["keep", "also"]


def test_quotes_must_be_a_list():
    assert parse_answer_payload('{"answer": "ok", "quotes": "not a list"}').is_empty


def test_unknown_shape_fails_cleanly():
    with pytest.raises(PayloadParseError):
        parse_payload('{"response": "ok", "citations": []}')
    with pytest.raises(PayloadParseError):
        parse_payload('["answer", "quotes"]')


def test_non_string_answer_is_rejected():
    assert parse_answer_payload('{"answer": 42}').is_empty


def test_only_a_single_enclosing_fence_is_stripped():
    text = "Intro\n```json\n{\"answer\": \"X\"}\n```"
    assert strip_fence(text) == text.strip()
    assert parse_answer_payload(text).is_empty


def test_reply_falls_back_to_raw_text_only_when_unparseable():
    assert parse_reply("Just prose.") == ("Just prose.", AnswerPayload())
    text, payload = parse_reply('{"answer": "", "quotes": ["q"]}')
    assert text == ""
    assert payload.quotes == ["q"]
