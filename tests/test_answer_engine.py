from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import BadRequestError

from app.modules.governedchat.errors import DownstreamModelError
from app.modules.governedchat.services.answer_engine import AnswerEngine, clean_title, rewrite_citations
from app.modules.governedchat.services.llm import OpenAIChatModel, collect_stream
from app.modules.governedchat.services.prompts import build_rag_system_prompt
from app.modules.governedchat.services.retrieval.retriever import RetrievedDocument
from core.config import RAG_SYSTEM_PROMPT, TITLE_SYSTEM_PROMPT


async def _stream(*parts):
    for part in parts:
        yield part


def test_rewrite_citations_appends_label():
    docs = [RetrievedDocument(content="x", source="doc1.pdf", label_name="General")]

    assert rewrite_citations("See [doc1.pdf].", docs) == "See [doc1.pdf (Label: General)]."


def test_rewrite_citations_unknown_label_and_untouched_text():
    docs = [RetrievedDocument(content="x", source="doc1.pdf")]

    assert rewrite_citations("[doc1.pdf][other.txt]", docs) == "[doc1.pdf (Label: Unknown)][other.txt]"


def test_system_prompt_renders_sources():
    docs = [
        RetrievedDocument(content="Rent is due on the 1st.", source="doc1.pdf"),
        RetrievedDocument(content="No pets.", source="rules.txt"),
    ]

    prompt = build_rag_system_prompt(RAG_SYSTEM_PROMPT, docs)

    assert prompt.endswith("SOURCES:\n[doc1.pdf]: Rent is due on the 1st.\n\n[rules.txt]: No pets.\n")
    assert "{context}" not in prompt


def test_clean_title():
    assert clean_title('"A very long title that goes past the limit"') == "A very long title that goes past"
    assert clean_title('  "Rent"  ') == "Rent"


async def test_answer_drains_stream_and_labels_from_candidates():
    model = MagicMock()
    model.stream = MagicMock(return_value=_stream("Use ", "[a.pdf] and [b.pdf]"))
    engine = AnswerEngine(model, RAG_SYSTEM_PROMPT, TITLE_SYSTEM_PROMPT)
    kept = [RetrievedDocument(content="A", source="a.pdf", label_name="General")]
    candidates = kept + [RetrievedDocument(content="B", source="b.pdf", label_name="Secret")]

    answer = await engine.answer("q?", kept, [{"role": "user", "content": "earlier"}], candidates=candidates)

    assert answer.text == "Use [a.pdf (Label: General)] and [b.pdf (Label: Secret)]"
    assert answer.used_documents == kept
    messages = model.stream.call_args.args[0]
    assert messages[0]["role"] == "system"
    assert "[a.pdf]: A" in messages[0]["content"]
    assert "[b.pdf]: B" not in messages[0]["content"]
    assert messages[1:] == [{"role": "user", "content": "earlier"}, {"role": "user", "content": "q?"}]


def test_history_drops_system_and_empty_messages():
    engine = AnswerEngine(MagicMock(), RAG_SYSTEM_PROMPT, TITLE_SYSTEM_PROMPT)
    history = [
        {"role": "system", "content": "ignore"},
        {"role": "user", "content": ""},
        {"role": "assistant", "content": "hi"},
    ]

    messages = engine.build_messages("q", [], history)

    assert messages[1:] == [{"role": "assistant", "content": "hi"}, {"role": "user", "content": "q"}]


async def test_ensure_title_generates_once():
    model = MagicMock()
    model.complete = AsyncMock(return_value='"Rent questions"')
    store = MagicMock()
    store.get_title = AsyncMock(return_value=None)
    store.set_title = AsyncMock(return_value=True)
    engine = AnswerEngine(model, RAG_SYSTEM_PROMPT, TITLE_SYSTEM_PROMPT)

    title = await engine.ensure_title(store, "s-1", "user-1", "When is rent due?")

    assert title == "Rent questions"
    store.set_title.assert_awaited_once_with("s-1", "user-1", "Rent questions")
    assert model.complete.await_args.args[0][0] == {"role": "system", "content": TITLE_SYSTEM_PROMPT}


async def test_ensure_title_skips_model_when_title_exists():
    model = MagicMock()
    model.complete = AsyncMock()
    store = MagicMock()
    store.get_title = AsyncMock(return_value="Existing")
    store.set_title = AsyncMock()

    title = await AnswerEngine(model, RAG_SYSTEM_PROMPT, TITLE_SYSTEM_PROMPT).ensure_title(store, "s", "u", "q")

    assert title == "Existing"
    model.complete.assert_not_awaited()
    store.set_title.assert_not_awaited()


async def test_collect_stream_skips_empty_chunks():
    assert await collect_stream(_stream("a", "", None, "b")) == "ab"


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _bad_request(message):
    request = httpx.Request("POST", "https://example.invalid/chat/completions")
    return BadRequestError(message, response=httpx.Response(400, request=request), body=None)


async def test_complete_retries_without_unsupported_temperature():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        side_effect=[_bad_request("'temperature' does not support 0.7, Unsupported value"), _completion(" Title ")]
    )
    model = OpenAIChatModel(client, "gpt-test", temperature=0.7)

    assert await model.complete([{"role": "user", "content": "hi"}]) == "Title"
    assert "temperature" in client.chat.completions.create.await_args_list[0].kwargs
    assert "temperature" not in client.chat.completions.create.await_args_list[1].kwargs


async def test_complete_wraps_model_errors():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=_bad_request("context length exceeded"))

    with pytest.raises(DownstreamModelError):
        await OpenAIChatModel(client, "gpt-test").complete([{"role": "user", "content": "hi"}])
