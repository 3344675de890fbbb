from unittest.mock import AsyncMock, MagicMock

from app.modules.governedchat.errors import LabelLookupError
from app.modules.governedchat.services.label_filter import LabelFilter
from app.modules.governedchat.services.retrieval.retriever import RetrievedDocument


def doc(source, label_id):
    return RetrievedDocument(content=f"content of {source}", source=source, label_id=label_id, label_name="General")


def gateway_with(rights_by_label):
    async def get_label_info(app_token, user_name, label_id):
        rights = rights_by_label[label_id]
        if isinstance(rights, Exception):
            raise rights
        return {"value": [{"rights": {"value": rights}}]}

    gateway = MagicMock()
    gateway.get_label_info = AsyncMock(side_effect=get_label_info)
    return gateway


async def test_keeps_only_accepted_documents_in_order():
    gateway = gateway_with({"a": "VIEW", "b": "EXPORT", "c": "Default"})
    label_filter = LabelFilter(gateway, "view,default")

    kept = await label_filter.filter([doc("a.pdf", "a"), doc("b.pdf", "b"), doc("c.pdf", "c")], "app-token", "alice")

    assert [d.source for d in kept] == ["a.pdf", "c.pdf"]
    gateway.get_label_info.assert_any_await("app-token", "alice", "b")


async def test_one_failed_lookup_excludes_only_that_document():
    gateway = gateway_with({"a": "view", "b": LabelLookupError("b", "timeout"), "c": "view"})
    label_filter = LabelFilter(gateway, "view")

    kept = await label_filter.filter([doc("a.pdf", "a"), doc("b.pdf", "b"), doc("c.pdf", "c")], "t", "u")

    assert [d.source for d in kept] == ["a.pdf", "c.pdf"]


async def test_unexpected_lookup_error_is_isolated():
    gateway = gateway_with({"a": RuntimeError("boom"), "b": "view"})

    kept = await LabelFilter(gateway, "view").filter([doc("a.pdf", "a"), doc("b.pdf", "b")], "t", "u")

    assert [d.source for d in kept] == ["b.pdf"]


async def test_unlabelled_documents_pass_without_lookup():
    gateway = gateway_with({})

    kept = await LabelFilter(gateway, "view").filter([doc("plain.txt", None)], "t", "u")

    assert [d.source for d in kept] == ["plain.txt"]
    gateway.get_label_info.assert_not_awaited()


async def test_empty_candidates():
    assert await LabelFilter(gateway_with({}), "view").filter([], "t", "u") == []


def test_acceptance_is_case_insensitive_substring():
    label_filter = LabelFilter(MagicMock(), "View,Default")

    assert label_filter.is_accepted("VIEW")
    assert label_filter.is_accepted("default")
    assert not label_filter.is_accepted("export")
    assert label_filter.is_accepted("")


def test_missing_accepted_rights_falls_back_to_default():
    label_filter = LabelFilter(MagicMock(), "")

    assert label_filter.is_accepted("default")
    assert not label_filter.is_accepted("view")
