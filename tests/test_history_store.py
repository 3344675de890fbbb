async def test_append_turn_and_read_back(history_store):
    await history_store.append_turn("s-1", "user-1", "hello", "hi there")
    await history_store.append_turn("s-1", "user-1", "and again", "sure")

    messages = await history_store.get_messages("s-1", "user-1")

    assert messages == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "hi there"},
        {"role": "user", "content": "and again"},
        {"role": "assistant", "content": "sure"},
    ]
    assert await history_store.get_messages("s-1", "user-1", limit=2) == messages[2:]


async def test_unknown_session_is_empty(history_store):
    assert await history_store.get_messages("missing", "user-1") == []
    assert await history_store.get_title("missing", "user-1") is None


async def test_title_is_set_once(history_store):
    await history_store.append_turn("s-1", "user-1", "q", "a")

    assert await history_store.set_title("s-1", "user-1", "First")
    assert not await history_store.set_title("s-1", "user-1", "Second")
    assert await history_store.get_title("s-1", "user-1") == "First"


async def test_sessions_are_scoped_to_their_owner(history_store):
    await history_store.append_turn("s-1", "user-1", "q", "a")
    await history_store.set_title("s-1", "user-1", "Mine")
    await history_store.append_turn("s-2", "user-2", "q", "a")

    assert await history_store.list_sessions("user-1") == [{"id": "s-1", "title": "Mine"}]
    assert await history_store.get_session_messages("s-1", "user-2") is None
    assert len(await history_store.get_session_messages("s-1", "user-1")) == 2


async def test_reused_session_id_keeps_conversations_apart(history_store):
    await history_store.append_turn("shared-1", "alice", "alice secret question", "alice answer")
    await history_store.set_title("shared-1", "alice", "Alice title")

    assert await history_store.get_messages("shared-1", "bob") == []
    assert await history_store.get_title("shared-1", "bob") is None

    await history_store.append_turn("shared-1", "bob", "bob question", "bob answer")
    assert await history_store.set_title("shared-1", "bob", "Bob title")

    assert await history_store.get_session_messages("shared-1", "alice") == [
        {"role": "user", "content": "alice secret question"},
        {"role": "assistant", "content": "alice answer"},
    ]
    assert await history_store.get_messages("shared-1", "bob") == [
        {"role": "user", "content": "bob question"},
        {"role": "assistant", "content": "bob answer"},
    ]
    assert await history_store.get_title("shared-1", "alice") == "Alice title"
    assert await history_store.list_sessions("bob") == [{"id": "shared-1", "title": "Bob title"}]


async def test_delete_session(history_store):
    await history_store.append_turn("s-1", "user-1", "q", "a")

    assert not await history_store.delete_session("s-1", "someone-else")
    assert await history_store.delete_session("s-1", "user-1")
    assert await history_store.get_messages("s-1", "user-1") == []
    assert await history_store.list_sessions("user-1") == []


async def test_delete_leaves_other_owner_of_same_session_id(history_store):
    await history_store.append_turn("shared-1", "alice", "q", "a")
    await history_store.append_turn("shared-1", "bob", "q", "a")

    assert await history_store.delete_session("shared-1", "bob")

    assert len(await history_store.get_messages("shared-1", "alice")) == 2
