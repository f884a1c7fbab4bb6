import pytest

from domain.models.chat_state import Chat, Message, MessageRole, TurnLog
from infrastructure.security.identity import Identity, StaticTokenIdentityProvider, extract_bearer_token


STUDENT = Identity(user_id="student-1")


def _log_with(*contents: str) -> TurnLog:
    log = TurnLog.new()
    for content in contents:
        log.append(Message(role=MessageRole.USER, content=content))
    return log


@pytest.mark.asyncio
async def test_hooks_are_no_ops_without_identity(session_hooks, session_store) -> None:
    log = _log_with("hi")

    assert await session_hooks.get_ui_state(log, None) is None
    assert await session_hooks.set_ai_state(log, None) is None
    assert await session_hooks.load_turn_log(log.chat_id, None) is None
    assert session_store.chats == {}


@pytest.mark.asyncio
async def test_empty_log_is_not_saved(session_hooks, session_store) -> None:
    assert await session_hooks.set_ai_state(TurnLog.new(), STUDENT) is None
    assert session_store.chats == {}


@pytest.mark.asyncio
async def test_saved_log_reloads_for_owner_only(session_hooks) -> None:
    log = _log_with("What is a prime number?")

    chat = await session_hooks.set_ai_state(log, STUDENT)

    assert chat.user_id == STUDENT.user_id
    assert await session_hooks.load_turn_log(log.chat_id, STUDENT) == log
    assert await session_hooks.load_turn_log(log.chat_id, Identity(user_id="someone-else")) is None


@pytest.mark.asyncio
async def test_saved_record_is_isolated_from_later_appends(session_hooks, session_store) -> None:
    log = _log_with("first")
    await session_hooks.set_ai_state(log, STUDENT)

    log.append(Message(role=MessageRole.USER, content="second"))

    stored = await session_store.get_chat(log.chat_id, STUDENT.user_id)
    assert len(stored.messages) == 1


@pytest.mark.asyncio
async def test_store_keeps_creation_time_and_owner(session_store) -> None:
    log = _log_with("first")
    original = Chat.from_turn_log(log, user_id="student-1")
    await session_store.save_chat(original)

    log.append(Message(role=MessageRole.USER, content="second"))
    await session_store.save_chat(Chat.from_turn_log(log, user_id="student-1"))

    stored = await session_store.get_chat(log.chat_id, "student-1")
    assert stored.created_at == original.created_at
    assert len(stored.messages) == 2

    with pytest.raises(PermissionError):
        await session_store.save_chat(Chat.from_turn_log(log, user_id="intruder"))


@pytest.mark.asyncio
async def test_store_lists_and_removes_per_user(session_store) -> None:
    for content in ["a", "b"]:
        await session_store.save_chat(Chat.from_turn_log(_log_with(content), user_id="student-1"))
    await session_store.save_chat(Chat.from_turn_log(_log_with("c"), user_id="student-2"))

    chats = await session_store.get_chats("student-1")
    assert sorted(chat.title for chat in chats) == ["a", "b"]

    assert await session_store.remove_chat(chats[0].id, "student-2") is False
    assert await session_store.remove_chat(chats[0].id, "student-1") is True
    assert await session_store.clear_chats("student-1") == 1
    assert len(await session_store.get_chats("student-2")) == 1


@pytest.mark.asyncio
async def test_static_token_provider() -> None:
    provider = StaticTokenIdentityProvider({"secret-token": "student-1"})

    assert await provider.authenticate("secret-token") == Identity(user_id="student-1")
    assert await provider.authenticate("wrong") is None
    assert await provider.authenticate(None) is None


def test_extract_bearer_token() -> None:
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token(None) is None
