import json

import pytest

from domain.models.chat_state import Message, MessageRole, TurnLog
from domain.models.ui_fragments import (
    BotMessageFragment, EmptyFragment, ExplanationCardFragment, PracticeSessionCardFragment,
    QuestionCardFragment, ResourcesCardFragment, UserMessageFragment
)
from domain.projection.ui_projector import TOOL_CARDS, project
from domain.tool.tool_registry import ToolName


def _log(*messages: Message) -> TurnLog:
    log = TurnLog(chat_id="chat", messages=[])
    for message in messages:
        log.append(message)
    return log


def _tool(name: str, content: str) -> Message:
    return Message(role=MessageRole.FUNCTION, name=name, content=content)


def test_every_tool_has_a_card() -> None:
    assert set(TOOL_CARDS) == set(ToolName)


def test_projects_user_and_assistant_messages_in_order() -> None:
    log = _log(
        Message(role=MessageRole.USER, content="Explain photosynthesis"),
        Message(role=MessageRole.ASSISTANT, content="Plants turn light into sugar."),
    )

    entries = project(log)

    assert [entry.id for entry in entries] == ["chat-0", "chat-1"]
    assert entries[0].display == UserMessageFragment(content="Explain photosynthesis")
    assert entries[1].display == BotMessageFragment(content="Plants turn light into sugar.")


def test_system_messages_are_hidden() -> None:
    log = _log(
        Message(role=MessageRole.SYSTEM, content="You are a tutor"),
        Message(role=MessageRole.USER, content="hi"),
    )

    entries = project(log)

    assert len(entries) == 1
    assert entries[0].id == "chat-0"


@pytest.mark.parametrize(
    ("name", "arguments", "expected"),
    [
        ("askQuestion", {"question": "Why is the sky blue?"}, QuestionCardFragment(question="Why is the sky blue?")),
        ("provideExplanation", {"topic": "fractions"}, ExplanationCardFragment(topic="fractions")),
        ("startPracticeSession", {"concept": "derivatives"}, PracticeSessionCardFragment(concept="derivatives")),
        ("recommendResources", {"topic": "algebra"}, ResourcesCardFragment(topic="algebra")),
    ],
)
def test_tool_results_render_cards(name, arguments, expected) -> None:
    entries = project(_log(_tool(name, json.dumps(arguments))))

    assert entries[0].display == expected


def test_tool_message_role_also_renders_cards() -> None:
    log = _log(Message(role=MessageRole.TOOL, name="provideExplanation", content='{"topic": "fractions"}'))

    assert project(log)[0].display == ExplanationCardFragment(topic="fractions")


def test_bare_string_content_fills_the_single_argument() -> None:
    entries = project(_log(_tool("provideExplanation", '"fractions"')))

    assert entries[0].display == ExplanationCardFragment(topic="fractions")


@pytest.mark.parametrize(
    ("name", "content"),
    [
        ("exploreNewTopic", '{"topic": "space"}'),
        ("provideExplanation", "{broken"),
        ("provideExplanation", '{"subject": "fractions"}'),
        ("askQuestion", "[1, 2]"),
    ],
)
def test_unrenderable_tool_results_become_empty(name: str, content: str) -> None:
    entries = project(_log(_tool(name, content)))

    assert entries[0].display == EmptyFragment()


def test_projection_is_deterministic_and_pure() -> None:
    log = _log(
        Message(role=MessageRole.USER, content="hi"),
        _tool("recommendResources", '{"topic": "algebra"}'),
    )
    before = log.model_dump()

    assert project(log) == project(log)
    assert log.model_dump() == before
