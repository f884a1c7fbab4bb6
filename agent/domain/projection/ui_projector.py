"""Projection of the durable turn log into UI state.

Used to rebuild the UI after a session reload, independently of the live
streaming path. Everything here is pure: identical logs give equal entries.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, Type
import json

from pydantic import BaseModel, ValidationError

from domain.models.chat_state import Message, MessageRole, TurnLog
from domain.models.ui_fragments import (
    BaseFragment, BotMessageFragment, EmptyFragment, ExplanationCardFragment,
    PracticeSessionCardFragment, QuestionCardFragment, RenderEntry,
    ResourcesCardFragment, UserMessageFragment
)
from domain.tool.tool_registry import (
    AskQuestionArgs, ProvideExplanationArgs, RecommendResourcesArgs,
    StartPracticeSessionArgs, ToolName
)


CardBuilder = Callable[[Any], BaseFragment]

# One entry per ToolName: parameter model and the card it renders to
TOOL_CARDS: Dict[ToolName, Tuple[Type[BaseModel], CardBuilder]] = {
    ToolName.ASK_QUESTION: (
        AskQuestionArgs,
        lambda args: QuestionCardFragment(question=args.question)
    ),
    ToolName.PROVIDE_EXPLANATION: (
        ProvideExplanationArgs,
        lambda args: ExplanationCardFragment(topic=args.topic)
    ),
    ToolName.START_PRACTICE_SESSION: (
        StartPracticeSessionArgs,
        lambda args: PracticeSessionCardFragment(concept=args.concept)
    ),
    ToolName.RECOMMEND_RESOURCES: (
        RecommendResourcesArgs,
        lambda args: ResourcesCardFragment(topic=args.topic)
    ),
}


def build_tool_card(tool_name: ToolName, arguments: BaseModel) -> BaseFragment:
    """Fully populated card for validated tool arguments"""

    _, builder = TOOL_CARDS[tool_name]
    return builder(arguments)


def project(turn_log: TurnLog) -> List[RenderEntry]:
    """Map a turn log to render entries, one per non-system message"""

    visible = [message for message in turn_log.messages if message.role != MessageRole.SYSTEM]
    return [
        RenderEntry(id=f"{turn_log.chat_id}-{index}", display=project_message(message))
        for index, message in enumerate(visible)
    ]


def project_message(message: Message) -> BaseFragment:
    """Select the fragment for a single message"""

    if message.is_tool_result:
        return _project_tool_result(message)
    if message.role == MessageRole.USER:
        return UserMessageFragment(content=message.content)
    return BotMessageFragment(content=message.content)


def _project_tool_result(message: Message) -> BaseFragment:
    tool_name = ToolName.parse(message.name)
    if tool_name is None:
        return EmptyFragment()

    params_model, builder = TOOL_CARDS[tool_name]
    payload = _decode_arguments(message.content, params_model)
    if payload is None:
        return EmptyFragment()

    try:
        arguments = params_model.model_validate(payload)
    except ValidationError:
        return EmptyFragment()

    return builder(arguments)


def _decode_arguments(content: str, params_model: Type[BaseModel]) -> Optional[Dict[str, Any]]:
    try:
        decoded = json.loads(content)
    except json.JSONDecodeError:
        return None

    if isinstance(decoded, dict):
        return decoded

    # Older logs stored the bare JSON string of the single argument
    if isinstance(decoded, str) and len(params_model.model_fields) == 1:
        field_name = next(iter(params_model.model_fields))
        return {field_name: decoded}

    return None
