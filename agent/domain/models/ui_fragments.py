from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from domain.streaming.streamable import StreamableValue


class BaseFragment(BaseModel):
    """Base model for renderable UI fragments"""
    model_config = ConfigDict(arbitrary_types_allowed=True)


class UserMessageFragment(BaseFragment):
    """The student's own message"""
    kind: Literal["user_message"] = "user_message"
    content: str


class BotMessageFragment(BaseFragment):
    """Assistant text, optionally backed by a live stream"""
    kind: Literal["bot_message"] = "bot_message"
    content: str = ""
    stream: Optional[StreamableValue] = Field(None, exclude=True)

    @property
    def text(self) -> str:
        if self.stream is not None:
            return self.stream.value
        return self.content


class SpinnerFragment(BaseFragment):
    """Shown while waiting for the first model event"""
    kind: Literal["spinner"] = "spinner"


class ToolPendingFragment(BaseFragment):
    """Loading card shown while a tool invocation settles"""
    kind: Literal["tool_pending"] = "tool_pending"
    tool: str


class QuestionCardFragment(BaseFragment):
    kind: Literal["question_card"] = "question_card"
    question: str


class ExplanationCardFragment(BaseFragment):
    kind: Literal["explanation_card"] = "explanation_card"
    topic: str


class PracticeSessionCardFragment(BaseFragment):
    kind: Literal["practice_session_card"] = "practice_session_card"
    concept: str


class ResourcesCardFragment(BaseFragment):
    kind: Literal["resources_card"] = "resources_card"
    topic: str


class EmptyFragment(BaseFragment):
    """Neutral fragment for messages that cannot be rendered"""
    kind: Literal["empty"] = "empty"


UIFragment = Annotated[
    Union[
        UserMessageFragment,
        BotMessageFragment,
        SpinnerFragment,
        ToolPendingFragment,
        QuestionCardFragment,
        ExplanationCardFragment,
        PracticeSessionCardFragment,
        ResourcesCardFragment,
        EmptyFragment,
    ],
    Field(discriminator="kind")
]


class RenderEntry(BaseModel):
    """One entry of the UI state; derived and never persisted"""
    id: str
    display: UIFragment
