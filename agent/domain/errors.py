from typing import Optional


class TutorError(Exception):
    """Base class for tutor agent errors"""


class EngineUnavailableError(TutorError):
    """The completion engine call failed or was rejected"""

    def __init__(self, message: str = "Completion engine unavailable", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ToolArgumentError(TutorError):
    """Tool arguments emitted by the model failed schema validation"""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Invalid arguments for tool '{tool_name}': {message}")
        self.tool_name = tool_name
        self.detail = message


class InvalidStateError(TutorError):
    """Operation on a stream that already reached its terminal state"""
