from typing import Dict, List, Any, Optional, Type
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class ToolName(str, Enum):
    """Closed set of tools the tutor model may invoke"""
    ASK_QUESTION = "askQuestion"
    PROVIDE_EXPLANATION = "provideExplanation"
    START_PRACTICE_SESSION = "startPracticeSession"
    RECOMMEND_RESOURCES = "recommendResources"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ToolName"]:
        """Map a raw tool name to the enum, None when unrecognized"""
        try:
            return cls(value)
        except ValueError:
            return None


class AskQuestionArgs(BaseModel):
    question: str = Field(description="The question to ask ChatGPT")


class ProvideExplanationArgs(BaseModel):
    topic: str = Field(description="The topic for which explanation is needed")


class StartPracticeSessionArgs(BaseModel):
    concept: str = Field(description="The concept to practice with ChatGPT")


class RecommendResourcesArgs(BaseModel):
    topic: str = Field(description="The topic for which additional resources are needed")


class ToolSchema(BaseModel):
    """Declaration of an invocable tool"""
    model_config = ConfigDict(frozen=True)

    name: ToolName
    description: str = Field(description="Sent to the model to aid tool selection")
    parameters: Type[BaseModel] = Field(description="Parameter shape used to validate arguments")

    def to_openai_tool(self) -> Dict[str, Any]:
        """Render the schema in the OpenAI function-tool format"""

        parameters = self.parameters.model_json_schema()
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": parameters
            }
        }


class ToolRegistry:
    """Registry for the tools exposed to the completion engine"""

    def __init__(self):
        self.tools: Dict[ToolName, ToolSchema] = {}

    def register_tool(self, schema: ToolSchema):
        """Register a new tool"""

        if schema.name in self.tools:
            raise ValueError(f"Tool '{schema.name.value}' is already registered")
        self.tools[schema.name] = schema

    def get_tool(self, name: str) -> Optional[ToolSchema]:
        """Get the schema for a tool by name"""

        tool_name = ToolName.parse(name)
        if tool_name is None:
            return None
        return self.tools.get(tool_name)

    def list_tools(self) -> List[ToolSchema]:
        """Get all registered tools in registration order"""
        return list(self.tools.values())

    def names(self) -> List[str]:
        return [name.value for name in self.tools]

    def to_openai_tools(self) -> List[Dict[str, Any]]:
        """Tool definitions as sent to the model"""
        return [schema.to_openai_tool() for schema in self.tools.values()]

    def __contains__(self, name: str) -> bool:
        return self.get_tool(name) is not None

    def __len__(self) -> int:
        return len(self.tools)


def default_tool_registry() -> ToolRegistry:
    """Registry holding the four tutor tools"""

    registry = ToolRegistry()
    tutor_tools = [
        ToolSchema(
            name=ToolName.ASK_QUESTION,
            description="Ask a question to ChatGPT for assistance.",
            parameters=AskQuestionArgs
        ),
        ToolSchema(
            name=ToolName.PROVIDE_EXPLANATION,
            description="Request ChatGPT to provide an explanation on a topic.",
            parameters=ProvideExplanationArgs
        ),
        ToolSchema(
            name=ToolName.START_PRACTICE_SESSION,
            description="Initiate a practice session with ChatGPT on a concept.",
            parameters=StartPracticeSessionArgs
        ),
        ToolSchema(
            name=ToolName.RECOMMEND_RESOURCES,
            description="Ask ChatGPT to recommend additional learning resources.",
            parameters=RecommendResourcesArgs
        ),
    ]

    for schema in tutor_tools:
        registry.register_tool(schema)

    return registry
