# Parameter validation for model-emitted tool calls
from typing import Any, Dict, Mapping, Union
import json

from pydantic import BaseModel, ValidationError

from domain.errors import ToolArgumentError
from domain.tool.tool_registry import ToolRegistry


class ToolParameterValidator:
    @staticmethod
    def validate_tool_call(
        registry: ToolRegistry,
        tool_name: str,
        arguments: Union[str, Mapping[str, Any], None]
    ) -> BaseModel:
        schema = registry.get_tool(tool_name)
        if schema is None:
            raise ToolArgumentError(tool_name, "unknown tool")

        payload = ToolParameterValidator._decode(tool_name, arguments)

        try:
            return schema.parameters.model_validate(payload)
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
                for error in e.errors()
            )
            raise ToolArgumentError(tool_name, f"Schema validation failed: {errors}") from e

    @staticmethod
    def _decode(tool_name: str, arguments: Union[str, Mapping[str, Any], None]) -> Dict[str, Any]:
        if arguments is None or arguments == "":
            return {}

        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError as e:
                raise ToolArgumentError(tool_name, f"arguments are not valid JSON ({e.msg})") from e

        if not isinstance(arguments, Mapping):
            raise ToolArgumentError(tool_name, "arguments must be a JSON object")

        return dict(arguments)


def validate_tool_arguments(
    registry: ToolRegistry,
    tool_name: str,
    arguments: Union[str, Mapping[str, Any], None]
) -> BaseModel:
    """Validate raw tool arguments, raising ToolArgumentError on failure"""
    return ToolParameterValidator.validate_tool_call(registry, tool_name, arguments)
