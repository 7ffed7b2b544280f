# The module is to define the base class for all tools in the application.
# Author: Shibo Li
# Date: 2025-07-03
# Version: 0.2.0

from abc import ABC, abstractmethod
from typing import Any, Dict, Type

from pydantic import BaseModel, ValidationError

from agentloop.core.errors import ToolExecutionError
from agentloop.models.common import ToolSpec


def _primitive_type(schema: Dict[str, Any]) -> str:
    """Reduces a JSON-schema property to the single primitive type tag the wire format carries."""
    if "type" in schema:
        return schema["type"]
    for option in schema.get("anyOf", []):
        if option.get("type") and option["type"] != "null":
            return option["type"]
    return "string"


class BaseTool(ABC):
    """
    Abstract Base Class for all tools.

    This class defines a standard interface that all tools must implement.
    Attributes:
        name (str): The name of the tool, used for identification.
        description (str): A brief description of what the tool does.
        args_schema (Type[BaseModel]): A Pydantic model defining the arguments
            that the tool accepts, which will be validated before execution.
    """
    name: str
    description: str
    args_schema: Type[BaseModel]

    @abstractmethod
    def run(self, **kwargs) -> str:
        """
        The core logic of the tool. This method must be implemented by all subclasses.

        Args:
            **kwargs: The arguments for the tool, validated against args_schema.

        Returns:
            A string summarizing the result of the tool's execution.

        Raises:
            ToolExecutionError: If the tool cannot complete the requested action.
        """
        pass

    def get_spec(self) -> ToolSpec:
        """
        Builds the tool's spec from its args_schema. Each field becomes a parameter
        with a primitive type tag and its Field description.
        """
        schema = self.args_schema.model_json_schema()
        spec = ToolSpec(name=self.name, description=self.description)
        required = set(schema.get("required", []))
        for field_name, field_schema in schema.get("properties", {}).items():
            spec.add_parameter(
                field_name,
                _primitive_type(field_schema),
                field_schema.get("description", ""),
                required=field_name in required,
            )
        return spec

    def execute(self, arguments: str) -> str:
        """
        Validates the raw argument payload sent by the model and runs the tool.
        """
        try:
            params = self.args_schema.model_validate_json(arguments or "{}")
        except ValidationError as e:
            raise ToolExecutionError(f"Invalid arguments for tool '{self.name}': {e}") from e
        return self.run(**params.model_dump())
