"""
Pydantic Validation Layer for gateway tools
Builds a record model per tool from its parameter table and validates
arguments before any request is built
"""

import inspect
import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from ..adapters.errors import ErrorKind, FreshdeskError

logger = logging.getLogger(__name__)

_TYPE_MAPPING: Dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": List[Any],
    "object": Dict[str, Any],
}


class _StrictRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PydanticParameterValidator:
    """
    Validates tool arguments against the tool's declared parameters.

    Parameter entries are dicts with `type`, `required`, `description` and
    optionally `enum`, `items`, `minimum`, `maximum`. Unknown arguments are
    rejected.
    """

    def __init__(self):
        self.model_cache: Dict[str, Type[BaseModel]] = {}

    def create_dynamic_model(self, tool_name: str, params: Dict[str, Dict[str, Any]]) -> Type[BaseModel]:
        """Create (or fetch cached) record model for a tool"""
        if tool_name in self.model_cache:
            return self.model_cache[tool_name]

        fields: Dict[str, Tuple[Any, Any]] = {}
        for param_name, param_info in params.items():
            python_type = self._map_type(param_info)
            field_args = self._field_args(param_name, param_info)

            if param_info.get("required", False):
                fields[param_name] = (python_type, Field(..., **field_args))
            else:
                fields[param_name] = (Optional[python_type], Field(None, **field_args))

        model_name = "".join(part.title() for part in tool_name.split("_")) + "Parameters"
        model_class = create_model(model_name, __base__=_StrictRecord, **fields)

        self.model_cache[tool_name] = model_class
        return model_class

    @staticmethod
    def _field_args(param_name: str, param_info: Dict[str, Any]) -> Dict[str, Any]:
        field_args: Dict[str, Any] = {
            "description": param_info.get("description", f"Parameter: {param_name}"),
        }
        if "minimum" in param_info:
            field_args["ge"] = param_info["minimum"]
        if "maximum" in param_info:
            field_args["le"] = param_info["maximum"]
        return field_args

    def signature(self, params: Dict[str, Dict[str, Any]]) -> inspect.Signature:
        """
        Keyword-only call signature mirroring a tool's parameters

        Used to publish each tool's fields, types and bounds over MCP;
        optional parameters default to None.
        """
        parameters = []
        for param_name, param_info in params.items():
            python_type = self._map_type(param_info)
            field = Field(**self._field_args(param_name, param_info))

            if param_info.get("required", False):
                annotation = Annotated[python_type, field]
                default = inspect.Parameter.empty
            else:
                annotation = Annotated[Optional[python_type], field]
                default = None

            parameters.append(
                inspect.Parameter(param_name, inspect.Parameter.KEYWORD_ONLY, default=default, annotation=annotation)
            )
        return inspect.Signature(parameters, return_annotation=str)

    def _map_type(self, param_info: Dict[str, Any]) -> Any:
        """Map JSON schema types to Python types"""
        enum_values = param_info.get("enum")
        if enum_values:
            return Literal[tuple(enum_values)]

        json_type = param_info.get("type", "string")
        if json_type == "array" and "items" in param_info:
            item_type = _TYPE_MAPPING.get(param_info["items"], Any)
            return List[item_type]
        return _TYPE_MAPPING.get(json_type, str)

    def validate_parameters(
        self,
        tool_name: str,
        params_config: Dict[str, Dict[str, Any]],
        input_data: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Validate arguments and return them with unset optionals dropped

        Raises:
            FreshdeskError: VALIDATION kind, with per-field errors in details
        """
        if input_data is None:
            input_data = {}
        if not isinstance(input_data, dict):
            raise FreshdeskError(ErrorKind.VALIDATION, f"Arguments for {tool_name} must be an object")

        model_class = self.create_dynamic_model(tool_name, params_config)
        try:
            validated_model = model_class(**input_data)
        except ValidationError as e:
            errors = [
                {
                    "field": ".".join(str(loc) for loc in err["loc"]),
                    "message": err["msg"],
                    "code": err["type"],
                }
                for err in e.errors()
            ]
            summary = "; ".join(f"{err['field']}: {err['message']}" for err in errors)
            logger.warning(f"⚠️ Validation failed for {tool_name}: {summary}")
            raise FreshdeskError(
                ErrorKind.VALIDATION,
                f"Invalid arguments for {tool_name}: {summary}",
                details={"errors": errors},
            ) from None

        logger.debug(f"✅ Pydantic validation successful for {tool_name}")
        return validated_model.model_dump(exclude_none=True)

    def json_schema(self, tool_name: str, params_config: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """JSON schema of a tool's parameters, for tool listings"""
        return self.create_dynamic_model(tool_name, params_config).model_json_schema()
