from .pydantic_validator import PydanticParameterValidator

__all__ = ['PydanticParameterValidator']
