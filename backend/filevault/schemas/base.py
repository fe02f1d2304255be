"""Base schema classes with camelCase alias generation.

Python code stays snake_case; API JSON is camelCase.
"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Plain API payloads."""
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class CamelORMModel(CamelModel):
    """Response payloads read straight off SQLAlchemy objects."""
    model_config = {"from_attributes": True}
