"""Shared Pydantic configuration and base models."""

from pydantic import BaseModel, ConfigDict


class BaseConfig(BaseModel):
    """Base configuration for all mutable Pydantic models in the project."""

    model_config = ConfigDict(
        validate_assignment=True,
        arbitrary_types_allowed=True,
        use_enum_values=False,
        strict=False,
        validate_default=True,
    )


class FrozenModel(BaseModel):
    """Base for immutable value objects (blocks, windows, batches, results)."""

    model_config = ConfigDict(
        frozen=True,
        arbitrary_types_allowed=True,
        strict=False,
    )
