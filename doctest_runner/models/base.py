"""Base model configuration for configuration structures."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Base model with frozen, strict-keyed configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")
