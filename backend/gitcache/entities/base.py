"""Base entity shared by documents stored in MongoDB."""

from pydantic import BaseModel, ConfigDict, Field


class BaseEntity(BaseModel):
    """Entities are keyed by a string ``_id`` chosen by the caller."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str = Field(..., alias="_id")
