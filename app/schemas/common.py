"""Schemas shared by all endpoints."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ErrorResponse(BaseModel):
    detail: str
    type: str | None = None


class HealthResponse(CamelModel):
    status: str
    proposal_id: int
    environment: str
