"""
Request/response schemas for the HTTP service.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from pmsandbox.engines.hosts import HostKind
from pmsandbox.engines.validator import ValidatorMode
from pmsandbox.models import EnvValue, MockResponse

T = TypeVar("T")


class ValidateIn(BaseModel):
    source: str
    mode: ValidatorMode | None = None


class RunIn(BaseModel):
    source: str
    response: MockResponse = Field(default_factory=MockResponse)
    environment: dict[str, EnvValue] = Field(default_factory=dict)
    globals: dict[str, EnvValue] = Field(default_factory=dict)
    variables: dict[str, EnvValue] = Field(default_factory=dict)
    collection_variables: dict[str, EnvValue] = Field(default_factory=dict)
    host: HostKind | None = None
    mode: ValidatorMode | None = None
    timeout: float | None = Field(default=None, gt=0)


class Envelope(BaseModel, Generic[T]):
    """Standard response envelope: { success, message, data }."""

    success: bool = True
    message: str | None = None
    data: T | None = None


def envelope(data: Any = None, *, success: bool = True, message: str | None = None) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    return {"success": success, "message": message, "data": data}
