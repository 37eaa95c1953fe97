"""
Domain models: diagnostics, mock responses, test results and result-channel messages.

Every message crossing an isolation boundary is one of the tagged records below;
`encode_message` / `decode_message` convert them to and from plain JSON-mode dicts.
"""

from enum import Enum, IntEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

EnvValue = Union[str, int, float]

TEST_PASSED_MESSAGE = "Test passed successfully"


# ---------------------------------------------------------------------------
# Validator output
# ---------------------------------------------------------------------------


class Severity(IntEnum):
    """Editor marker severities."""

    HINT = 1
    INFO = 2
    WARNING = 4
    ERROR = 8


class DiagnosticRange(BaseModel):
    """1-based lines and columns; line 0 when the parser gave no position."""

    start_line: int
    start_col: int
    end_line: int
    end_col: int


class Diagnostic(BaseModel):
    message: str
    severity: Severity
    range: DiagnosticRange


class ValidationResult(BaseModel):
    is_valid: bool
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    messages: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Mock response
# ---------------------------------------------------------------------------


class ContentType(str, Enum):
    JSON = "json"
    HTML = "html"


class MockResponse(BaseModel):
    """
    The response a test script inspects.

    A bytes body is the raw payload and is decoded according to content_type;
    any other body is an already-structured JSON value.
    """

    model_config = ConfigDict(frozen=True)

    body: Any = None
    content_type: ContentType = ContentType.JSON
    headers: dict[str, str] = Field(default_factory=dict)
    cookies: list[str] = Field(default_factory=list)
    status_code: int = Field(default=200, ge=100, le=599)
    response_time_ms: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Test results and channel messages
# ---------------------------------------------------------------------------


class TestStatus(str, Enum):
    SUCCESS = "success"
    FAIL = "fail"


class TestResult(BaseModel):
    __test__ = False  # not a pytest class

    name: str
    status: TestStatus
    message: str


class TestResultMessage(BaseModel):
    __test__ = False

    type: Literal["testResult"] = "testResult"
    result: TestResult


class SetEnvMessage(BaseModel):
    type: Literal["setEnv"] = "setEnv"
    key: str
    value: EnvValue


class ConsoleMessage(BaseModel):
    type: Literal["console"] = "console"
    level: Literal["log", "info", "warn", "error", "debug"] = "log"
    args: list[Any] = Field(default_factory=list)


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str


class DoneMessage(BaseModel):
    """Completion signal: the last message of every execution."""

    type: Literal["done"] = "done"


ResultMessage = Annotated[
    Union[TestResultMessage, SetEnvMessage, ConsoleMessage, ErrorMessage, DoneMessage],
    Field(discriminator="type"),
]

_message_adapter: TypeAdapter[Any] = TypeAdapter(ResultMessage)


def encode_message(message: BaseModel) -> dict[str, Any]:
    """Message -> plain JSON-mode dict (safe to pickle, queue or serialize)."""
    return message.model_dump(mode="json")


def decode_message(payload: dict[str, Any]) -> Any:
    """Plain dict -> typed message. Raises pydantic.ValidationError on unknown shapes."""
    return _message_adapter.validate_python(payload)


# ---------------------------------------------------------------------------
# Caller-side report
# ---------------------------------------------------------------------------


class ExecutionReport(BaseModel):
    """Everything one execution reported, accumulated in delivery order."""

    results: list[TestResult] = Field(default_factory=list)
    console: list[ConsoleMessage] = Field(default_factory=list)
    environment_changes: list[SetEnvMessage] = Field(default_factory=list)
    environment: dict[str, EnvValue] = Field(default_factory=dict)
    error: str | None = None
    completed: bool = False

    @property
    def passed(self) -> bool:
        return self.error is None and all(
            r.status == TestStatus.SUCCESS for r in self.results
        )
