"""
Error taxonomy for the query pipeline.

Every failure raised while serving a request derives from ``CopilotError``
and knows its category, the pipeline stage it happened in, and the HTTP
status the API layer maps it to.  ``ConfigurationError`` is the only one
that is not per-request: it is raised at startup and is fatal.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from ga4_copilot.governance.validator import ValidationResult


class Stage(str, Enum):
    """Orchestrator states, in pipeline order."""

    RECEIVED = "received"
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    BUILDING = "building"
    EXECUTING = "executing"
    NORMALIZING = "normalizing"
    INSIGHTING = "insighting"
    SUMMARIZING = "summarizing"
    DONE = "done"


class ConfigurationError(RuntimeError):
    """Required credentials or identifiers are missing at startup."""


class CopilotError(Exception):
    category = "internal"
    status_code = 500

    def __init__(self, message: str, stage: Stage | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "category": self.category}
        if self.stage is not None:
            body["stage"] = self.stage.value
        return body


class QueryValidationError(CopilotError):
    """Names outside the allow-list, missing fields or a malformed date range."""

    category = "validation"
    status_code = 400

    def __init__(self, result: ValidationResult, stage: Stage = Stage.VALIDATING):
        super().__init__(" ".join(result.messages()), stage)
        self.result = result

    def payload(self) -> dict[str, Any]:
        body = super().payload()
        body.update(self.result.as_dict())
        return body


class ExtractionError(CopilotError):
    """The language model produced no usable tool call.

    422 when the model answered but gave us nothing to run; 502 when the
    model service itself could not be reached.
    """

    category = "extraction"
    status_code = 422

    def __init__(self, message: str, stage: Stage = Stage.EXTRACTING, status_code: int | None = None):
        super().__init__(message, stage)
        if status_code is not None:
            self.status_code = status_code


class BackendError(CopilotError):
    """The analytics backend call failed or returned an unusable response."""

    category = "backend"
    status_code = 502

    def __init__(self, message: str, stage: Stage = Stage.EXECUTING):
        super().__init__(message, stage)


class RowShapeError(BackendError):
    """A backend row carries more values than the request asked for."""

    def __init__(self, message: str):
        super().__init__(message, Stage.NORMALIZING)


class SummarizationError(CopilotError):
    """The second model call failed after the report was fetched.

    The rows and insights are known good at this point, so they travel with
    the error and are returned to the caller as a fallback.
    """

    category = "summarization"
    status_code = 502

    def __init__(
        self,
        message: str,
        rows: list[dict[str, str]],
        insights: list[str],
    ):
        super().__init__(message, Stage.SUMMARIZING)
        self.rows = rows
        self.insights = insights

    def payload(self) -> dict[str, Any]:
        body = super().payload()
        body["rows"] = self.rows
        body["insights"] = self.insights
        return body
