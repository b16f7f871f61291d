"""Validation messages and page state returned by navigation and finish."""

from dataclasses import dataclass, field
from typing import List

SEVERITY_ERROR = "error"

REQUIRED_FIELD_DETAIL = "{label} is required."
INCOMPLETE_SUMMARY = "Required fields are incomplete."


@dataclass(frozen=True)
class ValidationMessage:
    severity: str
    detail: str


@dataclass
class PageState:
    """
    Outcome of a finish attempt.

    Properties:
        succeeded: False while any in-scope required field is empty
        messages: one message per missing field, in declaration order
        summary: set only on failure
        auto_close_interval_ms: how long the view layer keeps messages up
    """

    succeeded: bool = True
    messages: List[ValidationMessage] = field(default_factory=list)
    summary: str = ""
    auto_close_interval_ms: int = 0

    def add_missing(self, label: str) -> None:
        self.messages.append(
            ValidationMessage(severity=SEVERITY_ERROR, detail=REQUIRED_FIELD_DETAIL.format(label=label))
        )
        self.succeeded = False
        self.summary = INCOMPLETE_SUMMARY


@dataclass(frozen=True)
class NavigationResult:
    succeeded: bool
    can_back: bool
    can_next: bool
    can_finish: bool
