"""
Pydantic models for the voice operator.
Defines the page map, form scan, tool call and transport envelope structures.
"""

import time
from typing import Any, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> dict[str, Any]:
        """Dump for transport (camelCase, no null fields)."""
        return self.model_dump(by_alias=True, exclude_none=True)


def now_ms() -> float:
    return time.time() * 1000


# ==============================================================================
# Page Map
# ==============================================================================

class BoundingBox(WireModel):
    """Element rectangle in page coordinates."""
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


class ActionState(WireModel):
    """Interaction state of an action."""
    disabled: bool = False
    checked: bool | None = None
    expanded: bool | None = None
    selected: bool | None = None


class ActionInfo(WireModel):
    """An interactive control the user can activate."""
    id: str
    role: str
    label: str
    state: ActionState = Field(default_factory=ActionState)
    bbox: BoundingBox | None = None
    is_risky: bool = False
    href: str | None = None


class FormFieldInfo(WireModel):
    """A fillable form field."""
    id: str
    type: str
    label: str
    value: str = ""
    placeholder: str | None = None
    required: bool = False
    disabled: bool = False
    options: list[str] | None = None
    validation_error: str | None = None
    autocomplete: str | None = None
    bbox: BoundingBox | None = None


class HeadingInfo(WireModel):
    """Document heading."""
    level: int
    text: str
    id: str | None = None


class SectionInfo(WireModel):
    """Prose section keyed by its heading."""
    id: str
    heading: str
    snippet: str
    level: int = 2


class FocusInfo(WireModel):
    """Currently focused element."""
    id: str | None = None
    role: str | None = None
    label: str | None = None
    type: str | None = None


class PageMap(WireModel):
    """Bounded structural snapshot of a page."""
    url: str
    title: str
    timestamp: float = Field(default_factory=now_ms)
    headings: list[HeadingInfo] = Field(default_factory=list)
    sections: list[SectionInfo] = Field(default_factory=list)
    actions: list[ActionInfo] = Field(default_factory=list)
    fields: list[FormFieldInfo] = Field(default_factory=list)
    focus: FocusInfo | None = None
    alerts: list[str] = Field(default_factory=list)
    has_login: bool = False
    has_captcha: bool = False
    has_checkout: bool = False


# ==============================================================================
# Form Scan
# ==============================================================================

QuestionType = Literal[
    "short_text", "long_text", "radio", "checkbox", "dropdown", "select",
    "date", "time", "file_upload", "linear_scale", "unknown",
]

TEXT_QUESTION_TYPES = {"short_text", "long_text", "date", "time"}


class FormOption(WireModel):
    """One selectable option of a question."""
    id: str
    label: str
    selected: bool = False


class FormQuestion(WireModel):
    """A semantic question grouping one or more controls."""
    question_id: str
    question_text: str
    type: QuestionType = "unknown"
    required: bool = False
    options: list[FormOption] | None = None
    current_answer: str | None = None
    field_id: str | None = None
    dropdown_action_id: str | None = None


class FormScanResult(WireModel):
    """Result of scanning a form."""
    form_title: str
    form_description: str = ""
    questions: list[FormQuestion] = Field(default_factory=list)
    submit_action_id: str | None = None
    total_questions: int = 0
    answered_questions: int = 0


# ==============================================================================
# Accessibility Audit
# ==============================================================================

class AuditIssue(WireModel):
    """One accessibility problem found on the page."""
    type: Literal["error", "warning", "info"]
    element: str
    problem: str
    suggestion: str

    def describe(self) -> str:
        return f"[{self.type.upper()}] {self.problem} -> {self.suggestion}"


class AccessibilityAudit(WireModel):
    """Scored result of an accessibility audit."""
    score: int
    issues: list[AuditIssue] = Field(default_factory=list)
    summary: str = ""

    def count(self, kind: str) -> int:
        return sum(1 for issue in self.issues if issue.type == kind)


# ==============================================================================
# Tools
# ==============================================================================

class ToolResult(WireModel):
    """Outcome of executing one tool on the page."""
    success: bool
    message: str
    data: Any | None = None


class ToolCall(BaseModel):
    """A single tool invocation issued to the page."""
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class PendingAction(BaseModel):
    """A risky tool call held back until the user confirms."""
    tool_call: ToolCall
    description: str


class UserProfile(WireModel):
    """Profile data used to fill forms."""
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    email: str = ""
    phone: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    date_of_birth: str = ""
    company: str = ""
    job_title: str = ""

    @model_validator(mode="before")
    @classmethod
    def _flatten_address(cls, data: Any) -> Any:
        # Profile files may nest street/city/state/zip/country under "address"
        if isinstance(data, dict) and isinstance(data.get("address"), dict):
            data = {**data["address"], **{k: v for k, v in data.items() if k != "address"}}
        return data

    def value_for(self, key: str) -> str:
        """Look up a profile value by its camelCase key."""
        for name, field in type(self).model_fields.items():
            if key in (name, field.alias):
                return getattr(self, name)
        return ""


# ==============================================================================
# Transport
# ==============================================================================

InboundType = Literal["page_map_update", "user_transcript", "tool_result", "register_tab"]
OutboundType = Literal["speak", "execute_tool", "highlight_action", "status_update"]


class Envelope(BaseModel):
    """JSON message exchanged over the per-tab connection."""
    model_config = ConfigDict(populate_by_name=True)

    type: str
    tab_id: str = Field(alias="tabId")
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tab_id", mode="before")
    @classmethod
    def _coerce_tab_id(cls, value: Any) -> str:
        return str(value)

    def wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
