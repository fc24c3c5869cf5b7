"""Pydantic models for page-state detection, dialogs and monitoring."""

from __future__ import annotations

from typing import Literal

import pydantic

from extimpact.utils import serialization

PageStateName = Literal["normal", "blocked", "unknown"]

BlockingType = Literal["browser_dialog", "custom_modal"]

DialogAction = Literal["accept", "dismiss"]


class BlockingElement(pydantic.BaseModel):
    """The UI artifact preventing automated interaction."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    type: BlockingType
    message: str
    selector: str | None = None
    can_auto_handle: bool


class PageState(pydantic.BaseModel):
    """One classification of the page, recomputed on every check."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    state: PageStateName
    is_blocked: bool
    blocking_element: BlockingElement | None = None
    recommendations: list[str] = pydantic.Field(default_factory=list)
    execution_time: float = 0.0
    auto_handled: bool = False

    @classmethod
    def normal(cls, execution_time: float = 0.0) -> PageState:
        return cls(state="normal", is_blocked=False, execution_time=execution_time)

    @classmethod
    def unknown(cls, reason: str, execution_time: float = 0.0) -> PageState:
        return cls(
            state="unknown",
            is_blocked=False,
            recommendations=[f"Page state could not be determined: {reason}"],
            execution_time=execution_time,
        )


class ElementBounds(pydantic.BaseModel):
    """Rendered size of a dialog container."""

    width: float
    height: float


class DialogElement(pydantic.BaseModel):
    """Identity of a dialog container in the DOM."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    tag_name: str
    bounds: ElementBounds | None = None


class DialogButton(pydantic.BaseModel):
    """A clickable control inside a dialog."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    label: str
    is_affirmative: bool
    is_negative: bool = False
    is_close: bool = False


class DialogRecord(pydantic.BaseModel):
    """A visible in-page modal, as seen by one detection call."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    element: DialogElement
    message: str
    buttons: list[DialogButton] = pydantic.Field(default_factory=list)
    selector: str
    matched_pattern: str = ""


class DialogSummary(pydantic.BaseModel):
    """Counts over one detection call."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    custom_dialogs: int = 0
    browser_dialogs: int = 0
    visible_dialogs: int = 0


class DialogDetection(pydantic.BaseModel):
    """Result of :meth:`DialogManager.detect`."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    custom_dialogs: list[DialogRecord] = pydantic.Field(default_factory=list)
    browser_dialog_visible: bool = False
    browser_dialog_message: str | None = None
    summary: DialogSummary = pydantic.Field(default_factory=DialogSummary)
    viewport: ElementBounds | None = None


class StateTransition(pydantic.BaseModel):
    """An edge observed by the monitor."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    from_state: PageStateName
    to_state: PageStateName
    at: str
    auto_handled: bool = False


class MonitoringStatus(pydantic.BaseModel):
    """Snapshot of the monitor's session, safe to serialise."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    active: bool
    interval_ms: int | None = None
    auto_handle: bool | None = None
    last_state: PageState | None = None
    ticks: int = 0
    skipped_ticks: int = 0
    failed_ticks: int = 0
    transitions: list[StateTransition] = pydantic.Field(default_factory=list)


class MonitorStopResult(pydantic.BaseModel):
    """Outcome of stopping the monitor; stopping is always a success."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    success: bool = True
    was_active: bool
    ticks: int = 0
