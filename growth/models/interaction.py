"""
Tracked interaction payloads.

Each interaction type is its own variant carrying only the fields its score
increment needs. Unknown types are rejected here, at the boundary, so the
scoring code never sees an untyped bag.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from growth.core.errors import ValidationError


class _Interaction(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class PageViewInteraction(_Interaction):
    type: Literal["page_view"] = "page_view"
    page: Optional[str] = None


class ScrollDepthInteraction(_Interaction):
    type: Literal["scroll_depth"] = "scroll_depth"
    depth: float = Field(ge=0, le=100, validation_alias=AliasChoices("depth", "scrollDepth"))


class TimeOnPageInteraction(_Interaction):
    type: Literal["time_on_page"] = "time_on_page"
    time_spent: float = Field(
        ge=0,
        validation_alias=AliasChoices("time_spent", "timeSpent", "timeSpentSeconds"),
    )  # seconds


class CtaClickInteraction(_Interaction):
    type: Literal["cta_click"] = "cta_click"
    cta_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("cta_id", "ctaId"))


class ToolStartInteraction(_Interaction):
    type: Literal["tool_start"] = "tool_start"
    tool_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("tool_name", "toolName"))


class ToolCompleteInteraction(_Interaction):
    type: Literal["tool_complete"] = "tool_complete"
    tool_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("tool_name", "toolName"))


class ContentEngagementInteraction(_Interaction):
    type: Literal["content_engagement"] = "content_engagement"
    content_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("content_id", "contentId"))


class FormSubmissionInteraction(_Interaction):
    type: Literal["form_submission"] = "form_submission"
    form_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("form_id", "formId"))


class WebinarRegistrationInteraction(_Interaction):
    type: Literal["webinar_registration"] = "webinar_registration"
    webinar_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("webinar_id", "webinarId"))


class TrackedInteraction(_Interaction):
    """Catalogued tracking events without a formula of their own."""

    type: Literal[
        "section_view",
        "tool_interaction",
        "exit_intent",
        "session_start",
        "session_end",
        "content_download",
    ]


Interaction = Annotated[
    Union[
        PageViewInteraction,
        ScrollDepthInteraction,
        TimeOnPageInteraction,
        CtaClickInteraction,
        ToolStartInteraction,
        ToolCompleteInteraction,
        ContentEngagementInteraction,
        FormSubmissionInteraction,
        WebinarRegistrationInteraction,
        TrackedInteraction,
    ],
    Field(discriminator="type"),
]

_interaction_adapter: TypeAdapter = TypeAdapter(Interaction)


def parse_interaction(interaction_type: Optional[str], data: Optional[Dict[str, Any]] = None):
    """Validate a raw (type, data) pair into its typed variant."""
    if not interaction_type or not str(interaction_type).strip():
        raise ValidationError("interaction type is required")
    if data is not None and not isinstance(data, dict):
        raise ValidationError("interaction data must be an object")

    payload = dict(data or {})
    payload["type"] = str(interaction_type).strip()
    try:
        return _interaction_adapter.validate_python(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != payload["type"])
        reason = first.get("msg", "invalid interaction")
        if first.get("type") == "union_tag_invalid":
            raise ValidationError(f"unknown interaction type: {payload['type']}") from exc
        raise ValidationError(f"invalid {payload['type']} interaction: {location or 'payload'} {reason}".strip()) from exc
