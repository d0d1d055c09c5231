"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation. Pydantic
models enforce field types at runtime and generate JSON Schema that
appears in the /docs UI.

HOW: Each endpoint pair (request + response) has its own model. Edit
commands are a discriminated union on the ``type`` field, mirroring the
engine's SetText / SetTiming / SetSpeaker commands.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Enum values match internal constants exactly (format keys)
- Response models never expose internal implementation details
- Timing checks beyond "is a number" happen in the engine (InvalidTiming)
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from caption_studio.config import (
    DEFAULT_MAX_CHARS_PER_LINE,
    DEFAULT_MAX_DURATION_S,
    DEFAULT_MIN_DURATION_S,
)
from caption_studio.core.model import CaptionEvent


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ExportFormat(str, Enum):
    """Available export format identifiers.

    RULES:
    - Values match keys in caption_studio.formatters.FORMATTERS exactly
    """

    srt = "srt"
    json = "json"


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class CaptionEventModel(BaseModel):
    """One caption as exposed over HTTP."""

    id: str = Field(description="Stable caption identifier.")
    start_time: float = Field(description="Start time in seconds.")
    end_time: float = Field(description="End time in seconds.")
    text: str = Field(description="Caption text; may contain newlines.")
    original_text: Optional[str] = Field(
        default=None, description="Text before the first translation, if translated."
    )
    speaker: Optional[str] = Field(default=None, description="Speaker label, if known.")
    confidence: Optional[float] = Field(
        default=None, description="Transcription confidence in [0, 1], if reported."
    )

    @classmethod
    def from_event(cls, event: CaptionEvent) -> CaptionEventModel:
        return cls(
            id=event.id,
            start_time=event.start_time,
            end_time=event.end_time,
            text=event.text,
            original_text=event.original_text,
            speaker=event.speaker,
            confidence=event.confidence,
        )


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ProjectCreateRequest(BaseModel):
    """Settings for a new project.

    RULES:
    - user_id reopens that user's saved project and enables autosave
    - Caption limits default to 42 chars/line and 1-6 seconds
    """

    media_name: Optional[str] = Field(default=None, description="Display name of the media.")
    user_id: Optional[str] = Field(
        default=None, description="Owner; enables loading and autosaving the project."
    )
    max_chars_per_line: int = Field(
        default=DEFAULT_MAX_CHARS_PER_LINE, gt=0, description="Maximum characters per line."
    )
    min_duration: float = Field(
        default=DEFAULT_MIN_DURATION_S, ge=0, description="Minimum caption duration (s)."
    )
    max_duration: float = Field(
        default=DEFAULT_MAX_DURATION_S, gt=0, description="Maximum caption duration (s)."
    )
    target_language: Optional[str] = Field(
        default=None, description="Default translation target (ISO 639-1 code)."
    )


class SetTextCommand(BaseModel):
    type: Literal["set_text"] = Field(description="Command tag.")
    text: str = Field(description="New caption text.")


class SetTimingCommand(BaseModel):
    type: Literal["set_timing"] = Field(description="Command tag.")
    start: float = Field(description="New start time in seconds.")
    end: float = Field(description="New end time in seconds; must be after start.")


class SetSpeakerCommand(BaseModel):
    type: Literal["set_speaker"] = Field(description="Command tag.")
    speaker: Optional[str] = Field(default=None, description="New speaker label, or null.")


EditCommandRequest = Annotated[
    Union[SetTextCommand, SetTimingCommand, SetSpeakerCommand],
    Field(discriminator="type"),
]


class EditRequest(BaseModel):
    """One edit applied to the project's draft.

    RULES:
    - commit=false leaves the edit in the draft (user still typing)
    - commit=true also checkpoints the draft into the history
    """

    command: EditCommandRequest = Field(description="The edit to apply.")
    commit: bool = Field(default=False, description="Commit the draft after applying.")


class OffsetRequest(BaseModel):
    """Global timing shift."""

    delta: float = Field(description="Seconds to add to every caption (negative shifts earlier).")


class TranslateRequest(BaseModel):
    """Translation request body."""

    target_language: Optional[str] = Field(
        default=None,
        description="ISO 639-1 code (e.g. 'es'); defaults to the project's target language.",
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ProjectResponse(BaseModel):
    """Full project state.

    RULES:
    - status reflects background processing (idle/uploading/analyzing/...)
    - error is only set when status is 'error'
    - dirty is true when the draft has uncommitted edits
    """

    id: str = Field(description="Project identifier.")
    status: str = Field(description="Processing status.")
    media_name: str = Field(description="Display name of the media.")
    detected_language: Optional[str] = Field(
        default=None, description="Language reported by the last generation."
    )
    events: List[CaptionEventModel] = Field(description="Captions in document order.")
    can_undo: bool = Field(description="Whether undo is available.")
    can_redo: bool = Field(description="Whether redo is available.")
    dirty: bool = Field(description="Whether the draft has uncommitted edits.")
    error: Optional[str] = Field(default=None, description="Last error message.")
    message: Optional[str] = Field(default=None, description="Last progress message.")
    created_at: float = Field(description="Creation timestamp (Unix epoch seconds).")
    updated_at: float = Field(description="Last update timestamp (Unix epoch seconds).")


class ProjectAcceptedResponse(BaseModel):
    """Returned when a background operation is started."""

    id: str = Field(description="Project identifier.")
    status: str = Field(description="New processing status.")


class ActiveCaptionResponse(BaseModel):
    """Active caption(s) at a playback time."""

    time: float = Field(description="Queried playback time in seconds.")
    active: Optional[CaptionEventModel] = Field(
        default=None, description="First caption (by position) containing the time."
    )
    all_active: List[CaptionEventModel] = Field(
        description="Every caption containing the time, in document order."
    )


class PlaybackTimeRequest(BaseModel):
    """A playback time reported by the client's player."""

    time: float = Field(ge=0, description="Player clock in seconds.")


class PlaybackSeekRequest(BaseModel):
    """Seek by time, or jump to the start of a caption (pausing first)."""

    time: Optional[float] = Field(default=None, ge=0, description="Target time in seconds.")
    event_id: Optional[str] = Field(
        default=None, description="Caption to jump to; takes precedence over time."
    )


class PlaybackResponse(BaseModel):
    """Sync state the client applies to its player and caption overlay."""

    position: float = Field(description="Known playback position in seconds.")
    seeking: bool = Field(description="True until the client reports the seek finished.")
    active: Optional[CaptionEventModel] = Field(
        default=None, description="Caption shown at the position."
    )
    active_revision: int = Field(
        description="Incremented whenever the shown caption changes, including edits to it."
    )
    pending_seek: Optional[float] = Field(
        default=None, description="Time the client's player should seek to."
    )
    pause_requested: bool = Field(description="Whether the client's player should pause.")


class CaptionIssueModel(BaseModel):
    """One readability problem found by validation."""

    event_id: str = Field(description="Caption the issue belongs to.")
    kind: str = Field(description="line_too_long, too_short, too_long or invalid_timing.")
    message: str = Field(description="Human-readable description.")


class FormatInfo(BaseModel):
    """Description of an available export format."""

    key: str = Field(description="Format identifier used in API requests.")
    name: str = Field(description="Human-readable format name.")
    suffix: str = Field(description="File suffix produced (e.g. '.srt').")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
