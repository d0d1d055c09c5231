"""FastAPI application hosting caption projects over HTTP.

WHY: A browser editor (or curl, or another tool) needs to drive the
caption engine remotely: create a project, generate captions from an
uploaded media file, edit and commit, undo/redo, shift timing,
translate, keep a player in step with the captions, and download
exports. FastAPI provides request validation, OpenAPI docs, and
background task support.

HOW: A single FastAPI app exposes project endpoints grouped by tags.
Each project is a CaptionProject held in the ProjectRegistry. Generation
and translation are started with BackgroundTasks and run as coroutines
on the server's event loop, so they never touch a project from another
thread; the client polls GET /projects/{id} for the status.

RULES:
- All endpoints have OpenAPI descriptions on every parameter and response
- Error responses use a consistent ErrorResponse schema
- 404 unknown project/event, 409 operation already running,
  400 unsupported upload, 422 invalid timing or body, 429 registry full,
  500 saved project unreadable
- File validation checks extension against SUPPORTED_MEDIA_FORMATS
- Edits are allowed while a background operation runs; its result
  replaces them when it lands
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.responses import Response

from caption_studio import __version__
from caption_studio.api.client import GeminiClient, GenerationFailure, TranslationFailure
from caption_studio.audio.preprocess import MediaDecodeError
from caption_studio.config import SUPPORTED_MEDIA_FORMATS
from caption_studio.core.document import (
    EditCommand,
    InvalidTiming,
    SetSpeaker,
    SetText,
    SetTiming,
)
from caption_studio.core.model import ProjectSettings
from caption_studio.formatters import FORMATTERS
from caption_studio.server.models import (
    ActiveCaptionResponse,
    CaptionEventModel,
    CaptionIssueModel,
    EditRequest,
    ErrorResponse,
    ExportFormat,
    FormatInfo,
    HealthResponse,
    OffsetRequest,
    PlaybackResponse,
    PlaybackSeekRequest,
    PlaybackTimeRequest,
    ProjectAcceptedResponse,
    ProjectCreateRequest,
    ProjectResponse,
    SetSpeakerCommand,
    SetTextCommand,
    TranslateRequest,
)
from caption_studio.server.projects import (
    ProjectEntry,
    ProjectRegistry,
    ProjectStatus,
    RegistryFull,
)
from caption_studio.storage import LocalProjectStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and registry setup
# ---------------------------------------------------------------------------

registry = ProjectRegistry(store=LocalProjectStore())


async def _periodic_cleanup() -> None:
    """Drop idle projects every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        registry.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Caption Studio API",
    description=(
        "REST API for editing timed captions against a media timeline. "
        "Generate captions from audio/video with Gemini, edit with undo/redo, "
        "shift timing, translate, and export SRT or JSON."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _entry_to_response(entry: ProjectEntry) -> ProjectResponse:
    """Convert a registry entry to a ProjectResponse Pydantic model."""
    project = entry.project
    return ProjectResponse(
        id=entry.id,
        status=entry.status.value,
        media_name=project.media_name,
        detected_language=project.detected_language,
        events=[CaptionEventModel.from_event(e) for e in project.events],
        can_undo=project.can_undo(),
        can_redo=project.can_redo(),
        dirty=project.is_dirty,
        error=entry.error,
        message=entry.message,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def _get_entry(project_id: str) -> ProjectEntry:
    entry = registry.get(project_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Project not found: {}".format(project_id))
    return entry


def _validate_file_extension(filename: str) -> None:
    """Raise HTTPException if the file extension is not supported."""
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_MEDIA_FORMATS:
        sorted_formats = sorted(SUPPORTED_MEDIA_FORMATS)
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted_formats)
            ),
        )


def _to_command(request: EditRequest) -> EditCommand:
    """Translate the HTTP command body into an engine command."""
    command = request.command
    if isinstance(command, SetTextCommand):
        return SetText(command.text)
    if isinstance(command, SetSpeakerCommand):
        return SetSpeaker(command.speaker)
    try:
        return SetTiming(command.start, command.end)
    except InvalidTiming as exc:
        raise HTTPException(status_code=422, detail=str(exc))


def _after_edit(entry: ProjectEntry) -> ProjectResponse:
    registry.touch(entry.id)
    entry.playback.refresh()
    if entry.status == ProjectStatus.IDLE and len(entry.project.events):
        registry.set_status(entry.id, ProjectStatus.READY)
    return _entry_to_response(entry)


# ---------------------------------------------------------------------------
# Background operations
# ---------------------------------------------------------------------------


async def _run_generation(project_id: str, media: bytes, store: ProjectRegistry) -> None:
    """Generate captions for a project from uploaded media bytes.

    WHY: Decoding, resampling and the AI call take tens of seconds; the
    upload request returns at once and this runs afterwards.

    HOW: Calls CaptionProject.generate() with a fresh GeminiClient. The
    first status message marks the preprocessing stage (uploading), the
    rest the AI stage (analyzing).

    RULES:
    - Catches all exceptions and marks the project as 'error'
    - A result dropped because the project was closed changes nothing
    """
    entry = store.get(project_id)
    if entry is None:
        return

    def on_status(message: str) -> None:
        current = store.get(project_id)
        if current is None:
            return
        status = ProjectStatus.ANALYZING if current.message else ProjectStatus.UPLOADING
        store.set_status(project_id, status, message=message)

    try:
        async with GeminiClient() as client:
            events = await entry.project.generate(media, client, on_status=on_status)
    except (MediaDecodeError, GenerationFailure) as exc:
        logger.warning("Generation failed for project %s: %s", project_id, exc)
        store.set_status(project_id, ProjectStatus.ERROR, error=str(exc))
        return
    except Exception as exc:
        logger.exception("Generation crashed for project %s", project_id)
        store.set_status(project_id, ProjectStatus.ERROR, error=str(exc))
        return

    if events is not None:
        store.set_status(
            project_id,
            ProjectStatus.READY,
            message="Generated {} captions.".format(len(events)),
        )


async def _run_translation(project_id: str, target_language: str, store: ProjectRegistry) -> None:
    """Translate a project's captions in the background.

    RULES:
    - Catches all exceptions and marks the project as 'error'
    - On failure the captions are exactly as before the call
    """
    entry = store.get(project_id)
    if entry is None:
        return

    def on_status(message: str) -> None:
        store.set_status(project_id, ProjectStatus.TRANSLATING, message=message)

    try:
        async with GeminiClient() as client:
            events = await entry.project.translate(client, target_language, on_status=on_status)
    except TranslationFailure as exc:
        logger.warning("Translation failed for project %s: %s", project_id, exc)
        store.set_status(project_id, ProjectStatus.ERROR, error=str(exc))
        return
    except Exception as exc:
        logger.exception("Translation crashed for project %s", project_id)
        store.set_status(project_id, ProjectStatus.ERROR, error=str(exc))
        return

    if events is not None:
        store.set_status(project_id, ProjectStatus.READY, message="Translation complete.")


# ---------------------------------------------------------------------------
# Endpoints: Projects
# ---------------------------------------------------------------------------


@app.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=201,
    tags=["projects"],
    summary="Create a caption project",
    description=(
        "Create an empty caption project. With user_id, the user's saved "
        "project is reopened and every commit is autosaved."
    ),
    responses={
        429: {"model": ErrorResponse, "description": "Too many open projects"},
        500: {"model": ErrorResponse, "description": "Saved project is unreadable"},
    },
)
async def create_project(body: Optional[ProjectCreateRequest] = None) -> ProjectResponse:
    body = body or ProjectCreateRequest()
    settings = ProjectSettings(
        max_chars_per_line=body.max_chars_per_line,
        min_duration=body.min_duration,
        max_duration=body.max_duration,
        target_language=body.target_language or ProjectSettings().target_language,
    )
    try:
        entry = registry.create(
            media_name=body.media_name, settings=settings, user_id=body.user_id
        )
    except RegistryFull as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    except ValueError as exc:
        logger.error("Could not open saved project for %s: %s", body.user_id, exc)
        raise HTTPException(status_code=500, detail=str(exc))
    return _entry_to_response(entry)


@app.get(
    "/projects",
    response_model=List[ProjectResponse],
    tags=["projects"],
    summary="List open projects",
    description="Returns every hosted project, oldest first.",
)
async def list_projects() -> List[ProjectResponse]:
    return [_entry_to_response(entry) for entry in registry.list_projects()]


@app.get(
    "/projects/{project_id}",
    response_model=ProjectResponse,
    tags=["projects"],
    summary="Get project state",
    description=(
        "Poll this endpoint to follow generation/translation progress. "
        "Returns the status, the captions and the undo/redo state."
    ),
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def get_project(project_id: str) -> ProjectResponse:
    return _entry_to_response(_get_entry(project_id))


@app.delete(
    "/projects/{project_id}",
    status_code=204,
    tags=["projects"],
    summary="Close a project",
    description=(
        "Close and remove a project. A generation or translation still "
        "running for it finishes without effect."
    ),
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def delete_project(project_id: str) -> Response:
    if not registry.delete(project_id):
        raise HTTPException(status_code=404, detail="Project not found: {}".format(project_id))
    return Response(status_code=204)


@app.post(
    "/projects/{project_id}/generate",
    response_model=ProjectAcceptedResponse,
    status_code=202,
    tags=["processing"],
    summary="Generate captions from media",
    description=(
        "Upload an audio or video file. Its first audio channel is reduced to "
        "16 kHz mono and transcribed in the background; the result replaces "
        "the project's captions. Poll GET /projects/{id} for status."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported file type"},
        404: {"model": ErrorResponse, "description": "Project not found"},
        409: {"model": ErrorResponse, "description": "Another operation is running"},
    },
)
async def generate_captions(
    project_id: str,
    background_tasks: BackgroundTasks,
    file: Annotated[UploadFile, File(description="Audio or video file to caption")],
) -> ProjectAcceptedResponse:
    entry = _get_entry(project_id)

    # Sanitize filename to prevent path traversal
    filename = Path(file.filename or "upload").name
    _validate_file_extension(filename)

    if not registry.begin(project_id, ProjectStatus.UPLOADING):
        raise HTTPException(
            status_code=409,
            detail="Project is busy (current status: {}).".format(entry.status.value),
        )

    content = await file.read()
    entry.project.media_name = filename
    background_tasks.add_task(_run_generation, project_id, content, registry)

    return ProjectAcceptedResponse(id=project_id, status=ProjectStatus.UPLOADING.value)


@app.post(
    "/projects/{project_id}/translate",
    response_model=ProjectAcceptedResponse,
    status_code=202,
    tags=["processing"],
    summary="Translate captions",
    description=(
        "Translate every caption in the background. The text before the first "
        "translation is kept as original_text. Captions the service skips keep "
        "their text."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Project not found"},
        409: {"model": ErrorResponse, "description": "Another operation is running"},
    },
)
async def translate_captions(
    project_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[TranslateRequest] = None,
) -> ProjectAcceptedResponse:
    entry = _get_entry(project_id)
    target = (body.target_language if body else None) or entry.project.settings.target_language

    if not registry.begin(project_id, ProjectStatus.TRANSLATING):
        raise HTTPException(
            status_code=409,
            detail="Project is busy (current status: {}).".format(entry.status.value),
        )

    background_tasks.add_task(_run_translation, project_id, target, registry)
    return ProjectAcceptedResponse(id=project_id, status=ProjectStatus.TRANSLATING.value)


# ---------------------------------------------------------------------------
# Endpoints: Editing
# ---------------------------------------------------------------------------


@app.patch(
    "/projects/{project_id}/events/{event_id}",
    response_model=ProjectResponse,
    tags=["editing"],
    summary="Edit one caption",
    description=(
        "Apply a set_text, set_timing or set_speaker command to the draft. "
        "Pass commit=true to checkpoint it into the undo history as well."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Project or caption not found"},
        422: {"model": ErrorResponse, "description": "Invalid timing or body"},
    },
)
async def edit_event(project_id: str, event_id: str, body: EditRequest) -> ProjectResponse:
    entry = _get_entry(project_id)
    command = _to_command(body)
    if not entry.project.update(event_id, command):
        raise HTTPException(status_code=404, detail="Caption not found: {}".format(event_id))
    if body.commit:
        entry.project.commit()
    return _after_edit(entry)


@app.delete(
    "/projects/{project_id}/events/{event_id}",
    response_model=ProjectResponse,
    tags=["editing"],
    summary="Delete one caption",
    description="Remove a caption and commit immediately.",
    responses={404: {"model": ErrorResponse, "description": "Project or caption not found"}},
)
async def delete_event(project_id: str, event_id: str) -> ProjectResponse:
    entry = _get_entry(project_id)
    if not entry.project.delete(event_id):
        raise HTTPException(status_code=404, detail="Caption not found: {}".format(event_id))
    return _after_edit(entry)


@app.post(
    "/projects/{project_id}/commit",
    response_model=ProjectResponse,
    tags=["editing"],
    summary="Commit the draft",
    description="Checkpoint the draft into the undo history. No-op if nothing changed.",
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def commit_project(project_id: str) -> ProjectResponse:
    entry = _get_entry(project_id)
    entry.project.commit()
    return _after_edit(entry)


@app.post(
    "/projects/{project_id}/undo",
    response_model=ProjectResponse,
    tags=["editing"],
    summary="Undo",
    description="Step back one history entry. Uncommitted draft edits are discarded.",
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def undo(project_id: str) -> ProjectResponse:
    entry = _get_entry(project_id)
    entry.project.undo()
    return _after_edit(entry)


@app.post(
    "/projects/{project_id}/redo",
    response_model=ProjectResponse,
    tags=["editing"],
    summary="Redo",
    description="Step forward one history entry.",
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def redo(project_id: str) -> ProjectResponse:
    entry = _get_entry(project_id)
    entry.project.redo()
    return _after_edit(entry)


@app.post(
    "/projects/{project_id}/offset",
    response_model=ProjectResponse,
    tags=["editing"],
    summary="Shift all caption timings",
    description=(
        "Add delta seconds to every start and end time, clamping at zero, "
        "and commit immediately."
    ),
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def apply_offset(project_id: str, body: OffsetRequest) -> ProjectResponse:
    entry = _get_entry(project_id)
    entry.project.apply_global_offset(body.delta)
    return _after_edit(entry)


# ---------------------------------------------------------------------------
# Endpoints: Queries and export
# ---------------------------------------------------------------------------


@app.get(
    "/projects/{project_id}/active",
    response_model=ActiveCaptionResponse,
    tags=["playback"],
    summary="Caption active at a playback time",
    description=(
        "Returns the first caption (by position) whose inclusive time range "
        "contains the given time, plus every overlapping caption."
    ),
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def active_caption(
    project_id: str,
    time: Annotated[float, Query(ge=0, description="Playback time in seconds.")],
) -> ActiveCaptionResponse:
    entry = _get_entry(project_id)
    draft = entry.project.draft
    active = draft.active_at(time)
    return ActiveCaptionResponse(
        time=time,
        active=CaptionEventModel.from_event(active) if active is not None else None,
        all_active=[CaptionEventModel.from_event(e) for e in draft.all_active_at(time)],
    )


# ---------------------------------------------------------------------------
# Endpoints: Playback sync
# ---------------------------------------------------------------------------


def _playback_response(entry: ProjectEntry) -> PlaybackResponse:
    sync = entry.playback
    active = sync.active
    return PlaybackResponse(
        position=sync.position,
        seeking=sync.is_seeking,
        active=CaptionEventModel.from_event(active) if active is not None else None,
        active_revision=entry.active_revision,
        pending_seek=entry.player.pending_seek,
        pause_requested=entry.player.pause_requested,
    )


@app.get(
    "/projects/{project_id}/playback",
    response_model=PlaybackResponse,
    tags=["playback"],
    summary="Playback sync state",
    description=(
        "Returns the known position, the caption shown there, and any seek or "
        "pause the client's player still has to perform. Captions changed by "
        "background generation or translation are picked up here."
    ),
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def get_playback(project_id: str) -> PlaybackResponse:
    entry = _get_entry(project_id)
    entry.playback.refresh()
    return _playback_response(entry)


@app.post(
    "/projects/{project_id}/playback/tick",
    response_model=PlaybackResponse,
    tags=["playback"],
    summary="Report the player clock",
    description="Natural clock update. Ignored while a seek is in flight.",
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def playback_tick(project_id: str, body: PlaybackTimeRequest) -> PlaybackResponse:
    entry = _get_entry(project_id)
    entry.playback.tick(body.time)
    return _playback_response(entry)


@app.post(
    "/projects/{project_id}/playback/seek",
    response_model=PlaybackResponse,
    tags=["playback"],
    summary="Seek to a time or a caption",
    description=(
        "With event_id, pauses and jumps to the caption's start. Seeks within "
        "the tolerance of the known position are absorbed; otherwise "
        "pending_seek tells the client where to move its player."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Project or caption not found"},
        422: {"model": ErrorResponse, "description": "Neither time nor event_id given"},
    },
)
async def playback_seek(project_id: str, body: PlaybackSeekRequest) -> PlaybackResponse:
    entry = _get_entry(project_id)
    if body.event_id is not None:
        if not entry.playback.seek_to_event(body.event_id):
            raise HTTPException(
                status_code=404, detail="Caption not found: {}".format(body.event_id)
            )
    elif body.time is not None:
        entry.playback.seek(body.time)
    else:
        raise HTTPException(status_code=422, detail="Give a time or an event_id to seek to")
    return _playback_response(entry)


@app.post(
    "/projects/{project_id}/playback/seeking",
    response_model=PlaybackResponse,
    tags=["playback"],
    summary="Report a seek started by the player",
    description="E.g. native scrubbing. Ticks are ignored until the seek finishes.",
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def playback_seeking(project_id: str) -> PlaybackResponse:
    entry = _get_entry(project_id)
    entry.playback.on_seeking()
    return _playback_response(entry)


@app.post(
    "/projects/{project_id}/playback/seeked",
    response_model=PlaybackResponse,
    tags=["playback"],
    summary="Report that a seek finished",
    description="Clears the pending seek/pause and resumes accepting ticks.",
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def playback_seeked(
    project_id: str, body: Optional[PlaybackTimeRequest] = None
) -> PlaybackResponse:
    entry = _get_entry(project_id)
    entry.player.clear()
    entry.playback.on_seeked(body.time if body is not None else None)
    return _playback_response(entry)


@app.get(
    "/projects/{project_id}/issues",
    response_model=List[CaptionIssueModel],
    tags=["editing"],
    summary="Readability issues",
    description=(
        "Lines over the character limit and captions shorter or longer than "
        "the project's duration limits."
    ),
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def caption_issues(project_id: str) -> List[CaptionIssueModel]:
    entry = _get_entry(project_id)
    return [
        CaptionIssueModel(event_id=i.event_id, kind=i.kind, message=i.message)
        for i in entry.project.validate()
    ]


@app.get(
    "/projects/{project_id}/export",
    tags=["export"],
    summary="Download the captions",
    description=(
        "Export the current captions. SRT output is sorted by start time and "
        "renumbered; JSON keeps document order and every field."
    ),
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def export_project(
    project_id: str,
    format: Annotated[ExportFormat, Query(description="Export format.")] = ExportFormat.srt,
) -> Response:
    entry = _get_entry(project_id)
    output = entry.project.export(format.value)
    filename = "{}{}".format(Path(entry.project.media_name).stem or "captions", output.suffix)
    return Response(
        content=output.content,
        media_type=output.media_type,
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


# ---------------------------------------------------------------------------
# Endpoints: Formats
# ---------------------------------------------------------------------------


@app.get(
    "/formats",
    response_model=List[FormatInfo],
    tags=["formats"],
    summary="List available export formats",
    description=(
        "Returns all supported export formats with their identifiers, "
        "human-readable names, and file suffixes."
    ),
)
async def list_formats() -> List[FormatInfo]:
    result = []
    for key, formatter_cls in sorted(FORMATTERS.items()):
        formatter = formatter_cls()
        result.append(FormatInfo(
            key=key,
            name=formatter.name,
            suffix=formatter.format([]).suffix,
        ))
    return result


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api():
    """Entry point for the caption-studio-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
