"""Command-line interface for Caption Studio.

WHY: Users need a simple way to caption a media file from the terminal.
The CLI wires together the full pipeline (file validation, audio
preprocessing, Gemini transcription, optional timing offset and
translation, pluggable export) behind a single command.

HOW: Uses argparse to accept a media file, an optional translation
target, a global offset, export format selection and an output
directory. Builds a CaptionProject and runs its async operations via
asyncio.run(). Status messages go to stderr; output files are saved
next to the source (or to --output-dir).

RULES:
- Positional argument: input media file path
- Validates file extension against SUPPORTED_MEDIA_FORMATS before any API call
- --formats: comma-separated formatter keys (default: all registered)
- --offset is applied before translation, so both end up in the history
- Output naming: {stem}{suffix}, numeric suffix for conflicts (talk-2.srt)
- Status output goes to stderr (not stdout)
- --user-id saves the finished project to the local project store
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from caption_studio.api.client import GeminiClient, GenerationFailure, TranslationFailure
from caption_studio.audio.preprocess import MediaDecodeError
from caption_studio.config import LANGUAGES, SUPPORTED_MEDIA_FORMATS, language_name
from caption_studio.core.model import ProjectSettings, Session
from caption_studio.core.project import CaptionProject
from caption_studio.formatters import FORMATTERS
from caption_studio.formatters.base import FormatterOutput
from caption_studio.storage import LocalProjectStore


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so the CLI can be piped.

    RULES:
    - All status messages go to stderr
    - Always flush after writing
    """
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _resolve_output_path(
    stem: str,
    suffix: str,
    output_dir: Path,
) -> Path:
    """Resolve the output file path, adding numeric suffix on conflict.

    WHY: Users may caption the same file several times (e.g. once per
    target language). Overwriting previous output would lose work.

    HOW: Check if {stem}{suffix} exists. If so, increment a counter
    and insert it before the file extension until a free name is found.

    RULES:
    - First attempt: {stem}{suffix} (e.g. talk.srt)
    - Conflict: counter inserted before the extension (e.g. talk-2.srt)
    - Counter starts at 2 and increments

    Returns:
        A Path that does not yet exist.
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx >= 0:
        suffix_name = suffix[:dot_idx]
        suffix_ext = suffix[dot_idx:]
    else:
        suffix_name = suffix
        suffix_ext = ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(
    output: FormatterOutput,
    stem: str,
    output_dir: Path,
) -> Path:
    """Save one formatter output as UTF-8 text; returns the path written."""
    path = _resolve_output_path(stem, output.suffix, output_dir)
    path.write_text(output.content, encoding="utf-8")
    return path


def _parse_formats(value: Optional[str]) -> List[str]:
    """Split and check --formats; exits on unknown keys."""
    if not value:
        return list(FORMATTERS.keys())
    format_keys = [f.strip() for f in value.split(",") if f.strip()]
    for key in format_keys:
        if key not in FORMATTERS:
            available = ", ".join(sorted(FORMATTERS.keys()))
            _fail("Unknown format '{}'. Available formats: {}".format(key, available))
    return format_keys


async def _run_pipeline(args: argparse.Namespace) -> None:
    """Execute the full captioning pipeline.

    RULES:
    - Validate file, extension, output dir and formats before any API call
    - Status messages to stderr at each step
    - Decode/service/config errors print one line and exit 1
    """
    input_path = Path(args.input_file).resolve()

    if not input_path.is_file():
        _fail("File not found: {}".format(input_path))

    ext = input_path.suffix.lower()
    if ext not in SUPPORTED_MEDIA_FORMATS:
        _fail("Unsupported file type '{}'. Supported formats: {}".format(
            ext, ", ".join(sorted(SUPPORTED_MEDIA_FORMATS))
        ))

    output_dir = Path(args.output_dir).resolve() if args.output_dir else input_path.parent
    if not output_dir.is_dir():
        _fail("Output directory does not exist: {}".format(output_dir))

    format_keys = _parse_formats(args.formats)

    settings = ProjectSettings(max_chars_per_line=args.max_chars)
    session = Session(args.user_id) if args.user_id else None
    project = CaptionProject(
        settings=settings,
        media_name=input_path.name,
        session=session,
        store=LocalProjectStore() if session else None,
    )

    try:
        async with GeminiClient() as client:
            # Step 1: Preprocess + transcribe
            await project.generate(input_path, client, on_status=_status)
            _status("  {} captions, detected language: {}".format(
                len(project.events), project.detected_language or "unknown"
            ))

            # Step 2: Global offset
            if args.offset:
                project.apply_global_offset(args.offset)
                _status("Shifted all captions by {:+.3f}s".format(args.offset))

            # Step 3: Translation
            if args.target_language:
                await project.translate(client, args.target_language, on_status=_status)
                _status("  Translated to {}".format(language_name(args.target_language)))

    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except (MediaDecodeError, GenerationFailure, TranslationFailure) as e:
        _fail(str(e))
    except ValueError as e:
        # Config errors (missing API key, etc.)
        _fail(str(e))

    # Step 4: Readability report
    issues = project.validate()
    if issues:
        _status("{} caption warning(s):".format(len(issues)))
        for issue in issues[:10]:
            _status("  [{}] {}".format(issue.kind, issue.message))
        if len(issues) > 10:
            _status("  ... and {} more".format(len(issues) - 10))

    # Step 5: Export
    _status("Exporting...")
    saved_files: List[Path] = []
    for key in format_keys:
        output = project.export(key)
        saved_path = _save_output(output, input_path.stem, output_dir)
        saved_files.append(saved_path)
        _status("  Saved: {}".format(saved_path.name))

    await project.flush()
    if session is not None:
        _status("  Project saved for {}".format(session.user_id))

    _status("")
    _status("Done! Saved {} file(s) to {}".format(len(saved_files), output_dir))


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable: tests can inspect the parser without running the pipeline.
    """
    parser = argparse.ArgumentParser(
        prog="caption-studio",
        description="Generate timed captions for an audio/video file with Gemini, "
                    "optionally shift and translate them, and export SRT/JSON.",
    )

    parser.add_argument(
        "input_file",
        help="Path to the audio or video file to caption.",
    )

    parser.add_argument(
        "--target-language",
        default=None,
        help="Translate captions to this language code ({}).".format(
            ", ".join(sorted(LANGUAGES))
        ),
    )

    parser.add_argument(
        "--offset",
        type=float,
        default=0.0,
        help="Seconds to add to every caption (negative shifts earlier).",
    )

    parser.add_argument(
        "--formats",
        default=None,
        help="Comma-separated list of export formats. "
             "Available: {}. Default: all.".format(", ".join(sorted(FORMATTERS.keys()))),
    )

    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: same as input file).",
    )

    parser.add_argument(
        "--max-chars",
        type=int,
        default=ProjectSettings().max_chars_per_line,
        help="Maximum characters per caption line (default: %(default)s).",
    )

    parser.add_argument(
        "--user-id",
        default=None,
        help="Save the finished project to the local store under this user.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    asyncio.run(_run_pipeline(args))


if __name__ == "__main__":
    main()
