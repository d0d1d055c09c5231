"""Caption Studio — caption timeline engine with AI generation and translation.

WHY: Editing subtitles against a media file needs more than a list of
strings. Captions are time-addressed, get edited in small steps that must
be undoable, follow a playback clock, and come from (and go back to) an
external speech model. This package holds that engine and two thin
surfaces (CLI and HTTP API) around it.

HOW: Four layers: preprocess (audio), ingest (AI service client), edit
(document, history, playback sync inside a CaptionProject), and export
(pluggable formatters). Each layer is independently testable.

RULES:
- CaptionEvent is the stable contract between every layer
- Edits go through typed commands; commits go through the history
- Adding an export format = one new formatter module, no core changes
"""

__version__ = "0.1.0"
