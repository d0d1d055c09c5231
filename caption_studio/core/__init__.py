"""Core caption timeline engine.

WHY: The core package holds the stable heart of the editor: the caption
data model, the document and its edit commands, the undo history, the
playback sync and the timecode codec. Everything else (AI client,
formatters, server, CLI) is built on these.

HOW: model.py defines the dataclasses, document.py the ordered event
list, history.py the snapshot history, sync.py the clock bridge,
timecode.py the SRT time codec, validation.py the readability checks.
project.py ties them to the AI client, the exporters and the store.

RULES:
- Model dataclasses are the contract; change with care
- Document and history operations never raise on unknown ids
- Only project.py reaches outside the core (AI client, store)
"""
