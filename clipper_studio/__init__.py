"""Clipper Studio — highlight clip cutting, captioning and titling.

WHY: Long-form source videos are republished to social platforms as short
highlight clips. Each clip needs a precise cut, an aspect-ratio
conversion, burned-in captions timed from a word-level transcript, and a
title. Doing that for a whole batch of clips is a multi-stage process
where any single clip may fail without taking the others down.

HOW: Four layers, each independently testable:
  core       — IR dataclasses, caption segmentation, media sources
  rendering  — style strings, filter builders, transcoder invocation,
               clip cutting and audio extraction
  pipeline   — per-clip state machine, title resolution, upload
  server/cli — thin HTTP and command-line surfaces

RULES:
- Every transcoder call goes through rendering.transcoder.Transcoder
- Whoever creates a temp file deletes it on every exit path
- The orchestrator returns one result per clip, in input order
"""

__version__ = "0.1.0"
