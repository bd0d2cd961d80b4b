from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from pydantic import ValidationError as ModelValidationError

from ..core.errors import ParseError
from ..domain.stream_events import (
    DeltaEvent,
    IntentEvent,
    OtherEvent,
    SearchResultsEvent,
    StepEvent,
    StreamEvent,
)

LOG = logging.getLogger("blogify.stream")

DATA_PREFIX = "data:"

_EVENT_TYPES = {
    "step": StepEvent,
    "intent": IntentEvent,
    "search_results": SearchResultsEvent,
    "delta": DeltaEvent,
}


def parse_event(payload: Dict[str, Any]) -> Optional[StreamEvent]:
    """Map one decoded ``data:`` object to a typed event.

    Unknown ``type`` values become ``OtherEvent`` so newer server event kinds
    pass through. A known type carrying an invalid shape is dropped.
    """
    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        LOG.debug("sse_event_without_type", extra={"keys": sorted(payload.keys())})
        return None
    fields = {k: v for k, v in payload.items() if k != "type"}
    model = _EVENT_TYPES.get(event_type)
    if model is None:
        return OtherEvent(type=event_type, payload=fields)
    fields.pop("kind", None)
    try:
        return model.model_validate(fields)
    except ModelValidationError as exc:
        LOG.warning("sse_event_invalid", extra={"type": event_type, "err": str(exc)})
        return None


def _parse_line(line: str) -> Optional[StreamEvent]:
    data = line[len(DATA_PREFIX):].strip()
    if not data:
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Malformed event line: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParseError("Event payload is not a JSON object")
    return parse_event(payload)


def classify_frame(frame: str) -> List[StreamEvent]:
    """Return one event per valid ``data:`` line of a raw frame."""
    events: List[StreamEvent] = []
    for line in frame.split("\n"):
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            continue
        try:
            event = _parse_line(line)
        except ParseError as exc:
            LOG.warning("sse_malformed_line", extra={"line": line[:200], "err": exc.message})
            continue
        if event is not None:
            events.append(event)
    return events


def iter_events(frames: Iterable[str]) -> Iterator[StreamEvent]:
    for frame in frames:
        yield from classify_frame(frame)
