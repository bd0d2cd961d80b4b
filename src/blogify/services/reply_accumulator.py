from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ..domain.stream_events import (
    DeltaEvent,
    IntentEvent,
    OtherEvent,
    SearchResult,
    SearchResultsEvent,
    StepEvent,
    StreamEvent,
)


@dataclass
class ReplyState:
    step_name: str = ""
    is_blog_request: bool = False
    search_results: List[SearchResult] = field(default_factory=list)
    accumulated_text: str = ""


class ReplyAccumulator:
    """Fold the ordered events of one generation request into reply state.

    Deltas are appended in arrival order; step, intent and search results
    replace the previous value. Unknown events only land in ``audit_log``.
    Nothing here is persisted.
    """

    def __init__(self) -> None:
        self.state = ReplyState()
        self.audit_log: List[OtherEvent] = []

    @property
    def text(self) -> str:
        return self.state.accumulated_text

    def reset(self) -> None:
        self.state = ReplyState()
        self.audit_log = []

    def apply(self, event: StreamEvent) -> bool:
        """Apply one event; returns True when the accumulated text changed."""
        if isinstance(event, DeltaEvent):
            if not event.content:
                return False
            self.state.accumulated_text += event.content
            return True
        if isinstance(event, StepEvent):
            self.state.step_name = event.name
        elif isinstance(event, IntentEvent):
            self.state.is_blog_request = event.is_blog_request
        elif isinstance(event, SearchResultsEvent):
            self.state.search_results = list(event.results)
        elif isinstance(event, OtherEvent):
            self.audit_log.append(event)
        return False

    def fold(self, events) -> ReplyState:
        for event in events:
            self.apply(event)
        return self.state
