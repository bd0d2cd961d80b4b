import random

from src.blogify.domain.stream_events import (
    DeltaEvent,
    IntentEvent,
    OtherEvent,
    SearchResult,
    SearchResultsEvent,
    StepEvent,
)
from src.blogify.services.event_classifier import iter_events
from src.blogify.services.reply_accumulator import ReplyAccumulator
from src.blogify.services.sse_decoder import iter_frames

from .utils import sse


def test_step_then_deltas_scenario():
    frames = [
        'data: {"type":"step","name":"search"}\n\n',
        'data: {"type":"delta","content":"Hello "}\n\n',
        'data: {"type":"delta","content":"world"}\n\n',
    ]
    acc = ReplyAccumulator()
    state = acc.fold(iter_events(iter_frames(frames)))
    assert state.accumulated_text == "Hello world"
    assert state.step_name == "search"


def test_deltas_concatenate_regardless_of_side_channel_events():
    rng = random.Random(7)
    contents = [f"part{i} " for i in range(20)]
    side = [
        StepEvent(name="outline"),
        IntentEvent(is_blog_request=True),
        SearchResultsEvent(results=[SearchResult(title="a")]),
        OtherEvent(type="ping"),
    ]
    events = []
    for content in contents:
        events.extend(rng.sample(side, rng.randint(0, len(side))))
        events.append(DeltaEvent(content=content))
    acc = ReplyAccumulator()
    acc.fold(events)
    assert acc.text == "".join(contents)


def test_later_search_results_replace_earlier_ones():
    acc = ReplyAccumulator()
    acc.apply(SearchResultsEvent(results=[SearchResult(title="old"), SearchResult(title="older")]))
    acc.apply(SearchResultsEvent(results=[SearchResult(title="new")]))
    assert [r.title for r in acc.state.search_results] == ["new"]


def test_intent_and_step_are_replaced():
    acc = ReplyAccumulator()
    acc.apply(IntentEvent(is_blog_request=True))
    acc.apply(StepEvent(name="search"))
    acc.apply(StepEvent(name="write"))
    acc.apply(IntentEvent(is_blog_request=False))
    assert acc.state.step_name == "write"
    assert acc.state.is_blog_request is False


def test_apply_reports_text_changes_only_for_non_empty_deltas():
    acc = ReplyAccumulator()
    assert acc.apply(DeltaEvent(content="x")) is True
    assert acc.apply(DeltaEvent(content="")) is False
    assert acc.apply(StepEvent(name="s")) is False


def test_other_events_only_reach_audit_log():
    acc = ReplyAccumulator()
    acc.apply(OtherEvent(type="usage", payload={"tokens": 3}))
    assert acc.text == ""
    assert acc.audit_log[0].type == "usage"


def test_reset_clears_everything():
    acc = ReplyAccumulator()
    acc.fold(
        [
            StepEvent(name="s"),
            IntentEvent(is_blog_request=True),
            SearchResultsEvent(results=[SearchResult(title="t")]),
            DeltaEvent(content="abc"),
            OtherEvent(type="x"),
        ]
    )
    acc.reset()
    assert acc.state.step_name == ""
    assert acc.state.is_blog_request is False
    assert acc.state.search_results == []
    assert acc.text == ""
    assert acc.audit_log == []


def test_pipeline_from_bytes():
    data = sse({"type": "delta", "content": "a"}, "{oops", {"type": "delta", "content": "b"})
    acc = ReplyAccumulator()
    acc.fold(iter_events(iter_frames([data])))
    assert acc.text == "ab"
