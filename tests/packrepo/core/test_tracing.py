# tests/packrepo/core/test_tracing.py
from __future__ import annotations

from packrepo.core.tracing import TraceHub, Tracer


def _tracer(capacity: int = 100) -> tuple[Tracer, TraceHub]:
    hub = TraceHub(capacity=capacity)
    return Tracer(hub), hub


def test_span_start_and_end_records() -> None:
    tracer, hub = _tracer()

    span = tracer.startSpan("resolver.resolve", attrs={"added": ["a@1.0.0"]}, tags=["resolver"])
    assert tracer.currentSpan() is span
    tracer.endSpan(span, "ok", attrs={"required": 1})

    start, end = hub.snapshot()
    assert start["recordType"] == "spanStart"
    assert start["spanName"] == "resolver.resolve"
    assert start["attrs"] == {"added": ["a@1.0.0"]}
    assert start["tags"] == ["resolver"]
    assert start["traceId"].startswith("trace_")
    assert end["recordType"] == "spanEnd"
    assert end["status"] == "ok"
    assert end["attrs"]["required"] == 1
    assert end["attrs"]["durationMs"] >= 0
    assert end["seq"] > start["seq"]
    assert tracer.currentSpan() is None


def test_nested_span_shares_trace() -> None:
    tracer, hub = _tracer()

    outer = tracer.startSpan("deploy")
    inner = tracer.startSpan("install")
    tracer.traceEvent("resource.installed", {"resource": "a@1.0.0"})
    tracer.endSpan(inner)
    tracer.endSpan(outer)

    assert inner.traceId == outer.traceId
    assert inner.parentSpanId == outer.spanId
    event = [rec for rec in hub.snapshot() if rec["recordType"] == "event"][0]
    assert event["spanId"] == inner.spanId
    assert event["eventName"] == "resource.installed"
    assert tracer.currentSpan() is None


def test_endSpan_twice_emits_once() -> None:
    tracer, hub = _tracer()
    span = tracer.startSpan("deploy")

    tracer.endSpan(span, "error", errorType="InstallError", errorMessage="boom")
    tracer.endSpan(span, "ok")

    ends = [rec for rec in hub.snapshot() if rec["recordType"] == "spanEnd"]
    assert len(ends) == 1
    assert ends[0]["status"] == "error"
    assert ends[0]["errorType"] == "InstallError"


def test_hub_is_bounded_and_listeners_are_isolated() -> None:
    tracer, hub = _tracer(capacity=2)
    seen = []

    def broken(record):
        raise RuntimeError("listener bug")

    hub.subscribe(broken)
    hub.subscribe(seen.append)
    for index in range(3):
        tracer.traceEvent(f"event.{index}")

    assert [rec["eventName"] for rec in hub.snapshot()] == ["event.1", "event.2"]
    assert len(seen) == 3

    hub.unsubscribe(seen.append)
    hub.unsubscribe(broken)
    tracer.traceEvent("event.3")
    assert len(seen) == 3


def test_event_without_span_has_empty_ids() -> None:
    tracer, hub = _tracer()

    tracer.traceEvent("repository.added", {"uri": "file:///c.json"}, level="info")

    record = hub.snapshot()[0]
    assert record["traceId"] == ""
    assert record["spanId"] == ""
    assert record["level"] == "info"
