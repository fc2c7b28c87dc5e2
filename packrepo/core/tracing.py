# packrepo/core/tracing.py
from __future__ import annotations

import contextvars
import datetime as dt
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from packrepo.core.ids import uuidv7

__all__ = [
    "TraceSpan",
    "TraceHub",
    "Tracer",
    "getTracer",
    "getTraceHub",
]

JsonDict = dict[str, Any]
TraceListener = Callable[[JsonDict], None]



def _utcNowIso() -> str:
    now = dt.datetime.now(dt.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")



_spanContextVar: contextvars.ContextVar["TraceSpan | None"] = contextvars.ContextVar(
    "packrepo_current_span",
    default=None,
)



@dataclass
class TraceSpan:
    traceId: str
    spanId: str
    parentSpanId: str | None
    spanName: str
    context: JsonDict = field(default_factory=dict)
    startTime: float = field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc).timestamp()
    )
    ended: bool = False
    _token: contextvars.Token | None = field(default=None, repr=False)



class TraceHub:
    """
    In-memory ring buffer + synchronous listeners.

    - emit(record): append to buffer, hand it to every listener
    - snapshot(): copy of the buffer, oldest first
    - subscribe(listener) / unsubscribe(listener)
    """
    def __init__(self, capacity: int = 5000) -> None:
        self.capacity = max(1, capacity)
        self._buffer: deque[JsonDict] = deque(maxlen=self.capacity)
        self._listeners: list[TraceListener] = []
        self._lock = threading.Lock()

    def emit(self, record: JsonDict) -> None:
        with self._lock:
            self._buffer.append(record)
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(record)
            except Exception:
                # A broken listener must not break the traced operation
                pass

    def snapshot(self) -> list[JsonDict]:
        with self._lock:
            return list(self._buffer)

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def subscribe(self, listener: TraceListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: TraceListener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass



class Tracer:
    """
    Span/event tracer.

    - Uses contextvars to track the current span.
    - Emits JSON-serializable dicts to TraceHub.
    - Never raises out of emit().
    """

    def __init__(self, hub: TraceHub | None = None) -> None:
        self.hub = hub or TraceHub()
        self._seq = 0
        self._seqLock = threading.Lock()

    # ----- Context / Bookkeeping -----

    def _nextSeq(self) -> int:
        with self._seqLock:
            self._seq += 1
            return self._seq

    def currentSpan(self) -> TraceSpan | None:
        return _spanContextVar.get(None)

    def _buildBaseRecord(
        self,
        recordType: str,
        span: TraceSpan | None,
        level: str,
        tags: list[str] | None,
        attrs: JsonDict | None = None,
    ) -> JsonDict:
        ctx = dict(span.context) if span is not None else {}
        return {
            "recordType": recordType,
            "time": _utcNowIso(),
            "seq": self._nextSeq(),
            "traceId": span.traceId if span is not None else "",
            "spanId": span.spanId if span is not None else "",
            "level": level,
            "tags": tags or [],
            "attrs": {**ctx, **(attrs or {})},
        }

    # ----- Spans -----

    def startSpan(
        self,
        spanName: str,
        attrs: JsonDict | None = None,
        level: str = "info",
        tags: list[str] | None = None,
    ) -> TraceSpan:
        """
        Start a span, set it as current for this context, and emit spanStart.
        """
        parent = self.currentSpan()
        traceId = parent.traceId if parent is not None else uuidv7(prefix="trace_")
        span = TraceSpan(
            traceId=traceId,
            spanId=uuidv7(prefix="span_"),
            parentSpanId=parent.spanId if parent is not None else None,
            spanName=spanName,
            context=dict(parent.context) if parent is not None else {},
        )
        span._token = _spanContextVar.set(span)

        record = self._buildBaseRecord("spanStart", span, level, tags, attrs)
        record["spanName"] = spanName
        record["parentSpanId"] = span.parentSpanId
        self._emit(record)
        return span

    def endSpan(
        self,
        span: TraceSpan,
        status: str = "ok",
        *,
        level: str = "info",
        tags: list[str] | None = None,
        errorType: str | None = None,
        errorMessage: str | None = None,
        attrs: JsonDict | None = None,
    ) -> None:
        """
        End a span, restore the previous current span, and emit spanEnd.
        """
        if span.ended:
            return
        span.ended = True

        if span._token is not None:
            try:
                _spanContextVar.reset(span._token)
            except ValueError:
                # Ended from another context; leave the current span alone
                pass
            span._token = None

        attrs = dict(attrs or {})
        durationMs = (dt.datetime.now(dt.timezone.utc).timestamp() - span.startTime) * 1000.0
        attrs.setdefault("durationMs", durationMs)

        record = self._buildBaseRecord("spanEnd", span, level, tags, attrs)
        record["spanName"] = span.spanName
        record["status"] = status
        record["errorType"] = errorType
        record["errorMessage"] = errorMessage
        self._emit(record)

    # ----- Events -----

    def traceEvent(
        self,
        eventName: str,
        attrs: JsonDict | None = None,
        *,
        level: str = "debug",
        tags: list[str] | None = None,
        span: TraceSpan | None = None,
    ) -> None:
        """
        Emit an event attached to the given span or current span.
        """
        if span is None:
            span = self.currentSpan()

        record = self._buildBaseRecord("event", span, level, tags, attrs)
        record["eventName"] = eventName
        self._emit(record)

    # ----- Low level -----

    def _emit(self, record: JsonDict) -> None:
        try:
            self.hub.emit(record)
        except Exception:
            # Tracing must not crash
            pass



# Global tracer + hub singletons
_globalHub = TraceHub()
_globalTracer = Tracer(_globalHub)



def getTraceHub() -> TraceHub:
    return _globalHub

def getTracer() -> Tracer:
    return _globalTracer
