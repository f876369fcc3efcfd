"""Operation events and the channel that carries them to the HTTP response.

Every operation produces zero or more ``progress`` events followed by
exactly one terminal event (``complete`` or ``error``). On the wire each
event is one JSON line (``application/x-ndjson``):

    {"type": "progress", "file": "b.txt", "percent": 42, "speed": "12.50"}
    {"type": "complete"}
    {"type": "error", "error": "...", "details": "..."}

``EventChannel`` is a bounded queue between the thread running the
operation (producer) and the response generator (consumer). The producer
never blocks for long on a stalled or departed consumer: progress events
are dropped when the queue is full, and everything is dropped once the
consumer closes the channel. The operation itself keeps running.
"""

from __future__ import annotations

import json
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, Union

from gevent import sleep as _stream_sleep


@dataclass(frozen=True)
class ProgressEvent:
    file: str
    percent: int
    speed: float

    terminal = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "progress",
            "file": self.file,
            "percent": int(self.percent),
            "speed": f"{self.speed:.2f}",
        }


@dataclass(frozen=True)
class CompleteEvent:
    terminal = True

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "complete"}


@dataclass(frozen=True)
class ErrorEvent:
    error: str
    details: Optional[str] = None

    terminal = True

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": "error", "error": self.error}
        if self.details:
            payload["details"] = self.details
        return payload


OperationEvent = Union[ProgressEvent, CompleteEvent, ErrorEvent]
Emitter = Callable[[OperationEvent], None]


def encode_event(event: OperationEvent) -> bytes:
    return (json.dumps(event.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")


class EventChannel:
    def __init__(self, maxsize: int = 256, *, terminal_timeout: float = 5.0) -> None:
        # One extra slot so a terminal event fits behind a full progress backlog.
        self._queue: "queue.Queue[OperationEvent]" = queue.Queue(maxsize=maxsize + 1)
        self._progress_limit = maxsize
        self._terminal_timeout = terminal_timeout
        self._lock = threading.Lock()
        self._closed = False
        self._terminated = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terminated(self) -> bool:
        return self._terminated

    def close(self) -> None:
        """Consumer went away; further events are discarded."""
        self._closed = True

    def emit(self, event: OperationEvent) -> None:
        """Queue an event for the consumer. Never raises."""
        try:
            with self._lock:
                if self._terminated:
                    return
                if event.terminal:
                    self._terminated = True
            if self._closed:
                return
            if event.terminal:
                self._queue.put(event, timeout=self._terminal_timeout)
                return
            if self._queue.qsize() >= self._progress_limit:
                self.dropped += 1
                return
            self._queue.put_nowait(event)
        except Exception:
            # Queue full or consumer gone; delivery is best-effort.
            self.dropped += 1

    def iter_events(
        self,
        alive: Optional[Callable[[], bool]] = None,
        *,
        poll: float = 0.05,
    ) -> Iterator[OperationEvent]:
        """Yield events in arrival order until the terminal one.

        ``alive`` reports whether the producer is still running. If it
        stops without emitting a terminal event, an ``operation_aborted``
        error is inferred so the stream always ends with a terminal record.
        """
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                # Check emptiness after liveness: a producer may queue its
                # terminal event and exit between the two calls.
                if alive is not None and not alive() and self._queue.empty():
                    self._terminated = True
                    yield ErrorEvent("operation_aborted")
                    return
                _stream_sleep(poll)
                continue
            yield event
            if event.terminal:
                return
