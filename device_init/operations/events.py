"""Progress events for long-running image operations.

Configuring or initializing an image produces a stream of events:
``state`` after each operation, ``stdout``/``stderr`` for script output,
``burn`` while writing a drive, and finally exactly one of ``end`` or
``error``.

A ProgressStream wraps a lazy producer of the non-terminal events. Nothing
runs until the stream is consumed, either by iterating over it or by
calling ``wait()``; callbacks registered with ``on()`` are called for each
event as it passes. A stream can only be consumed once.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, cast

from device_init.flash.writer import BurnProgress
from device_init.types import EventKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateEvent:
    """An operation finished.

    Attributes:
        operation: The operation that ran.
        percentage: Share of operations done so far, in percent.
    """

    operation: Any
    percentage: float
    kind: EventKind = field(default=EventKind.STATE, init=False)


@dataclass(frozen=True)
class OutputEvent:
    """Output of a script."""

    kind: EventKind
    data: str

    def __post_init__(self) -> None:
        if self.kind not in (EventKind.STDOUT, EventKind.STDERR):
            raise ValueError(f"Output events are stdout or stderr, not {self.kind}")


@dataclass(frozen=True)
class BurnEvent:
    """Progress of a drive write."""

    progress: BurnProgress
    kind: EventKind = field(default=EventKind.BURN, init=False)


@dataclass(frozen=True)
class ErrorEvent:
    """The stream stopped because of an error."""

    error: Exception
    kind: EventKind = field(default=EventKind.ERROR, init=False)


@dataclass(frozen=True)
class EndEvent:
    """The stream completed."""

    kind: EventKind = field(default=EventKind.END, init=False)


Event = StateEvent | OutputEvent | BurnEvent | ErrorEvent | EndEvent
TerminalEvent = ErrorEvent | EndEvent


class StreamConsumedError(RuntimeError):
    """A progress stream was consumed twice."""


class ProgressStream:
    """Single-use, lazy stream of progress events.

    Iterating yields the producer's events followed by one terminal event:
    EndEvent when the producer is exhausted, ErrorEvent when it raised.
    Exceptions raised by callbacks propagate to the consumer.

    Example:
        >>> stream = configure(image, manifest, config)
        >>> stream.on("state", lambda e: print(e.percentage))
        >>> result = stream.wait()
    """

    def __init__(self, producer: Iterable[Event]) -> None:
        self._producer = producer
        self._callbacks: dict[EventKind, list[Callable[[Any], None]]] = defaultdict(list)
        self._consumed = False
        self.result: TerminalEvent | None = None

    def on(self, kind: EventKind | str, callback: Callable[[Any], None]) -> ProgressStream:
        """Register a callback for one kind of event.

        Returns:
            The stream, so calls can be chained.
        """
        self._callbacks[EventKind(kind)].append(callback)
        return self

    def _emit(self, event: Event) -> None:
        for callback in self._callbacks[event.kind]:
            callback(event)

    def __iter__(self) -> Iterator[Event]:
        if self._consumed:
            raise StreamConsumedError("Progress stream has already been consumed")
        self._consumed = True

        producer = iter(self._producer)
        terminal: TerminalEvent
        while True:
            try:
                event = next(producer)
            except StopIteration:
                terminal = EndEvent()
                break
            except Exception as e:
                logger.debug("Progress stream failed: %s", e)
                terminal = ErrorEvent(error=e)
                break
            self._emit(event)
            yield event

        self.result = terminal
        self._emit(terminal)
        yield terminal

    def wait(self) -> TerminalEvent:
        """Consume the whole stream.

        Returns:
            The terminal event (EndEvent or ErrorEvent).
        """
        for _ in self:
            pass
        return cast(TerminalEvent, self.result)

    def raise_for_error(self) -> None:
        """Consume the stream and re-raise the error it stopped with, if any."""
        result = self.wait()
        if isinstance(result, ErrorEvent):
            raise result.error


__all__ = [
    "BurnEvent",
    "EndEvent",
    "ErrorEvent",
    "Event",
    "OutputEvent",
    "ProgressStream",
    "StateEvent",
    "StreamConsumedError",
    "TerminalEvent",
]
