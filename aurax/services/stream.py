"""Server-sent event consumer for live task status."""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

import httpx
from pydantic import ValidationError

from ..errors import (
    APIError,
    AuraXError,
    NetworkError,
    StreamConnectionError,
    StreamFrameError,
    TaskFailedError,
    TaskTimeoutError,
)
from ..models.schemas import (
    DEFAULT_VOCABULARY,
    HeartbeatData,
    Heartbeat,
    StatusUpdate,
    StatusVocabulary,
    StreamError,
    StreamEvent,
    TaskStatus,
    TaskStatusSnapshot,
)
from .tasks import task_stream_path
from .transport import Transport

logger = logging.getLogger(__name__)

# Callbacks may be plain functions or coroutine functions.
MessageCallback = Callable[[TaskStatusSnapshot], Union[None, Awaitable[None]]]
HeartbeatCallback = Callable[[Heartbeat], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], Union[None, Awaitable[None]]]


@dataclass
class ServerSentEvent:
    event: str
    data: str
    id: Optional[str] = None


class SSEDecoder:
    """Incremental ``text/event-stream`` line decoder.

    Feed lines without their terminators; a blank line completes an event.
    ``last_event_id`` and ``retry`` (milliseconds) persist across events.
    """

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self.last_event_id: Optional[str] = None
        self.retry: Optional[int] = None

    def feed(self, line: str) -> Optional[ServerSentEvent]:
        if not line:
            return self._flush()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif name == "retry":
            if value.isdigit():
                self.retry = int(value)
        return None

    def _flush(self) -> Optional[ServerSentEvent]:
        if not self._data:
            self._event = ""
            return None
        sse = ServerSentEvent(
            event=self._event or "message",
            data="\n".join(self._data),
            id=self.last_event_id,
        )
        self._event = ""
        self._data = []
        return sse


@dataclass
class StreamCallbacks:
    """Callback bundle for :class:`TaskStream`. Only ``on_message`` is required."""

    on_message: MessageCallback
    on_heartbeat: Optional[HeartbeatCallback] = None
    on_error: Optional[ErrorCallback] = None


class StreamState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class TaskStream:
    """One live status connection for one task.

    Frames are decoded into :data:`StreamEvent` values and handed to the
    callbacks in the order the server sent them. The consumer never closes itself
    on a terminal status; callers close it from their own callback. Dropped
    connections are reported through ``on_error`` and re-established after the
    retry delay, resuming from the last event id. Rejected handshakes are fatal.
    """

    def __init__(
        self,
        transport: Transport,
        task_id: str,
        callbacks: Optional[StreamCallbacks] = None,
        *,
        retry: float = 3.0,
        max_reconnects: Optional[int] = None,
        connect_timeout: float = 10.0,
        read_timeout: Optional[float] = None,
    ) -> None:
        if not task_id:
            raise ValueError("task_id must be a non-empty string")
        self._transport = transport
        self.task_id = task_id
        self.callbacks = callbacks
        self.retry = retry
        self.max_reconnects = max_reconnects
        self._timeout = httpx.Timeout(connect_timeout, read=read_timeout)
        self.state = StreamState.CONNECTING
        self.last_event_id: Optional[str] = None
        self.reconnects = 0
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = asyncio.Event()
        self._iterating = False

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED

    def open(self) -> "TaskStream":
        """Start the background reader dispatching to ``callbacks``."""

        if self.callbacks is None:
            raise RuntimeError("open() requires callbacks; iterate events() instead")
        if self._task is not None or self._iterating:
            raise RuntimeError("stream already started")
        if self.closed:
            raise RuntimeError("stream is closed")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"aurax-stream-{self.task_id}"
        )
        return self

    def close(self) -> None:
        """Stop reading. Safe to call any number of times, from callbacks too."""

        if self.closed:
            return
        self._mark_closed()
        logger.debug("Closing stream for task %s", self.task_id)
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def aclose(self) -> None:
        """Close and wait for the background reader to finish."""

        self.close()
        task = self._task
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task})

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def __aenter__(self) -> "TaskStream":
        if self.callbacks is not None and self._task is None:
            self.open()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    def _mark_closed(self) -> None:
        self.state = StreamState.CLOSED
        self._closed.set()

    def events(self) -> AsyncIterator[StreamEvent]:
        """Iterate decoded events directly instead of registering callbacks."""

        if self._task is not None or self._iterating:
            raise RuntimeError("stream already started")
        self._iterating = True
        return self._iter_events()

    async def _run(self) -> None:
        try:
            async with aclosing(self._iter_events()) as events:
                async for event in events:
                    if self.closed:
                        break
                    await self._dispatch(event)
                    if self.closed:
                        break
        except Exception as exc:  # delivered, never raised from the reader task
            logger.exception("Stream reader for task %s failed", self.task_id)
            if not self.closed:
                await self._dispatch(StreamError(exc, fatal=True))
        finally:
            self._mark_closed()

    async def _iter_events(self) -> AsyncIterator[StreamEvent]:
        failures = 0
        try:
            while not self.closed:
                self.state = StreamState.CONNECTING
                headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
                if self.last_event_id:
                    headers["Last-Event-ID"] = self.last_event_id
                try:
                    async with self._transport.stream(
                        "GET",
                        task_stream_path(self.task_id),
                        headers=headers,
                        timeout=self._timeout,
                    ) as resp:
                        if self.closed:
                            return
                        self.state = StreamState.OPEN
                        logger.info("Stream open for task %s", self.task_id)
                        decoder = SSEDecoder()
                        async for line in resp.aiter_lines():
                            if self.closed:
                                return
                            sse = decoder.feed(line.rstrip("\r"))
                            if decoder.retry is not None:
                                self.retry = decoder.retry / 1000
                            if decoder.last_event_id is not None:
                                self.last_event_id = decoder.last_event_id
                            if sse is None:
                                continue
                            failures = 0
                            event = self._decode(sse)
                            if event is not None:
                                yield event
                                if self.closed:
                                    return
                    lost = StreamConnectionError(f"Stream for task {self.task_id} ended by server")
                except NetworkError as exc:
                    lost = StreamConnectionError(
                        f"Stream for task {self.task_id} lost: {exc.error}", error=exc
                    )
                except AuraXError as exc:
                    logger.warning("Stream handshake for task %s rejected: %s", self.task_id, exc)
                    yield StreamError(exc, fatal=True)
                    return

                if self.closed:
                    return
                failures += 1
                if self.max_reconnects is not None and failures > self.max_reconnects:
                    yield StreamError(lost, fatal=True)
                    return
                yield StreamError(lost)
                self.reconnects += 1
                logger.warning(
                    "Reconnecting stream for task %s in %.2fs (attempt %d)",
                    self.task_id,
                    self.retry,
                    failures,
                )
                await asyncio.sleep(self.retry)
        finally:
            self._mark_closed()

    def _decode(self, sse: ServerSentEvent) -> Optional[StreamEvent]:
        if sse.event == "message":
            try:
                payload = json.loads(sse.data)
                if isinstance(payload, dict) and not {"id", "taskId", "task_id"} & payload.keys():
                    payload = {**payload, "id": self.task_id}
                snapshot = TaskStatusSnapshot.model_validate(payload)
            except (ValueError, ValidationError) as exc:
                return StreamError(self._frame_error(sse, exc))
            logger.debug("Task %s stream status %s", self.task_id, snapshot.status)
            return StatusUpdate(snapshot, event_id=sse.id)

        if sse.event == "heartbeat":
            try:
                beat = HeartbeatData.model_validate_json(sse.data)
            except ValidationError as exc:
                return StreamError(self._frame_error(sse, exc))
            return Heartbeat(beat.timestamp)

        if sse.event == "error":
            return StreamError(APIError(sse.data or "Stream error frame", body=sse.data))

        logger.debug("Ignoring %r frame on task %s", sse.event, self.task_id)
        return None

    @staticmethod
    def _frame_error(sse: ServerSentEvent, exc: Exception) -> StreamFrameError:
        error = StreamFrameError(
            f"Failed to parse SSE {sse.event} data: {sse.data}",
            event=sse.event,
            data=sse.data,
        )
        error.__cause__ = exc
        return error

    async def _dispatch(self, event: StreamEvent) -> None:
        callbacks = self.callbacks
        if callbacks is None:
            return
        if isinstance(event, StatusUpdate):
            await self._invoke(callbacks.on_message, event.snapshot)
        elif isinstance(event, Heartbeat):
            if callbacks.on_heartbeat is not None:
                await self._invoke(callbacks.on_heartbeat, event)
        elif callbacks.on_error is not None:
            await self._invoke(callbacks.on_error, event.error)
        else:
            logger.warning("Unhandled stream error for task %s: %s", self.task_id, event.error)

    async def _invoke(self, callback: Callable[[Any], Any], arg: Any) -> None:
        try:
            result = callback(arg)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Stream callback %r failed for task %s", callback, self.task_id)


async def watch_task(
    transport: Transport,
    task_id: str,
    *,
    vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
    timeout: Optional[float] = None,
    on_update: Optional[MessageCallback] = None,
    **stream_options: Any,
) -> TaskStatusSnapshot:
    """Follow a task's stream until it finishes and return the final snapshot.

    Raises :class:`TaskFailedError` for FAILED/CANCELLED, the delivered error when
    the stream dies, and :class:`TaskTimeoutError` if ``timeout`` elapses first.
    """

    stream = TaskStream(transport, task_id, **stream_options)

    async def _follow() -> TaskStatusSnapshot:
        async with aclosing(stream.events()) as events:
            async for event in events:
                if isinstance(event, StatusUpdate):
                    snapshot = event.snapshot
                    if on_update is not None:
                        result = on_update(snapshot)
                        if inspect.isawaitable(result):
                            await result
                    status = vocabulary.classify(snapshot.status)
                    if status is TaskStatus.COMPLETED:
                        return snapshot
                    if status in (TaskStatus.FAILED, TaskStatus.CANCELLED):
                        raise TaskFailedError(
                            f"Task {task_id} ended with status {snapshot.status}",
                            snapshot=snapshot,
                        )
                elif isinstance(event, StreamError):
                    if event.fatal:
                        raise event.error
                    logger.warning("Stream error while watching task %s: %s", task_id, event.error)
        raise StreamConnectionError(f"Stream for task {task_id} closed before it finished")

    try:
        if timeout is None:
            return await _follow()
        try:
            return await asyncio.wait_for(_follow(), timeout)
        except asyncio.TimeoutError as exc:
            raise TaskTimeoutError(f"Task {task_id} did not finish within {timeout:.1f}s") from exc
    finally:
        stream.close()
