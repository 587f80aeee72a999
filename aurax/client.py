"""Async client for the AuraX image-processing API."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Union

import httpx

from .config import get_settings
from .errors import ConfigurationError
from .models.schemas import (
    DEFAULT_VOCABULARY,
    ImageGenerationRequest,
    PollConfig,
    ProductDescriptionRequest,
    StatusVocabulary,
    TaskResponse,
    TaskStatusSnapshot,
    VtoRequest,
)
from .services.poller import TaskPoller
from .services.stream import (
    ErrorCallback,
    HeartbeatCallback,
    MessageCallback,
    StreamCallbacks,
    TaskStream,
    watch_task,
)
from .services.tasks import TaskService
from .services.transport import Transport

logger = logging.getLogger(__name__)


class AuraXClient:
    """Submits jobs and tracks them by polling or streaming.

    Anything left out of the constructor is read from :func:`get_settings`.
    ``http_client`` lets callers supply (and own) a configured
    ``httpx.AsyncClient``; otherwise one is created and closed by :meth:`aclose`.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        key_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
    ) -> None:
        settings = get_settings()
        api_key = api_key or settings.api_key
        key_id = key_id or settings.key_id
        if not api_key or not key_id:
            raise ConfigurationError("API key and key ID are required")

        self.settings = settings
        self.vocabulary = vocabulary
        self._transport = Transport(
            base_url=base_url or settings.base_url,
            api_key=api_key,
            key_id=key_id,
            timeout=settings.timeout if timeout is None else timeout,
            http_client=http_client,
        )
        self._tasks = TaskService(self._transport)

    @property
    def base_url(self) -> str:
        return self._transport.base_url

    async def vto(self, request: Union[VtoRequest, dict[str, Any]]) -> TaskResponse:
        """Virtual try-on (async job) -> ``TaskResponse``."""

        if not isinstance(request, VtoRequest):
            request = VtoRequest.model_validate(request)
        return await self._tasks.vto(request)

    async def image_generation(
        self, request: Union[ImageGenerationRequest, dict[str, Any]]
    ) -> TaskResponse:
        """Image generation (async job) -> ``TaskResponse``."""

        if not isinstance(request, ImageGenerationRequest):
            request = ImageGenerationRequest.model_validate(request)
        return await self._tasks.image_generation(request)

    async def product_description(self, request: ProductDescriptionRequest) -> str:
        """Product description (synchronous) -> generated text."""

        return await self._tasks.product_description(request)

    async def get_task(self, task_id: str) -> TaskStatusSnapshot:
        return await self._tasks.get_task(task_id)

    async def get_image(self, image_id: str) -> bytes:
        return await self._tasks.get_image(image_id)

    def _poll_config(
        self,
        config: Optional[PollConfig],
        interval: Optional[float],
        timeout: Optional[float],
        is_terminal: Optional[Callable[[str], bool]],
    ) -> PollConfig:
        base = config or PollConfig(
            interval=self.settings.poll_interval,
            timeout=self.settings.poll_timeout,
            is_terminal=self.vocabulary.is_terminal,
        )
        return PollConfig(
            interval=base.interval if interval is None else interval,
            timeout=base.timeout if timeout is None else timeout,
            is_terminal=base.is_terminal if is_terminal is None else is_terminal,
        )

    async def poll_task(
        self,
        task_id: str,
        config: Optional[PollConfig] = None,
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        is_terminal: Optional[Callable[[str], bool]] = None,
    ) -> TaskStatusSnapshot:
        """Poll until ``is_terminal(status)`` holds; raises ``TaskTimeoutError``.

        Keyword overrides take precedence over ``config``.
        """

        poll_config = self._poll_config(config, interval, timeout, is_terminal)
        logger.debug(
            "Polling task %s every %.2fs for up to %.1fs", task_id, poll_config.interval, poll_config.timeout
        )
        return await TaskPoller(self._tasks.get_task, task_id, poll_config).run()

    def stream_task(
        self,
        task_id: str,
        callbacks: Union[StreamCallbacks, MessageCallback, None] = None,
        on_error: Optional[ErrorCallback] = None,
        *,
        on_message: Optional[MessageCallback] = None,
        on_heartbeat: Optional[HeartbeatCallback] = None,
        retry: Optional[float] = None,
        max_reconnects: Optional[int] = None,
        read_timeout: Optional[float] = None,
    ) -> TaskStream:
        """Open the live status stream for ``task_id``. Call ``close()`` when done.

        Accepts either a :class:`StreamCallbacks` bundle or the callbacks
        individually (``stream_task(task_id, on_message, on_error)`` also works).
        Must be called from a running event loop.
        """

        if isinstance(callbacks, StreamCallbacks):
            if on_message or on_heartbeat or on_error:
                raise TypeError("pass either a StreamCallbacks bundle or individual callbacks")
            bundle = callbacks
        else:
            message_cb = callbacks or on_message
            if message_cb is None:
                raise TypeError("stream_task requires an on_message callback")
            bundle = StreamCallbacks(on_message=message_cb, on_heartbeat=on_heartbeat, on_error=on_error)

        logger.debug("Opening status stream for task %s", task_id)
        stream = TaskStream(
            self._transport,
            task_id,
            bundle,
            retry=self.settings.stream_retry if retry is None else retry,
            max_reconnects=max_reconnects,
            read_timeout=read_timeout,
        )
        return stream.open()

    def open_stream(self, task_id: str, **options: Any) -> TaskStream:
        """Unopened stream for iterating ``events()`` directly."""

        options.setdefault("retry", self.settings.stream_retry)
        return TaskStream(self._transport, task_id, **options)

    async def watch_task(
        self,
        task_id: str,
        *,
        timeout: Optional[float] = None,
        on_update: Optional[MessageCallback] = None,
        **stream_options: Any,
    ) -> TaskStatusSnapshot:
        """Stream until the task finishes; see :func:`aurax.services.stream.watch_task`."""

        stream_options.setdefault("retry", self.settings.stream_retry)
        return await watch_task(
            self._transport,
            task_id,
            vocabulary=self.vocabulary,
            timeout=timeout,
            on_update=on_update,
            **stream_options,
        )

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> "AuraXClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
