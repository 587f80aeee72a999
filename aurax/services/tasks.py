"""Job submission, task status lookup and artifact retrieval."""
from __future__ import annotations

import logging
from typing import Any, Dict
from urllib.parse import quote

from pydantic import ValidationError

from ..errors import APIError
from ..models.schemas import (
    ImageGenerationRequest,
    ProductDescriptionRequest,
    TaskResponse,
    TaskStatusSnapshot,
    VtoRequest,
)
from .transport import Transport

logger = logging.getLogger(__name__)

VTO_PATH = "/api/ai/vto"
IMAGE_GENERATION_PATH = "/api/ai/image-generation"
PRODUCT_DESCRIPTION_PATH = "/api/ai/product-description"
TASK_PATH = "/api/ai/task"
IMAGE_PATH = "/images"


def task_path(task_id: str) -> str:
    if not task_id:
        raise ValueError("task_id must be a non-empty string")
    return f"{TASK_PATH}/{quote(task_id, safe='')}"


def task_stream_path(task_id: str) -> str:
    return f"{task_path(task_id)}/stream"


def _json_body(resp: Any) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise APIError(
            "Response body is not valid JSON",
            status_code=resp.status_code,
            body=resp.text,
        ) from exc


class TaskService:
    """Stateless wrapper over the task endpoints; safe to share across tasks."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def submit(self, path: str, payload: Dict[str, Any]) -> TaskResponse:
        """POST a job description and return its task id. Never retried."""

        resp = await self._transport.request("POST", path, json=payload)
        data = _json_body(resp)
        try:
            task = TaskResponse.model_validate(data)
        except ValidationError as exc:
            raise APIError(
                "Submission response did not include a task id",
                status_code=resp.status_code,
                body=resp.text,
                error=data,
            ) from exc
        logger.info("Submitted job to %s as task %s", path, task.task_id)
        return task

    async def vto(self, request: VtoRequest) -> TaskResponse:
        return await self.submit(VTO_PATH, request.to_payload())

    async def image_generation(self, request: ImageGenerationRequest) -> TaskResponse:
        return await self.submit(IMAGE_GENERATION_PATH, request.to_payload())

    async def product_description(self, request: ProductDescriptionRequest) -> str:
        """Synchronous endpoint: returns the generated description text."""

        files = {"image": (request.filename, request.image, request.content_type)}
        data = {"productType": request.product_type.value}
        resp = await self._transport.request("POST", PRODUCT_DESCRIPTION_PATH, files=files, data=data)
        return resp.text

    async def get_task(self, task_id: str) -> TaskStatusSnapshot:
        resp = await self._transport.request("GET", task_path(task_id))
        data = _json_body(resp)
        try:
            snapshot = TaskStatusSnapshot.model_validate(data)
        except ValidationError as exc:
            raise APIError(
                f"Malformed status payload for task {task_id}",
                status_code=resp.status_code,
                body=resp.text,
                error=data,
            ) from exc
        logger.debug("Task %s status %s", task_id, snapshot.status)
        return snapshot

    async def get_image(self, image_id: str) -> bytes:
        if not image_id:
            raise ValueError("image_id must be a non-empty string")
        resp = await self._transport.request("GET", f"{IMAGE_PATH}/{quote(image_id, safe='')}")
        return resp.content
