from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import httpx
import pytest

from aurax.client import AuraXClient
from aurax.errors import AuthenticationError, NotFoundError
from aurax.models.schemas import ImageGenerationRequest, TaskStatus, VtoRequest

from .fake_service import FakeAuraX, create_app
from .fakes import API_KEY, BASE_URL, KEY_ID


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _service() -> FakeAuraX:
    return FakeAuraX(["QUEUED", "PROCESSING", "COMPLETED"], api_key=API_KEY, key_id=KEY_ID)


@asynccontextmanager
async def _client(service: FakeAuraX, **kwargs):  # noqa: ANN003, ANN202
    params = {"api_key": API_KEY, "key_id": KEY_ID, "base_url": BASE_URL, **kwargs}
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app(service))) as http:
        async with AuraXClient(http_client=http, **params) as client:
            yield client


def test_submit_poll_and_download_result() -> None:
    service = _service()

    async def scenario():
        async with _client(service) as client:
            task = await client.vto(
                VtoRequest(person_image="p", garment_image="g", product_type="GARMENT", garment_strength=3)
            )
            final = await client.poll_task(task.task_id, interval=0.01, timeout=2)
            image = await client.get_image(final.image_id)
            return task, final, image

    task, final, image = _run(scenario())

    assert final.task_id == task.task_id
    assert final.state is TaskStatus.COMPLETED
    assert final.output.endswith(f"{task.task_id}.png")
    assert image == b"\x89PNG" + f"img-{task.task_id}".encode()
    assert service.tasks[task.task_id] == 3
    assert service.payloads == [
        {"personImage": "p", "garmentImage": "g", "productType": "GARMENT", "garmentStrength": 3}
    ]


def test_submit_and_stream_to_completion() -> None:
    service = _service()

    async def scenario():
        statuses, beats = [], []
        async with _client(service) as client:
            task = await client.image_generation(
                ImageGenerationRequest(prompt="neon sneaker", product_type="FOOTWEAR", width=512, height=512)
            )

            def on_message(snapshot) -> None:  # noqa: ANN001
                statuses.append(snapshot.status)
                if client.vocabulary.is_terminal(snapshot.status):
                    stream.close()

            stream = client.stream_task(task.task_id, on_message=on_message, on_heartbeat=beats.append)
            await asyncio.wait_for(stream.wait_closed(), 2)
        return statuses, beats

    statuses, beats = _run(scenario())

    assert statuses == ["QUEUED", "PROCESSING", "COMPLETED"]
    assert len(beats) == 1


def test_watch_task_against_fake_service() -> None:
    service = _service()

    async def scenario():
        async with _client(service) as client:
            task = await client.vto(
                {"personImage": "p", "garmentImage": "g", "productType": "BAG", "garmentStrength": 1}
            )
            return await client.watch_task(task.task_id, timeout=2)

    final = _run(scenario())

    assert final.status == "COMPLETED"
    assert final.image_id.startswith("img-")


def test_wrong_credentials_are_rejected() -> None:
    service = _service()

    async def scenario():
        async with _client(service, api_key="wrong") as client:
            await client.vto(
                VtoRequest(person_image="p", garment_image="g", product_type="BAG", garment_strength=1)
            )

    with pytest.raises(AuthenticationError) as info:
        _run(scenario())
    assert info.value.status_code == 401
    assert info.value.error == {"detail": "Invalid API key"}


def test_unknown_task_is_not_found() -> None:
    service = _service()

    async def scenario():
        async with _client(service) as client:
            await client.poll_task("does-not-exist", interval=0.01, timeout=1)

    with pytest.raises(NotFoundError) as info:
        _run(scenario())
    assert "does-not-exist" in info.value.body


def test_injected_http_client_is_left_to_its_owner() -> None:
    service = _service()

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app(service))) as http:
            async with AuraXClient(api_key=API_KEY, key_id=KEY_ID, base_url=BASE_URL, http_client=http):
                pass
            open_after_client = not http.is_closed
        return open_after_client, http.is_closed

    open_after_client, closed_after_owner = _run(scenario())

    assert open_after_client
    assert closed_after_owner
