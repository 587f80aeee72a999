from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from aurax.errors import APIError, TaskTimeoutError
from aurax.models.schemas import PollConfig, TaskStatusSnapshot, VtoRequest
from aurax.services.poller import PollState, TaskPoller

from .fakes import make_client


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _snapshot(status: str, **extra) -> TaskStatusSnapshot:  # noqa: ANN003
    return TaskStatusSnapshot(task_id="task-1", status=status, **extra)


class ScriptedFetcher:
    """Returns the scripted statuses in order, repeating the last one."""

    def __init__(self, *statuses: str, delay: float = 0.0) -> None:
        self.statuses = list(statuses)
        self.delay = delay
        self.calls = 0

    async def __call__(self, task_id: str) -> TaskStatusSnapshot:
        index = min(self.calls, len(self.statuses) - 1)
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return _snapshot(self.statuses[index])


def test_poll_returns_terminal_snapshot_after_one_fetch_per_observation() -> None:
    fetch = ScriptedFetcher("QUEUED", "PROCESSING", "COMPLETED")
    poller = TaskPoller(fetch, "task-1", PollConfig(interval=0.01, timeout=5))

    snapshot = _run(poller.run())

    assert snapshot.status == "COMPLETED"
    assert fetch.calls == 3
    assert poller.attempts == 3
    assert poller.state is PollState.TERMINAL_REACHED


def test_poll_times_out_within_one_interval_of_deadline() -> None:
    fetch = ScriptedFetcher("PROCESSING")
    config = PollConfig(interval=0.05, timeout=0.2)
    poller = TaskPoller(fetch, "task-1", config)

    started = time.monotonic()
    with pytest.raises(TaskTimeoutError) as info:
        _run(poller.run())
    elapsed = time.monotonic() - started

    assert elapsed >= config.timeout
    # scheduling slack on top of the documented upper bound
    assert elapsed < config.timeout + config.interval + 0.15
    assert poller.state is PollState.TIMED_OUT
    assert isinstance(info.value, TimeoutError)
    assert info.value.error.status == "PROCESSING"


def test_terminal_observation_wins_over_deadline_on_same_tick() -> None:
    fetch = ScriptedFetcher("FAILED", delay=0.05)
    poller = TaskPoller(fetch, "task-1", PollConfig(interval=0.01, timeout=0.0))

    snapshot = _run(poller.run())

    assert snapshot.status == "FAILED"
    assert poller.state is PollState.TERMINAL_REACHED


def test_fetch_failure_aborts_poll_without_further_fetches() -> None:
    calls = 0

    async def fetch(task_id: str) -> TaskStatusSnapshot:
        nonlocal calls
        calls += 1
        if calls == 2:
            raise APIError("internal error", status_code=500, body="boom")
        return _snapshot("PROCESSING")

    poller = TaskPoller(fetch, "task-1", PollConfig(interval=0.01, timeout=5))

    with pytest.raises(APIError) as info:
        _run(poller.run())

    assert info.value.status_code == 500
    assert calls == 2
    assert poller.state is PollState.ERRORED


def test_custom_terminal_predicate() -> None:
    fetch = ScriptedFetcher("stage-1", "stage-2", "archived")
    config = PollConfig(interval=0.0, timeout=5, is_terminal=lambda status: status == "archived")

    snapshot = _run(TaskPoller(fetch, "task-1", config).run())

    assert snapshot.status == "archived"
    assert fetch.calls == 3


def test_default_predicate_accepts_lowercase_vocabulary() -> None:
    fetch = ScriptedFetcher("queued", "processing", "succeeded")

    snapshot = _run(TaskPoller(fetch, "task-1", PollConfig(interval=0.0, timeout=5)).run())

    assert snapshot.status == "succeeded"


def test_poller_is_single_use() -> None:
    fetch = ScriptedFetcher("COMPLETED")
    poller = TaskPoller(fetch, "task-1", PollConfig(interval=0.0, timeout=1))
    _run(poller.run())

    with pytest.raises(RuntimeError):
        _run(poller.run())


def test_submit_then_poll_virtual_try_on() -> None:
    statuses = iter(["QUEUED", "PROCESSING", "COMPLETED"])
    status_calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal status_calls
        if request.method == "POST":
            return httpx.Response(201, json={"taskId": "vto-42"})
        assert request.url.path == "/api/ai/task/vto-42"
        status_calls += 1
        status = next(statuses)
        body = {"id": "vto-42", "status": status}
        if status == "COMPLETED":
            body["output"] = "result-url"
        return httpx.Response(200, json=body)

    async def scenario():
        async with make_client(handler) as client:
            task = await client.vto(
                VtoRequest(person_image="p", garment_image="g", product_type="GARMENT", garment_strength=2)
            )
            started = time.monotonic()
            final = await client.poll_task(task.task_id, interval=0.1, timeout=1.0)
            return final, time.monotonic() - started

    final, elapsed = _run(scenario())

    assert final.status == "COMPLETED"
    assert final.output == "result-url"
    assert status_calls == 3
    assert elapsed >= 0.2


def test_client_poll_propagates_server_error() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(200, json={"id": "t", "status": "QUEUED"})
        return httpx.Response(500, text="Internal Server Error")

    async def scenario():
        async with make_client(handler) as client:
            await client.poll_task("t", PollConfig(interval=0.0, timeout=5))

    with pytest.raises(APIError) as info:
        _run(scenario())
    assert info.value.body == "Internal Server Error"
    assert calls == 2
