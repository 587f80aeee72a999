"""Demo: submit a virtual try-on job and follow it to completion.

    python -m aurax [poll|stream|watch] [PERSON_B64 GARMENT_B64]

Credentials come from ``AURAX_API_KEY`` / ``AURAX_KEY_ID`` (or ``.env``).
"""
from __future__ import annotations

import asyncio
import logging
import sys

from .client import AuraXClient
from .config import get_settings
from .errors import AuraXError
from .models.schemas import DEFAULT_VOCABULARY, Heartbeat, TaskStatusSnapshot, VtoRequest

logger = logging.getLogger("aurax.demo")

MODES = {"poll", "stream", "watch"}


async def _stream(client: AuraXClient, task_id: str) -> None:
    def on_message(snapshot: TaskStatusSnapshot) -> None:
        logger.info("[UPDATE] %s", snapshot.status)
        if DEFAULT_VOCABULARY.is_terminal(snapshot.status):
            logger.info("Final output: %s", snapshot.output)
            stream.close()

    def on_heartbeat(beat: Heartbeat) -> None:
        logger.info("[HEARTBEAT] %s", beat.timestamp)

    def on_error(error: Exception) -> None:
        logger.error("Stream error: %s", error)

    stream = client.stream_task(task_id, on_message=on_message, on_heartbeat=on_heartbeat, on_error=on_error)
    await stream.wait_closed()


async def main(argv: list[str]) -> int:
    mode = argv[0] if argv and argv[0] in MODES else "poll"
    images = [arg for arg in argv if arg not in MODES]
    person, garment = (images + ["base64-person", "base64-garment"])[:2]

    async with AuraXClient() as client:
        task = await client.vto(
            VtoRequest(person_image=person, garment_image=garment, product_type="GARMENT", garment_strength=2)
        )
        logger.info("Task created: %s", task.task_id)

        if mode == "stream":
            await _stream(client, task.task_id)
        elif mode == "watch":
            final = await client.watch_task(task.task_id)
            logger.info("Task finished: %s", final.model_dump())
        else:
            final = await client.poll_task(task.task_id)
            logger.info("Task finished: %s", final.model_dump())
    return 0


def run() -> int:
    logging.basicConfig(level=get_settings().log_level.upper())
    try:
        return asyncio.run(main(sys.argv[1:]))
    except AuraXError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1


if __name__ == "__main__":
    sys.exit(run())
