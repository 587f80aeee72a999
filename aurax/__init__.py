"""AuraX async task client.

Importing the package loads ``.env`` then ``.env.local``, searched upward from the
current working directory, so ``AURAX_*`` variables are available to
:func:`aurax.config.get_settings`. Variables already in the environment win
over ``.env``; ``.env.local`` overrides both.
"""
from __future__ import annotations

from dotenv import find_dotenv, load_dotenv

# Load base env first, then allow .env.local to override for developer-specific tweaks.
load_dotenv(find_dotenv(".env", usecwd=True))
load_dotenv(find_dotenv(".env.local", usecwd=True), override=True)

from .client import AuraXClient  # noqa: E402
from .errors import (  # noqa: E402
    APIError,
    AuraXError,
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    NetworkError,
    NotFoundError,
    StreamConnectionError,
    StreamFrameError,
    TaskFailedError,
    TaskTimeoutError,
)
from .models.schemas import (  # noqa: E402
    Heartbeat,
    ImageGenerationRequest,
    PollConfig,
    ProductDescriptionRequest,
    ProductType,
    StatusUpdate,
    StatusVocabulary,
    StreamError,
    StreamEvent,
    TaskResponse,
    TaskStatus,
    TaskStatusSnapshot,
    VtoRequest,
)
from .services.poller import PollState, TaskPoller  # noqa: E402
from .services.stream import StreamCallbacks, StreamState, TaskStream  # noqa: E402

__all__ = [
    "APIError",
    "AuraXClient",
    "AuraXError",
    "AuthenticationError",
    "BadRequestError",
    "ConfigurationError",
    "Heartbeat",
    "ImageGenerationRequest",
    "NetworkError",
    "NotFoundError",
    "PollConfig",
    "PollState",
    "ProductDescriptionRequest",
    "ProductType",
    "StatusUpdate",
    "StatusVocabulary",
    "StreamCallbacks",
    "StreamConnectionError",
    "StreamError",
    "StreamEvent",
    "StreamFrameError",
    "StreamState",
    "TaskFailedError",
    "TaskPoller",
    "TaskResponse",
    "TaskStatus",
    "TaskStatusSnapshot",
    "TaskStream",
    "TaskTimeoutError",
    "VtoRequest",
]
