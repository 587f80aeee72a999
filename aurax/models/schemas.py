"""Pydantic models describing request and response payloads."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ProductType(str, Enum):
    GARMENT = "GARMENT"
    DRESS = "DRESS"
    OUTFIT = "OUTFIT"
    FOOTWEAR = "FOOTWEAR"
    BAG = "BAG"
    JEWELLERY = "JEWELLERY"
    EYEWEAR = "EYEWEAR"
    BEAUTY = "BEAUTY"
    OTHER = "OTHER"


class TaskStatus(str, Enum):
    """Canonical task lifecycle states."""

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})

_DEFAULT_LABELS: Dict[str, TaskStatus] = {
    "queued": TaskStatus.QUEUED,
    "in_queue": TaskStatus.QUEUED,
    "pending": TaskStatus.QUEUED,
    "processing": TaskStatus.PROCESSING,
    "running": TaskStatus.PROCESSING,
    "in_progress": TaskStatus.PROCESSING,
    "completed": TaskStatus.COMPLETED,
    "succeeded": TaskStatus.COMPLETED,
    "success": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
    "failed": TaskStatus.FAILED,
    "error": TaskStatus.FAILED,
    "cancelled": TaskStatus.CANCELLED,
    "canceled": TaskStatus.CANCELLED,
}


class StatusVocabulary:
    """Maps the raw status labels a deployment emits onto :class:`TaskStatus`.

    The service has shipped both ``IN_QUEUE/COMPLETED/...`` and
    ``queued/succeeded/...`` label sets; the default vocabulary accepts both.
    Labels are matched case-insensitively. Unknown labels classify as ``None``
    and are never terminal.
    """

    def __init__(self, labels: Optional[Mapping[str, TaskStatus]] = None) -> None:
        source = _DEFAULT_LABELS if labels is None else labels
        self._labels = {self._key(label): TaskStatus(status) for label, status in source.items()}

    @staticmethod
    def _key(label: str) -> str:
        return label.strip().lower().replace("-", "_").replace(" ", "_")

    def extend(self, labels: Mapping[str, TaskStatus]) -> "StatusVocabulary":
        """Return a new vocabulary with ``labels`` layered over this one."""

        merged: Dict[str, TaskStatus] = dict(self._labels)
        merged.update({self._key(label): TaskStatus(status) for label, status in labels.items()})
        return StatusVocabulary(merged)

    def classify(self, label: Optional[str]) -> Optional[TaskStatus]:
        if not label:
            return None
        return self._labels.get(self._key(label))

    def is_terminal(self, label: Optional[str]) -> bool:
        return self.classify(label) in TERMINAL_STATUSES


DEFAULT_VOCABULARY = StatusVocabulary()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=_camel, populate_by_name=True, use_enum_values=True)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with wire aliases, leaving out fields the caller never set."""

        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class VtoRequest(_RequestModel):
    """Virtual try-on job: both images are base64 encoded."""

    person_image: str = Field(..., min_length=1)
    garment_image: str = Field(..., min_length=1)
    product_type: ProductType
    garment_strength: Literal[1, 2, 3]
    mask_base64: Optional[str] = None
    prompt: Optional[str] = None
    run_with_prompt: Optional[bool] = None


class ImageGenerationRequest(_RequestModel):
    prompt: str = Field(..., min_length=1)
    product_type: ProductType
    mask_base64: Optional[str] = None
    width: Optional[int] = Field(default=None, ge=1, le=2048, description="Defaults to 1024 server-side")
    height: Optional[int] = Field(default=None, ge=1, le=2048, description="Defaults to 1024 server-side")


class ProductDescriptionRequest(BaseModel):
    """Multipart upload; the image travels as a file part, not JSON."""

    image: bytes
    product_type: ProductType
    filename: str = "image.png"
    content_type: str = "image/png"


class TaskResponse(BaseModel):
    """Response returned after a job submission."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    task_id: str = Field(..., min_length=1, validation_alias=AliasChoices("taskId", "task_id", "id"))


class TaskStatusSnapshot(BaseModel):
    """State of one task at one observation instant (poll tick or stream frame)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    task_id: str = Field(..., validation_alias=AliasChoices("id", "taskId", "task_id"))
    status: str
    output: Any = None
    error_message: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("errorMessage", "errorMessages", "error_message"),
    )
    result: Optional[Dict[str, Any]] = None

    @field_validator("error_message", mode="before")
    @classmethod
    def _join_messages(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            parts = [str(item) for item in value if item is not None]
            return "; ".join(parts) if parts else None
        return value

    @property
    def state(self) -> Optional[TaskStatus]:
        """Canonical status under the default vocabulary."""

        return DEFAULT_VOCABULARY.classify(self.status)

    @property
    def image_id(self) -> Optional[str]:
        """Result image identifier, when the completed task carries one."""

        for source in (self.result, self.output):
            if isinstance(source, dict):
                value = source.get("imageId") or source.get("image_id")
                if isinstance(value, str) and value:
                    return value
        return None


class HeartbeatData(BaseModel):
    timestamp: float


@dataclass(frozen=True)
class StatusUpdate:
    snapshot: TaskStatusSnapshot
    event_id: Optional[str] = None


@dataclass(frozen=True)
class Heartbeat:
    timestamp: float


@dataclass(frozen=True)
class StreamError:
    """Error channel: dropped connections, rejected handshakes, undecodable frames.

    ``fatal`` errors end the stream; the others are reported and reading continues.
    """

    error: Exception
    fatal: bool = False


StreamEvent = Union[StatusUpdate, Heartbeat, StreamError]


def _default_is_terminal(status: str) -> bool:
    return DEFAULT_VOCABULARY.is_terminal(status)


@dataclass(frozen=True)
class PollConfig:
    """Per-call polling knobs, in seconds."""

    interval: float = 2.0
    timeout: float = 300.0
    is_terminal: Callable[[str], bool] = field(default=_default_is_terminal)

    def __post_init__(self) -> None:
        if self.interval < 0:
            raise ValueError("interval must be >= 0")
        if self.timeout < 0:
            raise ValueError("timeout must be >= 0")
