"""Resource descriptors and the progress/report records emitted during a run."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import InvalidResourceError


class Priority(Enum):
    """Priority classes, in admission order."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER = (Priority.HIGH, Priority.MEDIUM, Priority.LOW)


class ResourceKind(Enum):
    """Built-in resource kinds. Other kinds may be added via the fetcher registry."""

    JSON = "json"
    TEXT = "text"
    IMAGE = "image"
    SCRIPT = "script"


DEFAULT_TIMEOUT = 3.0
DEFAULT_RETRIES = 1


def parse_priority(value: Union[str, Priority, None]) -> Priority:
    """Normalize a priority value, defaulting to medium."""
    if value is None or value == "":
        return Priority.MEDIUM
    if isinstance(value, Priority):
        return value
    try:
        return Priority(str(value).strip().lower())
    except ValueError:
        raise InvalidResourceError(
            f"Invalid priority {value!r}; expected one of "
            f"{[p.value for p in Priority]}"
        )


@dataclass
class ResourceDescriptor:
    """One resource to fetch.

    ``timeout`` is in seconds. ``retries`` is the number of additional
    attempts after the first one.
    """

    id: str
    kind: Union[str, ResourceKind]
    url: str
    priority: Union[str, Priority, None] = Priority.MEDIUM
    timeout: Optional[float] = None
    retries: Optional[int] = None
    depends_on: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    timeout_defaulted: bool = field(default=False, init=False, repr=False, compare=False)
    retries_defaulted: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise InvalidResourceError("Resource id cannot be empty")
        self.id = str(self.id)

        if isinstance(self.kind, ResourceKind):
            self.kind = self.kind.value
        self.kind = str(self.kind).strip().lower()

        self.priority = parse_priority(self.priority)

        self.timeout_defaulted = self.timeout is None
        if self.timeout_defaulted:
            self.timeout = DEFAULT_TIMEOUT
        self.timeout = float(self.timeout)
        if self.timeout <= 0:
            raise InvalidResourceError(f"Timeout for {self.id} must be positive")

        self.retries_defaulted = self.retries is None
        if self.retries_defaulted:
            self.retries = DEFAULT_RETRIES
        self.retries = int(self.retries)
        if self.retries < 0:
            raise InvalidResourceError(f"Retries for {self.id} cannot be negative")

        if isinstance(self.depends_on, str):
            self.depends_on = [self.depends_on]
        self.depends_on = [str(dep) for dep in (self.depends_on or [])]

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def apply_defaults(self, timeout: float, retries: int) -> None:
        """Replace a timeout or retry budget that was left unset."""
        if self.timeout_defaulted:
            self.timeout = float(timeout)
            self.timeout_defaulted = False
        if self.retries_defaulted:
            self.retries = int(retries)
            self.retries_defaulted = False

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        default_timeout: Optional[float] = None,
        default_retries: Optional[int] = None,
    ) -> "ResourceDescriptor":
        """Create a descriptor from a manifest entry.

        Accepts ``type`` as an alias of ``kind`` and ``dependsOn`` as an alias
        of ``depends_on``.
        """
        if not isinstance(data, dict):
            raise InvalidResourceError(f"Resource entry must be a mapping, got {type(data)}")

        known = {"id", "kind", "type", "url", "priority", "timeout", "retries",
                 "depends_on", "dependsOn", "metadata"}
        kind = data.get("kind", data.get("type"))
        if kind is None:
            raise InvalidResourceError(f"Resource {data.get('id')!r} has no kind")
        if "url" not in data:
            raise InvalidResourceError(f"Resource {data.get('id')!r} has no url")

        timeout = data.get("timeout")
        retries = data.get("retries")
        metadata = dict(data.get("metadata") or {})
        metadata.update({k: v for k, v in data.items() if k not in known})

        return cls(
            id=data.get("id"),
            kind=kind,
            url=data["url"],
            priority=data.get("priority"),
            timeout=timeout if timeout is not None else default_timeout,
            retries=retries if retries is not None else default_retries,
            depends_on=data.get("depends_on", data.get("dependsOn")) or [],
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "url": self.url,
            "priority": self.priority.value,
            "timeout": self.timeout,
            "retries": self.retries,
            "depends_on": list(self.depends_on),
            "metadata": dict(self.metadata),
        }


@dataclass
class ClassStats:
    """Totals for one priority class."""

    total: int = 0
    done: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "done": self.done}


@dataclass
class RunStats:
    """Run-wide counters."""

    total: int = 0
    loaded: int = 0
    failed: int = 0
    remaining: int = 0
    per_class: Dict[Priority, ClassStats] = field(
        default_factory=lambda: {p: ClassStats() for p in PRIORITY_ORDER}
    )

    @property
    def finished(self) -> int:
        return self.loaded + self.failed

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return int(self.finished * 100 / self.total + 0.5)


@dataclass
class ProgressSnapshot:
    """Payload of the ``progress`` event."""

    total: int
    loaded: int
    failed: int
    remaining: int
    percentage: int
    current: Optional[str]
    eta_ms: float
    per_class: Dict[str, ClassStats] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "loaded": self.loaded,
            "failed": self.failed,
            "remaining": self.remaining,
            "percentage": self.percentage,
            "current": self.current,
            "eta_ms": self.eta_ms,
            "per_class": {name: stats.to_dict() for name, stats in self.per_class.items()},
        }


@dataclass
class CompletionReport:
    """Payload of the ``complete`` event."""

    success: List[str]
    failed: List[str]
    duration_ms: float

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": list(self.success),
            "failed": list(self.failed),
            "duration_ms": self.duration_ms,
        }
