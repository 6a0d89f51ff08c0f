"""Exception types raised by the preloader."""

from typing import Iterable, List, Optional


class PreloaderError(Exception):
    """Base class for all preloader errors."""

    pass


class InvalidResourceError(PreloaderError, ValueError):
    """Raised when a resource descriptor is malformed."""

    pass


class DuplicateResourceError(InvalidResourceError):
    """Raised when a resource id is registered twice."""

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Resource already registered: {resource_id}")


class DependencyError(PreloaderError):
    """Raised when start-time dependency validation finds a broken graph."""

    def __init__(
        self,
        unregistered: Optional[dict] = None,
        cycles: Optional[Iterable[List[str]]] = None,
    ):
        self.unregistered = dict(unregistered or {})
        self.cycles = [list(cycle) for cycle in (cycles or [])]

        parts = []
        if self.unregistered:
            missing = ", ".join(
                f"{rid} -> {sorted(deps)}" for rid, deps in sorted(self.unregistered.items())
            )
            parts.append(f"unregistered prerequisites: {missing}")
        if self.cycles:
            loops = "; ".join(" -> ".join(cycle) for cycle in self.cycles)
            parts.append(f"dependency cycles: {loops}")
        super().__init__("Invalid dependency graph: " + ", ".join(parts))


class FetchError(PreloaderError):
    """A single fetch attempt failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class FetchTimeoutError(FetchError):
    """A fetch attempt exceeded its timeout."""

    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s fetching {url}")


class UnsupportedKindError(FetchError):
    """No fetcher is registered for a resource kind."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unsupported type: {kind}")


class SchedulerStateError(PreloaderError):
    """Raised when a scheduler operation is called in the wrong state."""

    pass
