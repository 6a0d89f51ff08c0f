"""Priority scheduler: admission loop, terminal bookkeeping and completion detection."""

import asyncio
import functools
import logging
import time
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Set, Union

from .config_manager import PreloaderConfig
from .dependencies import DependencyGate, find_cycles, find_unregistered
from .errors import DependencyError, DuplicateResourceError, SchedulerStateError
from .eta import EtaEstimator
from .events import EventHub, EventKind
from .fetchers import FetcherRegistry
from .models import (
    PRIORITY_ORDER,
    ClassStats,
    CompletionReport,
    Priority,
    ProgressSnapshot,
    ResourceDescriptor,
    RunStats,
)
from .retry import AttemptOutcome, RetryController


class PriorityScheduler:
    """Fetches registered resources with per-priority concurrency limits.

    All state is owned by the scheduler and mutated only on the event loop
    thread, from registration calls, the admission loop and task completion
    callbacks. Every registered resource is in exactly one of queued,
    in-flight, loaded or failed.
    """

    def __init__(
        self,
        config: Optional[PreloaderConfig] = None,
        fetchers: Optional[FetcherRegistry] = None,
        hub: Optional[EventHub] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize scheduler.

        Args:
            config: Concurrency limits, defaults and backoff settings
            fetchers: Fetcher registry; one is created (and closed by
                ``aclose``) when omitted
            hub: Event hub to emit on; a private one is created when omitted
            logger: Optional logger instance
        """
        self.config = config or PreloaderConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._owns_fetchers = fetchers is None
        self.fetchers = fetchers or FetcherRegistry(
            headers={"User-Agent": self.config.user_agent}
        )
        self.hub = hub or EventHub()

        # Registration
        self._resources: Dict[str, ResourceDescriptor] = {}
        self._queues: Dict[Priority, Deque[ResourceDescriptor]] = {
            p: deque() for p in PRIORITY_ORDER
        }

        # Concurrency tracking
        self._in_flight: Dict[Priority, int] = {p: 0 for p in PRIORITY_ORDER}
        self._peak_in_flight: Dict[Priority, int] = {p: 0 for p in PRIORITY_ORDER}
        self._tasks: Set[asyncio.Task] = set()

        # Terminal outcomes; dicts keep insertion order for the report
        self._loaded: Dict[str, None] = {}
        self._failed: Dict[str, None] = {}

        self.stats = RunStats()
        self._gate = DependencyGate(self._loaded, self._failed)
        self._eta = EtaEstimator(self.config.total_concurrency)
        self._retry = RetryController(
            self.fetchers.fetch,
            base_delay=self.config.backoff_base,
            factor=self.config.backoff_factor,
            on_retry=self._handle_retry,
            logger=self.logger,
        )

        # Run control
        self._paused = False
        self._running = False
        self._start_time: Optional[float] = None
        self._completion: Optional[asyncio.Future] = None
        self._report: Optional[CompletionReport] = None

    async def __aenter__(self) -> "PriorityScheduler":
        if self._owns_fetchers:
            await self.fetchers.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def on(self, kind: Union[str, EventKind], callback):
        """Subscribe to a scheduler event."""
        return self.hub.on(kind, callback)

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self, resource: Union[ResourceDescriptor, Dict[str, Any]]
    ) -> ResourceDescriptor:
        """Queue a resource.

        Args:
            resource: Descriptor, or a mapping accepted by
                ``ResourceDescriptor.from_dict``

        Returns:
            The normalized descriptor

        Raises:
            DuplicateResourceError: If the id is already registered
            InvalidResourceError: If the descriptor is malformed
        """
        if isinstance(resource, dict):
            descriptor = ResourceDescriptor.from_dict(resource)
        else:
            descriptor = resource

        if descriptor.id in self._resources:
            raise DuplicateResourceError(descriptor.id)

        descriptor.apply_defaults(self.config.default_timeout, self.config.default_retries)

        self._resources[descriptor.id] = descriptor
        self._queues[descriptor.priority].append(descriptor)
        self.stats.total += 1
        self.stats.remaining += 1
        self.stats.per_class[descriptor.priority].total += 1

        self.logger.debug(
            f"Registered {descriptor.id} ({descriptor.kind}, {descriptor.priority.value}, "
            f"depends_on={descriptor.depends_on})"
        )
        return descriptor

    def register_many(
        self, resources: Iterable[Union[ResourceDescriptor, Dict[str, Any]]]
    ) -> List[ResourceDescriptor]:
        return [self.register(resource) for resource in resources]

    def validate_dependencies(self) -> None:
        """Raise DependencyError for unregistered prerequisites or cycles."""
        unregistered = find_unregistered(self._resources)
        cycles = find_cycles(self._resources)
        if unregistered or cycles:
            raise DependencyError(unregistered, cycles)

    # =========================================================================
    # Run control
    # =========================================================================

    def start(self) -> None:
        """Begin admitting resources. A no-op while already running.

        Must be called with a running event loop.
        """
        if self._running:
            return

        if self.config.validate_dependencies:
            self.validate_dependencies()
        else:
            for resource_id, missing in find_unregistered(self._resources).items():
                self.logger.warning(
                    f"{resource_id} depends on unregistered {missing}; it will not start "
                    f"until they are registered and finished"
                )

        loop = asyncio.get_running_loop()
        if self._completion is None or self._completion.done():
            self._completion = loop.create_future()
        self._report = None
        self._start_time = time.monotonic()

        self.logger.info(f"Starting preload of {self.stats.remaining} resources")
        self.hub.emit(EventKind.START)
        self._running = True
        self._process_queue()

    def pause(self) -> None:
        """Stop admitting new resources. In-flight resources keep running."""
        if self._paused:
            return
        self._paused = True
        self.logger.info(f"Paused with {sum(self._in_flight.values())} resources in flight")
        self.hub.emit(EventKind.EXIT)

    def resume(self) -> None:
        """Clear the pause flag and admit eligible resources."""
        if not self._paused:
            return
        self._paused = False
        self.logger.info("Resumed")
        self._process_queue()

    async def wait(self) -> CompletionReport:
        """Wait until every registered resource reached a terminal state."""
        if self._completion is None:
            raise SchedulerStateError("Run has not been started")
        return await asyncio.shield(self._completion)

    async def run(self) -> CompletionReport:
        """Start the run and wait for the completion report."""
        self.start()
        return await self.wait()

    async def aclose(self) -> None:
        """Stop the run, cancel in-flight fetches and pending backoff delays."""
        self._running = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.logger.info(f"Cancelled {len(tasks)} in-flight resources")
        if self._completion is not None and not self._completion.done():
            self._completion.cancel()
        if self._owns_fetchers:
            await self.fetchers.close()

    # =========================================================================
    # Admission loop
    # =========================================================================

    def _process_queue(self) -> None:
        if self._paused or not self._running:
            return

        for priority in PRIORITY_ORDER:
            queue = self._queues[priority]
            limit = self.config.limit_for(priority)
            while self._in_flight[priority] < limit and queue:
                descriptor = queue.popleft()
                if self._gate.is_eligible(descriptor):
                    self._admit(descriptor)
                else:
                    # Head of line is blocked; retry this class on the next pass.
                    queue.append(descriptor)
                    self.logger.debug(
                        f"{descriptor.id} waiting on {self._gate.pending(descriptor)}"
                    )
                    break

        if self.stats.finished >= self.stats.total:
            self._complete()

    def _admit(self, descriptor: ResourceDescriptor) -> None:
        priority = descriptor.priority
        self._in_flight[priority] += 1
        self._peak_in_flight[priority] = max(
            self._peak_in_flight[priority], self._in_flight[priority]
        )
        self.logger.debug(
            f"Admitted {descriptor.id} ({priority.value} "
            f"{self._in_flight[priority]}/{self.config.limit_for(priority)})"
        )

        task = asyncio.get_running_loop().create_task(self._attempt_load(descriptor))
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._handle_task_done, priority))

    def _handle_task_done(self, priority: Priority, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._in_flight[priority] -= 1
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Unexpected error in preload task: {task.exception()!r}")
        self._process_queue()

    async def _attempt_load(self, descriptor: ResourceDescriptor) -> AttemptOutcome:
        outcome = await self._retry.run(descriptor)
        if outcome.success:
            self._record_success(descriptor, outcome)
        else:
            self._record_failure(descriptor, outcome)
        return outcome

    # =========================================================================
    # Terminal bookkeeping
    # =========================================================================

    def _record_success(self, descriptor: ResourceDescriptor, outcome: AttemptOutcome) -> None:
        if self._is_terminal(descriptor.id):
            self.logger.warning(f"Ignoring second outcome for {descriptor.id}")
            return

        self._eta.record(outcome.duration_ms)
        self._loaded[descriptor.id] = None
        self.stats.loaded += 1
        self.stats.remaining -= 1
        self.stats.per_class[descriptor.priority].done += 1

        self.logger.debug(
            f"Loaded {descriptor.id} in {outcome.duration_ms:.0f}ms "
            f"(attempt {outcome.attempts})"
        )
        self.hub.emit(EventKind.LOAD, descriptor)
        self.hub.emit(EventKind.PROGRESS, self.snapshot(descriptor.id))

    def _record_failure(self, descriptor: ResourceDescriptor, outcome: AttemptOutcome) -> None:
        if self._is_terminal(descriptor.id):
            self.logger.warning(f"Ignoring second outcome for {descriptor.id}")
            return

        self._failed[descriptor.id] = None
        self.stats.failed += 1
        self.stats.remaining -= 1
        self.stats.per_class[descriptor.priority].done += 1

        self.logger.error(
            f"Failed {descriptor.id} after {outcome.attempts} attempt(s): {outcome.error}"
        )
        self.hub.emit(EventKind.ERROR, descriptor, outcome.error)
        self.hub.emit(EventKind.PROGRESS, self.snapshot(descriptor.id))

    def _handle_retry(
        self, descriptor: ResourceDescriptor, attempt: int, error: BaseException
    ) -> None:
        self.logger.warning(
            f"Retrying {descriptor.id} after attempt {attempt} failed: {error}"
        )
        self.hub.emit(EventKind.RETRY, descriptor, attempt)

    def _complete(self) -> None:
        self._running = False
        duration_ms = (time.monotonic() - self._start_time) * 1000
        report = CompletionReport(
            success=list(self._loaded),
            failed=list(self._failed),
            duration_ms=duration_ms,
        )
        self._report = report

        self.logger.info(
            f"Preload complete: {len(report.success)} loaded, "
            f"{len(report.failed)} failed in {duration_ms:.0f}ms"
        )
        self.hub.emit(EventKind.COMPLETE, report)
        if self._completion is not None and not self._completion.done():
            self._completion.set_result(report)

    def _is_terminal(self, resource_id: str) -> bool:
        return resource_id in self._loaded or resource_id in self._failed

    # =========================================================================
    # Introspection
    # =========================================================================

    def snapshot(self, current: Optional[str] = None) -> ProgressSnapshot:
        """Current progress, as carried by the ``progress`` event."""
        return ProgressSnapshot(
            total=self.stats.total,
            loaded=self.stats.loaded,
            failed=self.stats.failed,
            remaining=self.stats.remaining,
            percentage=self.stats.percentage,
            current=current,
            eta_ms=self._eta.estimate(self.stats.remaining),
            per_class={
                p.value: ClassStats(stats.total, stats.done)
                for p, stats in self.stats.per_class.items()
            },
        )

    def get(self, resource_id: str) -> Optional[ResourceDescriptor]:
        return self._resources.get(resource_id)

    def queued(self, priority: Optional[Union[str, Priority]] = None) -> List[str]:
        """Ids waiting for admission, in queue order."""
        if priority is None:
            return [d.id for p in PRIORITY_ORDER for d in self._queues[p]]
        if not isinstance(priority, Priority):
            priority = Priority(str(priority).lower())
        return [d.id for d in self._queues[priority]]

    @property
    def loaded(self) -> List[str]:
        return list(self._loaded)

    @property
    def failed(self) -> List[str]:
        return list(self._failed)

    @property
    def in_flight(self) -> Dict[str, int]:
        return {p.value: count for p, count in self._in_flight.items()}

    @property
    def peak_in_flight(self) -> Dict[str, int]:
        return {p.value: count for p, count in self._peak_in_flight.items()}

    @property
    def eta(self) -> EtaEstimator:
        return self._eta

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_complete(self) -> bool:
        return self._report is not None and self.stats.finished >= self.stats.total

    @property
    def report(self) -> Optional[CompletionReport]:
        return self._report
