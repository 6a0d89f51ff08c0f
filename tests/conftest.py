"""Pytest configuration and shared fixtures for preloader tests."""

import asyncio
import logging

# Add parent directory to path for imports
import os
import sys
from collections import defaultdict

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from preloader.config_manager import PreloaderConfig
from preloader.events import EventKind
from preloader.fetchers import FetcherRegistry, ResourceFetcher
from preloader.models import ResourceKind
from preloader.scheduler import PriorityScheduler

# Configure test logging
logging.basicConfig(level=logging.DEBUG)


class ScriptedFetcher(ResourceFetcher):
    """Fetcher whose per-resource outcomes are scripted in advance.

    ``outcomes`` maps a resource id to a list consumed one entry per attempt;
    exceptions are raised, anything else is returned. Ids without a script
    succeed. ``gates`` maps ids to events the attempt waits on.
    """

    def __init__(self, outcomes=None, delay=0.0, delays=None):
        super().__init__()
        self.outcomes = {rid: list(script) for rid, script in (outcomes or {}).items()}
        self.delay = delay
        self.delays = delays or {}
        self.gates = {}
        self.calls = []
        self.active = defaultdict(int)
        self.max_active = defaultdict(int)

    def gate(self, resource_id):
        event = asyncio.Event()
        self.gates[resource_id] = event
        return event

    async def _fetch(self, descriptor):
        self.calls.append(descriptor.id)
        priority = descriptor.priority.value
        self.active[priority] += 1
        self.max_active[priority] = max(self.max_active[priority], self.active[priority])
        try:
            gate = self.gates.get(descriptor.id)
            if gate is not None:
                await gate.wait()
            delay = self.delays.get(descriptor.id, self.delay)
            if delay:
                await asyncio.sleep(delay)
            script = self.outcomes.get(descriptor.id)
            if script:
                outcome = script.pop(0)
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
            return descriptor.id
        finally:
            self.active[priority] -= 1


class EventRecorder:
    """Collects every scheduler event as ``(kind, payload)`` tuples."""

    def __init__(self, hub):
        self.events = []
        for kind in EventKind:
            hub.on(kind, self._recorder(kind))

    def _recorder(self, kind):
        def record(*payload):
            self.events.append((kind, payload))
        return record

    def of(self, kind):
        return [payload for k, payload in self.events if k == kind]

    def kinds(self):
        return [k for k, _ in self.events]


@pytest.fixture
def fetcher():
    """Provide a ScriptedFetcher with no scripted failures."""
    return ScriptedFetcher()


@pytest.fixture
def registry(fetcher):
    """Provide a FetcherRegistry that routes every built-in kind to the fetcher."""
    registry = FetcherRegistry(register_defaults=False)
    for kind in ResourceKind:
        registry.register(kind, fetcher)
    return registry


@pytest.fixture
def sample_config():
    """Provide a PreloaderConfig with instant backoff."""
    return PreloaderConfig(
        concurrency={"high": 3, "medium": 2, "low": 1},
        default_timeout=2.0,
        default_retries=1,
        backoff_base=0.0,
    )


@pytest.fixture
def make_scheduler(registry, sample_config):
    """Factory for schedulers wired to the scripted fetcher."""

    def factory(**overrides):
        data = sample_config.to_dict()
        data.update(overrides)
        return PriorityScheduler(PreloaderConfig.from_dict(data), fetchers=registry)

    return factory


@pytest.fixture
def wait_until():
    """Poll a condition on the event loop until it holds or time runs out."""

    async def poll(condition, timeout=1.0, interval=0.001):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)

    return poll


@pytest.fixture
def recorder_for():
    """Attach an EventRecorder to a scheduler."""
    return lambda scheduler: EventRecorder(scheduler.hub)
