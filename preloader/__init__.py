"""Prioritized, dependency-aware resource preloader.

Components:
    - PriorityScheduler: Admission loop with per-priority concurrency limits
    - RetryController: Bounded retries with exponential backoff
    - DependencyGate: Prerequisite checks before a resource may start
    - EtaEstimator: Running-average remaining time estimate
    - EventHub: Typed event fan-out to subscribers
    - FetcherRegistry: aiohttp-backed fetchers per resource kind
    - ConfigManager: Type-safe configuration management
"""

from .config_manager import ConfigManager, PreloaderConfig, get_config_manager
from .dependencies import DependencyGate, find_cycles, find_unregistered
from .errors import (
    DependencyError,
    DuplicateResourceError,
    FetchError,
    FetchTimeoutError,
    InvalidResourceError,
    PreloaderError,
    SchedulerStateError,
    UnsupportedKindError,
)
from .eta import EtaEstimator
from .events import EventHub, EventKind
from .fetchers import (
    FetcherRegistry,
    HTTPFetcher,
    ImageFetcher,
    JSONFetcher,
    ResourceFetcher,
    ScriptFetcher,
    TextFetcher,
)
from .manifest import Manifest, load_manifest, parse_manifest
from .models import (
    ClassStats,
    CompletionReport,
    Priority,
    ProgressSnapshot,
    ResourceDescriptor,
    ResourceKind,
)
from .retry import AttemptOutcome, RetryController
from .scheduler import PriorityScheduler

__version__ = "0.1.0"

__all__ = [
    # Scheduling
    "PriorityScheduler",
    "RetryController",
    "AttemptOutcome",
    "DependencyGate",
    "find_unregistered",
    "find_cycles",
    "EtaEstimator",
    # Events
    "EventHub",
    "EventKind",
    # Data types
    "ResourceDescriptor",
    "ResourceKind",
    "Priority",
    "ClassStats",
    "ProgressSnapshot",
    "CompletionReport",
    # Fetchers
    "FetcherRegistry",
    "ResourceFetcher",
    "HTTPFetcher",
    "JSONFetcher",
    "TextFetcher",
    "ImageFetcher",
    "ScriptFetcher",
    # Configuration
    "ConfigManager",
    "PreloaderConfig",
    "get_config_manager",
    "Manifest",
    "load_manifest",
    "parse_manifest",
    # Exception types
    "PreloaderError",
    "InvalidResourceError",
    "DuplicateResourceError",
    "DependencyError",
    "FetchError",
    "FetchTimeoutError",
    "UnsupportedKindError",
    "SchedulerStateError",
]
