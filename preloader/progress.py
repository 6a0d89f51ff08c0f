"""Console reporting for preload runs, driven entirely by scheduler events."""
import logging
from typing import Optional

from tqdm import tqdm

from .events import EventHub, EventKind
from .models import CompletionReport, ProgressSnapshot, ResourceDescriptor


def format_eta(eta_ms: float) -> str:
    """Format milliseconds as ``m:ss``."""
    seconds = int(round(eta_ms / 1000))
    return f"{seconds // 60}:{seconds % 60:02d}"


class ConsoleReporter:
    """Logs per-resource events and drives a tqdm bar from progress events."""

    def __init__(self, total: int = 0, show_bar: bool = True, logger: Optional[logging.Logger] = None):
        self.total = total
        self.show_bar = show_bar
        self.logger = logger or logging.getLogger("preloader.console")
        self.report: Optional[CompletionReport] = None
        self._bar: Optional[tqdm] = None
        self._finished = 0

    def attach(self, hub: EventHub) -> "ConsoleReporter":
        hub.on(EventKind.START, self.on_start)
        hub.on(EventKind.LOAD, self.on_load)
        hub.on(EventKind.ERROR, self.on_error)
        hub.on(EventKind.RETRY, self.on_retry)
        hub.on(EventKind.PROGRESS, self.on_progress)
        hub.on(EventKind.COMPLETE, self.on_complete)
        hub.on(EventKind.EXIT, self.on_exit)
        return self

    def on_start(self) -> None:
        self.logger.info("Preloading started...")
        if self.show_bar and self._bar is None:
            self._bar = tqdm(total=self.total, unit="res", desc="Preload")

    def on_load(self, descriptor: ResourceDescriptor) -> None:
        self._write(f"Loaded: {descriptor.id}")

    def on_error(self, descriptor: ResourceDescriptor, error: BaseException) -> None:
        self._write(f"Failed: {descriptor.id} ({error})", level=logging.ERROR)

    def on_retry(self, descriptor: ResourceDescriptor, attempt: int) -> None:
        self._write(f"Retrying {descriptor.id} (Attempt {attempt})", level=logging.WARNING)

    def on_exit(self) -> None:
        self._write("Preloading paused", level=logging.WARNING)

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        finished = snapshot.loaded + snapshot.failed
        if self._bar is not None:
            self._bar.total = snapshot.total
            self._bar.update(finished - self._finished)
            self._bar.set_postfix(eta=format_eta(snapshot.eta_ms), current=snapshot.current)
        self._finished = finished

    def on_complete(self, report: CompletionReport) -> None:
        self.report = report
        self.close()
        self.logger.info(
            f"Complete: {len(report.success)} loaded, {len(report.failed)} failed "
            f"in {report.duration_ms:.0f}ms"
        )

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None

    def _write(self, message: str, level: int = logging.INFO) -> None:
        if self._bar is not None:
            tqdm.write(message)
        else:
            self.logger.log(level, message)
