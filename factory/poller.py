"""Periodic discovery loop.

Each tick asks the tracker for assigned open items, drops the ones already in
the ledger and runs the pipeline on the rest, one at a time, saving the
ledger after every item.
"""

import threading

from factory.backoff import backoff_delay
from factory.errors import FactoryError
from factory.interfaces import TrackerClient
from factory.ledger import Ledger, LedgerRecord
from factory.logger import get_logger
from factory.pipeline import Pipeline, Result

logger = get_logger(__name__)

# Smallest wait after a failed tick
MIN_BACKOFF_SECONDS = 2


class Poller:
    """Drives the pipeline from the tracker's list of assigned items."""

    def __init__(
        self,
        tracker: TrackerClient,
        pipeline: Pipeline,
        ledger: Ledger,
        shutdown_event: threading.Event | None = None,
    ) -> None:
        self.tracker = tracker
        self.pipeline = pipeline
        self.ledger = ledger
        self.shutdown_event = shutdown_event or threading.Event()
        self._tick_in_progress = False

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_in_progress

    def tick(self) -> list[Result]:
        """Process every assigned item not yet in the ledger.

        A tracker failure while listing items is logged and ends the tick.

        Returns:
            Results of the items processed in this tick, in order
        """
        self._tick_in_progress = True
        try:
            return self._tick()
        finally:
            self._tick_in_progress = False

    def _tick(self) -> list[Result]:
        logger.debug("Polling tracker for assigned items")
        try:
            items = self.tracker.fetch_assigned()
        except FactoryError as e:
            logger.error(f"Could not list assigned items: {e}")
            return []

        pending = [item for item in items if not self.ledger.contains(item.key)]
        skipped = len(items) - len(pending)
        logger.info(
            f"Found {len(items)} assigned items, {len(pending)} new"
            + (f" ({skipped} already processed)" if skipped else "")
        )

        results = []
        for item in pending:
            if self.shutdown_event.is_set():
                logger.info("Shutdown requested, ending tick early")
                break
            result = self.pipeline.process(item.key)
            self.ledger.record(item.key, LedgerRecord.from_result(result))
            self.ledger.save()
            results.append(result)
        return results

    def run(self, interval: float) -> None:
        """Tick now and then every interval seconds until shutdown is requested.

        Ticks never overlap. An unexpected exception from a tick is logged and
        followed by an exponential backoff (capped at the interval) instead of
        the normal wait.
        """
        logger.info(f"Poller started (interval {interval:.0f}s)")
        consecutive_failures = 0

        while not self.shutdown_event.is_set():
            try:
                self.tick()
                consecutive_failures = 0
            except Exception as e:
                consecutive_failures += 1
                delay = backoff_delay(
                    consecutive_failures + 1, MIN_BACKOFF_SECONDS, max(interval, MIN_BACKOFF_SECONDS)
                )
                logger.error(f"Error during poll cycle: {e}", exc_info=True)
                logger.info(
                    f"Poll failed ({consecutive_failures} consecutive). "
                    f"Backing off for {delay:.0f}s before retry..."
                )
                # Efficient interruptible sleep using Event.wait()
                if self.shutdown_event.wait(timeout=delay):
                    break
                continue

            if self.shutdown_event.wait(timeout=interval):
                break

        logger.info("Poller stopped")

    def stop(self) -> None:
        self.shutdown_event.set()
