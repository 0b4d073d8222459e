"""
Readiness gate for cluster bootstrap.

After the first monitor starts, the cluster writes the administrative keyring
asynchronously once it reaches quorum. Nothing else may run until that file
exists. This is the orchestrator's only blocking point.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from cephstack.errors import ReadinessCancelled, ReadinessTimeout

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 5
MAX_ATTEMPTS = 3


class ReadinessGate:
    """
    Bounded poll for a file to appear.

    The wait between polls is an Event wait, so cancel() from another thread
    ends it immediately instead of sleeping out the interval.
    """

    def __init__(
        self,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
        exists: Optional[Callable[[Path], bool]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._exists = exists or (lambda path: path.exists())
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def wait_for(self, path: Path) -> int:
        """
        Block until `path` exists.

        Returns:
            Number of polls it took (1-based)

        Raises:
            ReadinessTimeout: File still absent after max_attempts polls
            ReadinessCancelled: cancel() was called during the wait
        """
        path = Path(path)
        # a cancel() only applies to the wait in progress
        self._cancelled.clear()
        for attempt in range(1, self.max_attempts + 1):
            if self._exists(path):
                logger.info(f"{path} present after {attempt} poll(s)")
                return attempt

            if attempt == self.max_attempts:
                break

            logger.info(f"Waiting for the cluster admin key to be ready ({attempt}/{self.max_attempts})...")
            if self._cancelled.wait(self.interval_seconds):
                raise ReadinessCancelled(f"Wait for {path} cancelled")

        logger.error(f"{path} did not appear after {self.max_attempts} polls")
        raise ReadinessTimeout(str(path), self.max_attempts)
