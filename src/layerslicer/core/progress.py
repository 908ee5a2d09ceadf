"""
Cooperative progress reporting and cancellation.

Long loops (triangle adjacency, layer building) call :meth:`Progress.poll`
with their iteration counter. The callback fires on every ``interval``-th
iteration, and ``poll`` returns False once a stop has been requested, so the
loop can end early independent of its bounds. Loops nested inside a stage
(segment cutting and stitching within "Slicing") use :meth:`Progress.check`,
which only reads the stop flag.
"""

import threading
from typing import Callable, Optional

# (label, fraction 0.0-1.0)
ProgressCallback = Callable[[str, float], None]


def _noop_callback(label: str, fraction: float) -> None:
    pass


class Progress:
    """Progress sink with a thread-safe stop flag.

    Example:
        >>> progress = Progress(interval=100)
        >>> progress.start("Split Shapes", total=5000)
        >>> for i in range(5000):
        ...     if not progress.poll(i):
        ...         break
        >>> progress.finish()
    """

    def __init__(
        self,
        callback: Optional[ProgressCallback] = None,
        interval: int = 100,
    ) -> None:
        self._callback = callback or _noop_callback
        self.interval = max(1, int(interval))
        self._stop = threading.Event()
        self.label = ""
        self.total = 0

    @property
    def cancelled(self) -> bool:
        """True once :meth:`stop` has been called."""
        return self._stop.is_set()

    def start(self, label: str, total: int) -> None:
        self.label = label
        self.total = max(0, int(total))
        self._callback(label, 0.0)

    def set_label(self, label: str) -> None:
        self.label = label

    def update(self, value: int) -> None:
        fraction = value / self.total if self.total else 0.0
        self._callback(self.label, min(1.0, max(0.0, fraction)))

    def poll(self, iteration: int) -> bool:
        """Report on iteration-count boundaries; False means stop the loop."""
        if iteration % self.interval == 0:
            self.update(iteration)
        return not self._stop.is_set()

    def check(self) -> bool:
        """False once a stop has been requested. Reports nothing.

        For inner loops running inside another stage, whose counters are not
        part of that stage's total.
        """
        return not self._stop.is_set()

    def stop(self) -> None:
        """Request that running loops end early."""
        self._stop.set()

    def reset(self) -> None:
        self._stop.clear()

    def finish(self) -> None:
        self._callback(self.label, 1.0)
