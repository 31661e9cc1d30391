"""Stop and finish handshake of the map viewer loop."""

from __future__ import annotations

import threading
import time
from typing import Callable


class ViewerControl:
    """Thread-safe flags that let other threads pause or end the viewer loop.

    A new control starts out finished and stopped, as a viewer that has not
    begun running yet.
    """

    def __init__(self) -> None:
        self._finish_lock = threading.Lock()
        self._stop_lock = threading.Lock()
        self._finish_requested = False
        self._finished = True
        self._stopped = True
        self._stop_requested = False

    def start(self) -> None:
        """Mark the viewer as running."""
        with self._finish_lock:
            self._finished = False
        with self._stop_lock:
            self._stopped = False

    def request_finish(self) -> None:
        """Ask the viewer loop to end."""
        with self._finish_lock:
            self._finish_requested = True

    def check_finish(self) -> bool:
        """Return whether an end of the loop has been requested."""
        with self._finish_lock:
            return self._finish_requested

    def set_finish(self) -> None:
        """Record that the viewer loop has ended."""
        with self._finish_lock:
            self._finished = True

    def is_finished(self) -> bool:
        """Return whether the viewer loop has ended."""
        with self._finish_lock:
            return self._finished

    def request_stop(self) -> None:
        """Ask a running viewer to pause; ignored while already stopped."""
        with self._stop_lock:
            if not self._stopped:
                self._stop_requested = True

    def is_stopped(self) -> bool:
        """Return whether the viewer is paused."""
        with self._stop_lock:
            return self._stopped

    def stop(self) -> bool:
        """Honour a pending stop request; return True if the viewer paused.

        A pending finish request takes precedence and prevents pausing.
        """
        with self._stop_lock, self._finish_lock:
            if self._finish_requested:
                return False
            if self._stop_requested:
                self._stopped = True
                self._stop_requested = False
                return True
            return False

    def release(self) -> None:
        """Let a paused viewer continue."""
        with self._stop_lock:
            self._stopped = False

    def run(self, step: Callable[[], None], poll_interval: float = 0.003) -> None:
        """Call ``step`` repeatedly until a finish is requested.

        Between steps a pending stop request pauses the loop until
        :meth:`release` is called.
        """
        self.start()
        while True:
            step()
            if self.stop():
                while self.is_stopped():
                    time.sleep(poll_interval)
            if self.check_finish():
                break
        self.set_finish()