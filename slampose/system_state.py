"""Requests that other threads hand to the tracking loop, and map change detection."""

from __future__ import annotations

import threading


class SystemRequests:
    """Thread-safe pending requests for a mode change or a reset."""

    def __init__(self) -> None:
        self._mode_lock = threading.Lock()
        self._reset_lock = threading.Lock()
        self._activate = False
        self._deactivate = False
        self._reset = False

    def activate_localization_mode(self) -> None:
        """Ask for tracking without local mapping."""
        with self._mode_lock:
            self._activate = True

    def deactivate_localization_mode(self) -> None:
        """Ask to resume local mapping."""
        with self._mode_lock:
            self._deactivate = True

    def request_reset(self) -> None:
        """Ask for the whole system to be reset."""
        with self._reset_lock:
            self._reset = True

    def take_mode_change(self) -> tuple[bool, ...]:
        """Consume pending mode changes.

        Returns the only-tracking values to apply, in order: activation comes
        before deactivation when both are pending. Empty when none is pending.
        """
        with self._mode_lock:
            changes = []
            if self._activate:
                changes.append(True)
                self._activate = False
            if self._deactivate:
                changes.append(False)
                self._deactivate = False
            return tuple(changes)

    def take_reset(self) -> bool:
        """Consume a pending reset request; return whether one was pending."""
        with self._reset_lock:
            pending = self._reset
            self._reset = False
            return pending


class MapChangeMonitor:
    """Reports when the map's big-change index has advanced since the last check."""

    def __init__(self) -> None:
        self._last_seen = 0

    def has_changed(self, last_big_change_idx) -> bool:
        """Return True if the index grew since the last call that saw a change."""
        if self._last_seen < last_big_change_idx:
            self._last_seen = last_big_change_idx
            return True
        return False