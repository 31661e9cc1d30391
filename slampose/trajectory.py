"""Per-frame pose records used to rebuild the full camera trajectory.

Each frame's pose is kept relative to its reference keyframe. Bundle
adjustment and pose-graph optimisation later move the keyframes, and the
frame poses follow them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

import numpy as np


@dataclass(frozen=True, eq=False)
class FrameRecord:
    """A frame's pose relative to its reference keyframe, ``Tcr = Tcw @ Twr``."""

    relative_pose: np.ndarray
    reference: Any
    timestamp: float
    lost: bool


class TrajectoryRecorder:
    """Ordered list of frame records, one per processed frame."""

    def __init__(self) -> None:
        self._records: list[FrameRecord] = []

    def record(self, tcw, reference, reference_pose_inverse, timestamp, lost):
        """Store the pose of a processed frame and return the new record.

        ``tcw`` is the frame pose, or None when tracking produced no pose; the
        previous record's pose, reference and timestamp are then repeated
        with the new ``lost`` flag. ``reference_pose_inverse`` is ``Twr`` of
        the frame's reference keyframe.
        """
        if tcw is None:
            if not self._records:
                raise ValueError("no previous frame pose to repeat")
            previous = self._records[-1]
            entry = FrameRecord(
                previous.relative_pose.copy(),
                previous.reference,
                previous.timestamp,
                bool(lost),
            )
        else:
            tcw = np.asarray(tcw, dtype=float)
            twr = np.asarray(reference_pose_inverse, dtype=float)
            if tcw.shape != (4, 4) or twr.shape != (4, 4):
                raise ValueError("poses must be 4x4 matrices")
            entry = FrameRecord(tcw @ twr, reference, float(timestamp), bool(lost))
        self._records.append(entry)
        return entry

    def reset(self) -> None:
        """Forget every record."""
        self._records.clear()

    def __iter__(self) -> Iterator[FrameRecord]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)