"""Camera trajectories in the TUM and KITTI text formats."""

from __future__ import annotations

import math
from pathlib import Path
from typing import Callable, Iterable, Iterator

import numpy as np

from slampose.trajectory import FrameRecord


def rotation_to_quaternion(rotation):
    """Return the unit quaternion ``(x, y, z, w)`` of a 3x3 rotation matrix."""
    r = np.asarray(rotation, dtype=float)
    if r.shape != (3, 3):
        raise ValueError("rotation must be a 3x3 matrix")
    trace = r[0, 0] + r[1, 1] + r[2, 2]
    if trace > 0.0:
        s = 2.0 * math.sqrt(trace + 1.0)
        w = 0.25 * s
        x = (r[2, 1] - r[1, 2]) / s
        y = (r[0, 2] - r[2, 0]) / s
        z = (r[1, 0] - r[0, 1]) / s
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = 2.0 * math.sqrt(1.0 + r[0, 0] - r[1, 1] - r[2, 2])
        w = (r[2, 1] - r[1, 2]) / s
        x = 0.25 * s
        y = (r[0, 1] + r[1, 0]) / s
        z = (r[0, 2] + r[2, 0]) / s
    elif r[1, 1] > r[2, 2]:
        s = 2.0 * math.sqrt(1.0 + r[1, 1] - r[0, 0] - r[2, 2])
        w = (r[0, 2] - r[2, 0]) / s
        x = (r[0, 1] + r[1, 0]) / s
        y = 0.25 * s
        z = (r[1, 2] + r[2, 1]) / s
    else:
        s = 2.0 * math.sqrt(1.0 + r[2, 2] - r[0, 0] - r[1, 1])
        w = (r[1, 0] - r[0, 1]) / s
        x = (r[0, 2] + r[2, 0]) / s
        y = (r[1, 2] + r[2, 1]) / s
        z = 0.25 * s
    return (float(x), float(y), float(z), float(w))


def format_tum_line(timestamp, translation, quaternion, precision=9):
    """Format ``timestamp tx ty tz qx qy qz qw`` with fixed-point numbers."""
    translation = list(translation)
    quaternion = list(quaternion)
    if len(translation) != 3 or len(quaternion) != 4:
        raise ValueError("translation needs 3 values and quaternion 4")
    values = " ".join(f"{float(v):.{precision}f}" for v in translation + quaternion)
    return f"{float(timestamp):.6f} {values}"


def format_kitti_line(rotation, translation):
    """Format the 3x4 matrix ``[R | t]`` row by row, as KITTI expects."""
    r = np.asarray(rotation, dtype=float)
    t = np.asarray(translation, dtype=float).reshape(-1)
    if r.shape != (3, 3) or t.shape != (3,):
        raise ValueError("rotation must be 3x3 and translation must have 3 values")
    values = np.column_stack([r, t]).reshape(-1)
    return " ".join(f"{v:.9f}" for v in values)


def camera_poses(
    records: Iterable[FrameRecord],
    reference_pose: Callable[[object], np.ndarray],
    origin_inverse=None,
    include_lost=False,
) -> Iterator[tuple[float, np.ndarray, np.ndarray]]:
    """Yield ``(timestamp, Rwc, twc)`` for each record.

    ``reference_pose`` maps a record's reference to its current world-to-camera
    pose. ``origin_inverse`` is the inverse pose of the first keyframe, so the
    trajectory starts at the origin; None means identity. Lost frames are
    skipped unless ``include_lost`` is set.
    """
    two = np.eye(4) if origin_inverse is None else np.asarray(origin_inverse, dtype=float)
    for entry in records:
        if entry.lost and not include_lost:
            continue
        trw = np.asarray(reference_pose(entry.reference), dtype=float) @ two
        tcw = entry.relative_pose @ trw
        rwc = tcw[:3, :3].T
        twc = -rwc @ tcw[:3, 3]
        yield entry.timestamp, rwc, twc


def save_trajectory_tum(path, records, reference_pose, origin_inverse=None):
    """Write the trajectory of tracked frames in TUM format; return the line count."""
    lines = [
        format_tum_line(timestamp, twc, rotation_to_quaternion(rwc), 9)
        for timestamp, rwc, twc in camera_poses(records, reference_pose, origin_inverse, False)
    ]
    Path(path).write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return len(lines)


def save_trajectory_kitti(path, records, reference_pose, origin_inverse=None):
    """Write the trajectory of every frame in KITTI format; return the line count."""
    lines = [
        format_kitti_line(rwc, twc)
        for _, rwc, twc in camera_poses(records, reference_pose, origin_inverse, True)
    ]
    Path(path).write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return len(lines)