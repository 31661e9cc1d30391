"""Tracking states, the choice of pose-tracking method and the motion model."""

from __future__ import annotations

import enum

import numpy as np


class TrackingState(enum.IntEnum):
    """State of the tracker after the last processed frame."""

    NO_IMAGES_YET = 0
    NOT_INITIALIZED = 1
    OK = 2
    LOST = 3


class TrackingMethod(enum.Enum):
    """Ways of estimating the pose of a new frame."""

    INITIALIZE = "initialize"
    REFERENCE_KEYFRAME = "reference_keyframe"
    MOTION_MODEL = "motion_model"
    RELOCALIZATION = "relocalization"


def choose_tracking_methods(
    state,
    only_tracking,
    visual_odometry,
    has_velocity,
    frame_id,
    last_reloc_frame_id,
):
    """Return the tracking methods to try for a new frame, in order.

    Before initialisation the only method is initialisation. In localization
    mode while tracking mostly visual odometry points, every returned method
    is run and a successful relocalization is preferred. In all other cases
    the later methods are fallbacks, tried only when the earlier ones fail.
    """
    state = TrackingState(state)
    if state in (TrackingState.NO_IMAGES_YET, TrackingState.NOT_INITIALIZED):
        return (TrackingMethod.INITIALIZE,)

    if not only_tracking:
        if state is not TrackingState.OK:
            return (TrackingMethod.RELOCALIZATION,)
        if not has_velocity or frame_id < last_reloc_frame_id + 2:
            return (TrackingMethod.REFERENCE_KEYFRAME,)
        return (TrackingMethod.MOTION_MODEL, TrackingMethod.REFERENCE_KEYFRAME)

    if state is TrackingState.LOST:
        return (TrackingMethod.RELOCALIZATION,)
    if not visual_odometry:
        if has_velocity:
            return (TrackingMethod.MOTION_MODEL,)
        return (TrackingMethod.REFERENCE_KEYFRAME,)
    if has_velocity:
        return (TrackingMethod.MOTION_MODEL, TrackingMethod.RELOCALIZATION)
    return (TrackingMethod.RELOCALIZATION,)


def _as_transform(matrix, name: str) -> np.ndarray:
    array = np.asarray(matrix, dtype=float)
    if array.shape != (4, 4):
        raise ValueError(f"{name} must be a 4x4 matrix")
    return array


def pose_inverse(tcw):
    """Return the inverse of a rigid 4x4 pose ``[R t; 0 1]``."""
    tcw = _as_transform(tcw, "tcw")
    rotation_inv = tcw[:3, :3].T
    twc = np.eye(4)
    twc[:3, :3] = rotation_inv
    twc[:3, 3] = -rotation_inv @ tcw[:3, 3]
    return twc


def update_velocity(current_tcw, last_tcw):
    """Return the constant-velocity motion model ``Tcw_current @ Twc_last``.

    Returns None when the last frame has no pose.
    """
    if last_tcw is None:
        return None
    current = _as_transform(current_tcw, "current_tcw")
    return current @ pose_inverse(last_tcw)


def next_state(tracking_ok):
    """Return the tracking state that follows a frame's tracking outcome."""
    return TrackingState.OK if tracking_ok else TrackingState.LOST