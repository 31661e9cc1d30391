"""Camera pose from 3D-2D correspondences with the EPnP algorithm.

World points are expressed as weighted sums of four control points. The
camera coordinates of those control points are recovered from the null space
of a linear system built from the image measurements. Rotation and
translation then follow from aligning camera and world coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from slampose.epnp_math import (
    compute_l_6x10,
    compute_rho,
    find_betas_approx_1,
    find_betas_approx_2,
    find_betas_approx_3,
    gauss_newton,
)


@dataclass(frozen=True, eq=False)
class PoseEstimate:
    """Camera pose ``x_c = rotation @ x_w + translation`` and its mean reprojection error."""

    rotation: np.ndarray
    translation: np.ndarray
    error: float

    @property
    def matrix(self) -> np.ndarray:
        """The pose as a 4x4 homogeneous transform."""
        transform = np.eye(4)
        transform[:3, :3] = self.rotation
        transform[:3, 3] = self.translation
        return transform


def _as_points(points, width: int, name: str) -> np.ndarray:
    array = np.asarray(points, dtype=float)
    if array.ndim != 2 or array.shape[1] != width:
        raise ValueError(f"{name} must be an array of shape (n, {width})")
    return array


def choose_control_points(world_points):
    """Return four control points: the centroid and three points along the principal axes."""
    pws = _as_points(world_points, 3, "world_points")
    n = len(pws)
    if n == 0:
        raise ValueError("at least one world point is required")
    centroid = pws.mean(axis=0)
    centred = pws - centroid
    u, singular_values, _ = np.linalg.svd(centred.T @ centred)
    axes = u.T
    scales = np.sqrt(singular_values / n)
    control_points = np.empty((4, 3))
    control_points[0] = centroid
    control_points[1:] = centroid + scales[:, None] * axes
    return control_points


def barycentric_coordinates(world_points, control_points):
    """Return the weights ``alphas`` (n x 4) with ``alphas @ control_points == world_points``."""
    pws = _as_points(world_points, 3, "world_points")
    cws = _as_points(control_points, 3, "control_points")
    if len(cws) != 4:
        raise ValueError("exactly four control points are required")
    basis = (cws[1:] - cws[0]).T
    basis_inv = np.linalg.pinv(basis)
    alphas = np.empty((len(pws), 4))
    alphas[:, 1:] = (pws - cws[0]) @ basis_inv.T
    alphas[:, 0] = 1.0 - alphas[:, 1:].sum(axis=1)
    return alphas


def estimate_rotation_translation(camera_points, world_points):
    """Align world points to camera points; return ``(rotation, translation)``."""
    pcs = _as_points(camera_points, 3, "camera_points")
    pws = _as_points(world_points, 3, "world_points")
    if len(pcs) != len(pws):
        raise ValueError("camera_points and world_points must have the same length")
    if len(pcs) == 0:
        raise ValueError("at least one point is required")
    pc0 = pcs.mean(axis=0)
    pw0 = pws.mean(axis=0)
    abt = (pcs - pc0).T @ (pws - pw0)
    u, _, vt = np.linalg.svd(abt)
    rotation = u @ vt
    if np.linalg.det(rotation) < 0:
        rotation[2] = -rotation[2]
    translation = pc0 - rotation @ pw0
    return rotation, translation


class EPnP:
    """EPnP solver for a pinhole camera with the given intrinsics."""

    def __init__(self, fx, fy, cx, cy):
        self.fx = float(fx)
        self.fy = float(fy)
        self.cx = float(cx)
        self.cy = float(cy)

    def reprojection_error(self, rotation, translation, world_points, image_points):
        """Return the mean pixel distance between measured and projected points."""
        pws = _as_points(world_points, 3, "world_points")
        us = _as_points(image_points, 2, "image_points")
        if len(pws) != len(us):
            raise ValueError("world_points and image_points must have the same length")
        rotation = np.asarray(rotation, dtype=float)
        translation = np.asarray(translation, dtype=float)
        camera = pws @ rotation.T + translation
        inv_z = 1.0 / camera[:, 2]
        ue = self.cx + self.fx * camera[:, 0] * inv_z
        ve = self.cy + self.fy * camera[:, 1] * inv_z
        return float(np.mean(np.hypot(us[:, 0] - ue, us[:, 1] - ve)))

    def compute_pose(self, world_points, image_points):
        """Estimate the camera pose that best explains the correspondences."""
        pws = _as_points(world_points, 3, "world_points")
        us = _as_points(image_points, 2, "image_points")
        if len(pws) != len(us):
            raise ValueError("world_points and image_points must have the same length")
        if len(pws) == 0:
            raise ValueError("at least one correspondence is required")

        cws = choose_control_points(pws)
        alphas = barycentric_coordinates(pws, cws)
        m = self._measurement_matrix(alphas, us)
        u, _, _ = np.linalg.svd(m.T @ m)
        ut = u.T

        l_6x10 = compute_l_6x10(ut)
        rho = compute_rho(cws)

        best = None
        for approximate in (find_betas_approx_1, find_betas_approx_2, find_betas_approx_3):
            with np.errstate(divide="ignore", invalid="ignore"):
                betas = _refine(l_6x10, rho, approximate(l_6x10, rho))
            candidate = self._pose_from_betas(ut, betas, alphas, pws, us)
            if best is None or candidate.error < best.error:
                best = candidate
        return best

    def _measurement_matrix(self, alphas, us):
        n = len(alphas)
        m = np.zeros((2 * n, 12))
        u = us[:, 0][:, None]
        v = us[:, 1][:, None]
        m[0::2, 0::3] = alphas * self.fx
        m[0::2, 2::3] = alphas * (self.cx - u)
        m[1::2, 1::3] = alphas * self.fy
        m[1::2, 2::3] = alphas * (self.cy - v)
        return m

    def _pose_from_betas(self, ut, betas, alphas, pws, us):
        null_space = ut[[11, 10, 9, 8]].reshape(4, 4, 3)
        ccs = np.einsum("i,ijk->jk", betas, null_space)
        pcs = alphas @ ccs
        if not np.all(np.isfinite(pcs)):
            return PoseEstimate(np.full((3, 3), np.nan), np.full(3, np.nan), float("nan"))
        if pcs[0, 2] < 0.0:
            pcs = -pcs
        rotation, translation = estimate_rotation_translation(pcs, pws)
        with np.errstate(divide="ignore", invalid="ignore"):
            error = self.reprojection_error(rotation, translation, pws, us)
        return PoseEstimate(rotation, translation, error)


def _refine(l_6x10, rho, betas):
    try:
        return gauss_newton(l_6x10, rho, betas)
    except np.linalg.LinAlgError:
        return np.asarray(betas, dtype=float)