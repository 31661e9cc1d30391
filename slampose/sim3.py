"""Similarity transform between two camera frames estimated with RANSAC.

Three matched 3D points give a closed-form similarity (Horn's method with
unit quaternions). Candidates are scored by reprojecting every match into
both images and counting those whose errors fall below a chi-square bound.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

import numpy as np

_CHI2_THRESHOLD = 9.210


@dataclass(frozen=True, eq=False)
class Sim3:
    """Similarity ``x1 = scale * rotation @ x2 + translation``."""

    rotation: np.ndarray
    translation: np.ndarray
    scale: float

    @property
    def matrix(self) -> np.ndarray:
        """The similarity as a 4x4 matrix with ``scale * rotation`` in its top-left block."""
        transform = np.eye(4)
        transform[:3, :3] = self.scale * self.rotation
        transform[:3, 3] = self.translation
        return transform

    def inverse(self) -> "Sim3":
        """Return the similarity that maps frame 1 back to frame 2."""
        rotation = self.rotation.T
        scale = 1.0 / self.scale
        translation = -scale * rotation @ self.translation
        return Sim3(rotation, translation, scale)


@dataclass(frozen=True, eq=False)
class Sim3Match:
    """One match: the point in the coordinates of each camera and its keypoint scales."""

    point1: np.ndarray
    point2: np.ndarray
    sigma_square1: float
    sigma_square2: float
    index: int


@dataclass
class Sim3Result:
    """Outcome of a RANSAC run; ``transform`` is None when no model was accepted."""

    transform: Sim3 | None
    inliers: list[bool] = field(default_factory=list)
    n_inliers: int = 0
    no_more: bool = False


def _rodrigues(rotation_vector: np.ndarray) -> np.ndarray:
    theta = float(np.linalg.norm(rotation_vector))
    if theta < 1e-12:
        return np.eye(3)
    k = rotation_vector / theta
    skew = np.array([[0.0, -k[2], k[1]], [k[2], 0.0, -k[0]], [-k[1], k[0], 0.0]])
    return np.eye(3) + math.sin(theta) * skew + (1.0 - math.cos(theta)) * skew @ skew


def compute_sim3(points1, points2, fix_scale=False):
    """Return the similarity mapping ``points2`` onto ``points1`` (rows are points)."""
    p1 = np.asarray(points1, dtype=float)
    p2 = np.asarray(points2, dtype=float)
    if p1.ndim != 2 or p1.shape[1] != 3 or p1.shape != p2.shape:
        raise ValueError("points1 and points2 must be arrays of the same shape (n, 3)")
    if len(p1) == 0:
        raise ValueError("at least one point pair is required")

    o1 = p1.mean(axis=0)
    o2 = p2.mean(axis=0)
    pr1 = p1 - o1
    pr2 = p2 - o2

    m = pr2.T @ pr1
    n11 = m[0, 0] + m[1, 1] + m[2, 2]
    n12 = m[1, 2] - m[2, 1]
    n13 = m[2, 0] - m[0, 2]
    n14 = m[0, 1] - m[1, 0]
    n22 = m[0, 0] - m[1, 1] - m[2, 2]
    n23 = m[0, 1] + m[1, 0]
    n24 = m[2, 0] + m[0, 2]
    n33 = -m[0, 0] + m[1, 1] - m[2, 2]
    n34 = m[1, 2] + m[2, 1]
    n44 = -m[0, 0] - m[1, 1] + m[2, 2]
    n = np.array([
        [n11, n12, n13, n14],
        [n12, n22, n23, n24],
        [n13, n23, n33, n34],
        [n14, n24, n34, n44],
    ])

    _, eigenvectors = np.linalg.eigh(n)
    quaternion = eigenvectors[:, -1]
    imaginary = quaternion[1:]
    sin_norm = float(np.linalg.norm(imaginary))
    if sin_norm == 0.0:
        rotation = np.eye(3)
    else:
        angle = math.atan2(sin_norm, quaternion[0])
        rotation = _rodrigues(2.0 * angle * imaginary / sin_norm)

    p3 = pr2 @ rotation.T
    if fix_scale:
        scale = 1.0
    else:
        scale = float(np.sum(pr1 * p3) / np.sum(p3 * p3))

    translation = o1 - scale * rotation @ o2
    return Sim3(rotation, translation, scale)


def _intrinsics(camera_matrix):
    k = np.asarray(camera_matrix, dtype=float)
    return k[0, 0], k[1, 1], k[0, 2], k[1, 2]


def camera_to_image(points, camera_matrix):
    """Project points given in camera coordinates to pixels (n x 2)."""
    p = np.asarray(points, dtype=float).reshape(-1, 3)
    fx, fy, cx, cy = _intrinsics(camera_matrix)
    inv_z = 1.0 / p[:, 2]
    return np.column_stack([fx * p[:, 0] * inv_z + cx, fy * p[:, 1] * inv_z + cy])


def project(points, transform, camera_matrix):
    """Transform points with a 4x4 matrix and project them to pixels (n x 2)."""
    p = np.asarray(points, dtype=float).reshape(-1, 3)
    t = np.asarray(transform, dtype=float)
    return camera_to_image(p @ t[:3, :3].T + t[:3, 3], camera_matrix)


class Sim3Solver:
    """RANSAC estimation of the similarity between two keyframes."""

    def __init__(self, matches, n_matches, k1, k2, fix_scale=False, seed=None):
        self.matches = list(matches)
        self.n_matches = int(n_matches)
        self.k1 = np.asarray(k1, dtype=float)
        self.k2 = np.asarray(k2, dtype=float)
        self.fix_scale = bool(fix_scale)
        self._rng = random.Random(seed)

        self._points1 = np.array([m.point1 for m in self.matches], dtype=float).reshape(-1, 3)
        self._points2 = np.array([m.point2 for m in self.matches], dtype=float).reshape(-1, 3)
        self._max_error1 = np.array([_CHI2_THRESHOLD * m.sigma_square1 for m in self.matches])
        self._max_error2 = np.array([_CHI2_THRESHOLD * m.sigma_square2 for m in self.matches])
        self._image1 = camera_to_image(self._points1, self.k1)
        self._image2 = camera_to_image(self._points2, self.k2)

        self.best: Sim3 | None = None
        self.best_inliers: list[bool] = []
        self.best_n_inliers = 0
        self.iterations = 0
        self.set_ransac_parameters()

    def set_ransac_parameters(self, probability=0.99, min_inliers=6, max_iterations=300):
        """Configure RANSAC and reset the iteration count."""
        self.ransac_probability = probability
        self.ransac_min_inliers = min_inliers
        n = len(self.matches)

        if min_inliers == n or n == 0 or min_inliers >= n:
            n_iterations = 1
        else:
            epsilon = min_inliers / n
            n_iterations = math.ceil(math.log(1 - probability) / math.log(1 - epsilon ** 3))

        self.ransac_max_iterations = max(1, min(n_iterations, max_iterations))
        self.iterations = 0

    def iterate(self, n_iterations):
        """Run up to ``n_iterations`` more RANSAC iterations."""
        inliers = [False] * self.n_matches
        n = len(self.matches)
        if n < self.ransac_min_inliers:
            return Sim3Result(None, inliers, 0, True)

        current = 0
        while self.iterations < self.ransac_max_iterations and current < n_iterations:
            current += 1
            self.iterations += 1

            sample = self._sample(n)
            candidate = compute_sim3(self._points1[sample], self._points2[sample], self.fix_scale)
            candidate_inliers = self._check_inliers(candidate)
            count = int(candidate_inliers.sum())

            if count >= self.best_n_inliers:
                self.best = candidate
                self.best_inliers = candidate_inliers.tolist()
                self.best_n_inliers = count

                if count > self.ransac_min_inliers:
                    for match, is_inlier in zip(self.matches, candidate_inliers):
                        if is_inlier:
                            inliers[match.index] = True
                    return Sim3Result(candidate, inliers, count, False)

        no_more = self.iterations >= self.ransac_max_iterations
        return Sim3Result(None, inliers, 0, no_more)

    def find(self):
        """Run RANSAC for its whole iteration budget."""
        return self.iterate(self.ransac_max_iterations)

    def _sample(self, n):
        available = list(range(n))
        chosen = []
        for _ in range(3):
            if not available:
                raise ValueError("at least three matches are needed to estimate a similarity")
            position = self._rng.randint(0, len(available) - 1)
            chosen.append(available[position])
            available[position] = available[-1]
            available.pop()
        return chosen

    def _check_inliers(self, candidate: Sim3) -> np.ndarray:
        p2_in_1 = project(self._points2, candidate.matrix, self.k1)
        p1_in_2 = project(self._points1, candidate.inverse().matrix, self.k2)
        err1 = np.sum((self._image1 - p2_in_1) ** 2, axis=1)
        err2 = np.sum((p1_in_2 - self._image2) ** 2, axis=1)
        return (err1 < self._max_error1) & (err2 < self._max_error2)