"""Camera pose from 3D-2D matches with EPnP inside a RANSAC loop.

Minimal samples of correspondences give candidate poses. A candidate that
explains enough matches is refined with EPnP on all inliers of the best
candidate so far. A chi-square bound, scaled by each keypoint's scale
variance, decides which matches count as inliers.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field

import numpy as np

from slampose.epnp import EPnP, PoseEstimate


@dataclass(frozen=True, eq=False)
class Correspondence:
    """A map point in world coordinates matched to an undistorted keypoint."""

    world_point: np.ndarray
    image_point: np.ndarray
    sigma_square: float
    index: int


@dataclass
class RansacResult:
    """Outcome of a RANSAC run; ``transform`` is None when no pose was accepted.

    ``inliers`` has one flag per keypoint when a pose was accepted and is
    empty otherwise.
    """

    transform: np.ndarray | None
    inliers: list[bool] = field(default_factory=list)
    n_inliers: int = 0
    no_more: bool = False


class PnPSolver:
    """RANSAC estimation of the camera pose from map point matches."""

    def __init__(self, correspondences, n_matches, fx, fy, cx, cy, seed=None):
        self.correspondences = list(correspondences)
        self.n_matches = int(n_matches)
        self._epnp = EPnP(fx, fy, cx, cy)
        self._rng = random.Random(seed)

        self._world = np.array(
            [c.world_point for c in self.correspondences], dtype=float
        ).reshape(-1, 3)
        self._image = np.array(
            [c.image_point for c in self.correspondences], dtype=float
        ).reshape(-1, 2)
        self._sigma_square = np.array(
            [c.sigma_square for c in self.correspondences], dtype=float
        )

        n = len(self.correspondences)
        self.iterations = 0
        self.best_transform: np.ndarray | None = None
        self.best_inliers = np.zeros(n, dtype=bool)
        self.best_n_inliers = 0
        self.set_ransac_parameters()

    def set_ransac_parameters(
        self,
        probability=0.99,
        min_inliers=8,
        max_iterations=300,
        min_set=4,
        epsilon=0.4,
        th2=5.991,
    ):
        """Configure RANSAC, adapting the thresholds to the number of matches."""
        n = len(self.correspondences)
        self.ransac_probability = probability
        self.ransac_min_set = int(min_set)

        adjusted_min = max(int(n * epsilon), int(min_inliers), int(min_set))
        self.ransac_min_inliers = adjusted_min

        if n > 0 and epsilon < adjusted_min / n:
            epsilon = adjusted_min / n
        self.ransac_epsilon = epsilon

        if adjusted_min >= n:
            n_iterations = 1
        else:
            n_iterations = math.ceil(
                math.log(1 - probability) / math.log(1 - epsilon ** 3)
            )
        self.ransac_max_iterations = max(1, min(n_iterations, int(max_iterations)))

        self.max_error = self._sigma_square * th2

    def iterate(self, n_iterations):
        """Run RANSAC iterations until both the budget and ``n_iterations`` are used up.

        Returns as soon as a refined pose is supported by enough inliers.
        """
        n = len(self.correspondences)
        if n < self.ransac_min_inliers:
            return RansacResult(None, [], 0, True)

        current = 0
        while self.iterations < self.ransac_max_iterations or current < n_iterations:
            current += 1
            self.iterations += 1

            sample = self._sample(n)
            estimate = self._epnp.compute_pose(self._world[sample], self._image[sample])
            inliers = self._check_inliers(estimate)
            count = int(inliers.sum())

            if count >= self.ransac_min_inliers:
                if count > self.best_n_inliers:
                    self.best_inliers = inliers
                    self.best_n_inliers = count
                    self.best_transform = estimate.matrix

                refined = self._refine()
                if refined is not None:
                    return refined

        if self.iterations >= self.ransac_max_iterations:
            if self.best_n_inliers >= self.ransac_min_inliers:
                return RansacResult(
                    self.best_transform.copy(),
                    self._keypoint_flags(self.best_inliers),
                    self.best_n_inliers,
                    True,
                )
            return RansacResult(None, [], 0, True)
        return RansacResult(None, [], 0, False)

    def find(self):
        """Run RANSAC for its whole iteration budget."""
        return self.iterate(self.ransac_max_iterations)

    def _sample(self, n):
        available = list(range(n))
        chosen = []
        for _ in range(self.ransac_min_set):
            position = self._rng.randint(0, len(available) - 1)
            chosen.append(available[position])
            available[position] = available[-1]
            available.pop()
        return chosen

    def _check_inliers(self, estimate: PoseEstimate) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            camera = self._world @ estimate.rotation.T + estimate.translation
            inv_z = 1.0 / camera[:, 2]
            ue = self._epnp.cx + self._epnp.fx * camera[:, 0] * inv_z
            ve = self._epnp.cy + self._epnp.fy * camera[:, 1] * inv_z
            error2 = (self._image[:, 0] - ue) ** 2 + (self._image[:, 1] - ve) ** 2
            return error2 < self.max_error

    def _refine(self) -> RansacResult | None:
        indices = np.flatnonzero(self.best_inliers)
        estimate = self._epnp.compute_pose(self._world[indices], self._image[indices])
        inliers = self._check_inliers(estimate)
        count = int(inliers.sum())
        if count > self.ransac_min_inliers:
            return RansacResult(estimate.matrix, self._keypoint_flags(inliers), count, False)
        return None

    def _keypoint_flags(self, inliers) -> list[bool]:
        flags = [False] * self.n_matches
        for correspondence, is_inlier in zip(self.correspondences, inliers):
            if is_inlier:
                flags[correspondence.index] = True
        return flags