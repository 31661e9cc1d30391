# slampose

Camera pose estimation building blocks for feature-based visual SLAM,
written on top of NumPy.

## What is inside

- `slampose.epnp`: the EPnP solver. `EPnP(fx, fy, cx, cy).compute_pose(world_points, image_points)`
  returns a `PoseEstimate` with `rotation`, `translation`, the mean
  reprojection `error` and a 4x4 `matrix`. The helpers
  `choose_control_points`, `barycentric_coordinates` and
  `estimate_rotation_translation` are public too.
- `slampose.epnp_math`: the numerical pieces behind EPnP. It has the Householder
  least-squares solver `qr_solve`, which raises `numpy.linalg.LinAlgError` on a
  zero column. It also has `compute_l_6x10`, `compute_rho`, the three beta
  approximations `find_betas_approx_1/2/3`, the five-step `gauss_newton`
  refinement, and `mat_to_quat` and `relative_error` for comparing poses.
- `slampose.pnp_ransac`: `PnPSolver`, a RANSAC loop around EPnP. It takes
  `Correspondence` records (world point, image point, keypoint scale
  variance, keypoint index) and returns a `RansacResult` from `iterate(n)`
  or `find()`. A seed can be given for reproducible sampling.
  `set_ransac_parameters` adapts the minimum inlier count and the iteration
  budget to the number of matches.
- `slampose.sim3`: `compute_sim3` gives Horn's closed-form similarity between
  two point sets and returns a `Sim3` with `matrix` and `inverse()`.
  `project` and `camera_to_image` handle pinhole projection. `Sim3Solver`
  is a RANSAC search over `Sim3Match` pairs that returns a `Sim3Result`.
- `slampose.settings`: `Sensor` (monocular, stereo, RGB-D), `CameraSettings`
  and `load_settings`. `load_settings` reads calibration, frame rate, depth
  thresholds and ORB extractor parameters from a YAML settings file, and it
  accepts a `%YAML:1.0` header.
- `slampose.tracking_modes`: `TrackingState`, `TrackingMethod`,
  `choose_tracking_methods` (which pose-tracking methods to try for a new
  frame), `next_state`, `pose_inverse` and the constant-velocity
  `update_velocity`.
- `slampose.system_state`: `SystemRequests`, thread-safe pending
  localization-mode and reset requests that the tracking loop consumes with
  `take_mode_change()` and `take_reset()`. It also has `MapChangeMonitor`,
  which reports advances of a map's big-change index.
- `slampose.viewer`: `ViewerControl`, the stop/finish handshake between a
  viewer loop and other threads. `run(step)` calls `step` until a finish is
  requested and pauses while stopped.
- `slampose.trajectory`: `TrajectoryRecorder` keeps one `FrameRecord` per
  processed frame. Each record holds the pose relative to the frame's
  reference keyframe.
- `slampose.trajectory_io`: `save_trajectory_tum` and `save_trajectory_kitti`
  write recorded trajectories as text. Both are built on `camera_poses`,
  `rotation_to_quaternion`, `format_tum_line` and `format_kitti_line`.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

Pose from exact correspondences:

```python
import numpy as np
from slampose.epnp import EPnP

solver = EPnP(fx=500.0, fy=500.0, cx=320.0, cy=240.0)

world = np.random.default_rng(0).uniform(-1.0, 1.0, size=(20, 3)) + [0.0, 0.0, 5.0]
u = 320.0 + 500.0 * world[:, 0] / world[:, 2]
v = 240.0 + 500.0 * world[:, 1] / world[:, 2]
image = np.column_stack([u, v])

estimate = solver.compute_pose(world, image)
print(estimate.rotation)
print(estimate.translation)
```

RANSAC over matches, some of which may be wrong:

```python
from slampose.pnp_ransac import Correspondence, PnPSolver

matches = [
    Correspondence(world_point=w, image_point=p, sigma_square=1.0, index=i)
    for i, (w, p) in enumerate(zip(world, image))
]
ransac = PnPSolver(matches, n_matches=len(matches), fx=500.0, fy=500.0, cx=320.0, cy=240.0, seed=1)
result = ransac.find()
print(result.transform, result.n_inliers)
```

Loading calibration from a settings file:

```python
from slampose.settings import Sensor, load_settings

settings = load_settings("camera.yaml", Sensor.STEREO)
K = settings.camera_matrix()
```

## What this package does not do

This is a library of pieces, not a running SLAM system. It has no feature
extraction or matching, and no map, keyframe or map point storage. It does
not do bundle adjustment, loop closing or local mapping, and it has no
policy for when to insert keyframes. `slampose.viewer` only coordinates a
viewer thread and draws nothing. There is no command-line program; you use
the package by importing it.