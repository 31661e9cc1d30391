"""Camera and feature-extractor settings read from a tracking settings file."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import yaml


class Sensor(enum.IntEnum):
    """Kind of camera input."""

    MONOCULAR = 0
    STEREO = 1
    RGBD = 2


_DEFAULT_FPS = 30.0


def _number(settings, key) -> float:
    value = settings.get(key, 0)
    if value is None:
        return 0.0
    return float(value)


@dataclass(frozen=True)
class CameraSettings:
    """Calibration, frame rate and ORB extractor parameters."""

    sensor: Sensor
    fx: float
    fy: float
    cx: float
    cy: float
    dist_coef: tuple[float, ...]
    bf: float
    fps: float
    min_frames: int
    max_frames: int
    rgb: bool
    n_features: int
    scale_factor: float
    n_levels: int
    ini_th_fast: int
    min_th_fast: int
    th_depth: float | None = None
    depth_map_factor: float | None = None

    @classmethod
    def from_mapping(cls, settings, sensor):
        """Build settings from a mapping of setting names to values.

        Missing numeric entries read as zero.
        """
        sensor = Sensor(sensor)
        fx = _number(settings, "Camera.fx")

        dist = [
            _number(settings, "Camera.k1"),
            _number(settings, "Camera.k2"),
            _number(settings, "Camera.p1"),
            _number(settings, "Camera.p2"),
        ]
        k3 = _number(settings, "Camera.k3")
        if k3 != 0:
            dist.append(k3)

        bf = _number(settings, "Camera.bf")
        fps = _number(settings, "Camera.fps")
        if fps == 0:
            fps = _DEFAULT_FPS

        th_depth = None
        if sensor in (Sensor.STEREO, Sensor.RGBD):
            th_depth = bf * _number(settings, "ThDepth") / fx

        depth_map_factor = None
        if sensor is Sensor.RGBD:
            factor = _number(settings, "DepthMapFactor")
            depth_map_factor = 1.0 if abs(factor) < 1e-5 else 1.0 / factor

        return cls(
            sensor=sensor,
            fx=fx,
            fy=_number(settings, "Camera.fy"),
            cx=_number(settings, "Camera.cx"),
            cy=_number(settings, "Camera.cy"),
            dist_coef=tuple(dist),
            bf=bf,
            fps=fps,
            min_frames=0,
            max_frames=int(fps),
            rgb=bool(int(_number(settings, "Camera.RGB"))),
            n_features=int(_number(settings, "ORBextractor.nFeatures")),
            scale_factor=_number(settings, "ORBextractor.scaleFactor"),
            n_levels=int(_number(settings, "ORBextractor.nLevels")),
            ini_th_fast=int(_number(settings, "ORBextractor.iniThFAST")),
            min_th_fast=int(_number(settings, "ORBextractor.minThFAST")),
            th_depth=th_depth,
            depth_map_factor=depth_map_factor,
        )

    @property
    def initializer_features(self) -> int:
        """Features extracted while initialising: doubled for a monocular camera."""
        if self.sensor is Sensor.MONOCULAR:
            return 2 * self.n_features
        return self.n_features

    def camera_matrix(self) -> np.ndarray:
        """Return the 3x3 intrinsic matrix."""
        k = np.eye(3)
        k[0, 0] = self.fx
        k[1, 1] = self.fy
        k[0, 2] = self.cx
        k[1, 2] = self.cy
        return k


def load_settings(path, sensor):
    """Read a YAML settings file (an OpenCV ``%YAML:1.0`` header is accepted)."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"failed to open settings file at: {path}")
    text = path.read_text(encoding="utf-8")
    lines = [line for line in text.splitlines() if not line.lstrip().startswith("%")]
    lines = [line for line in lines if line.strip() != "---"]
    data = yaml.safe_load("\n".join(lines))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"settings file {path} does not hold a mapping")
    return CameraSettings.from_mapping(data, sensor)