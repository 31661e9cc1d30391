"""Camera pose estimation, similarity alignment, tracking state helpers and trajectory export for visual SLAM."""

__version__ = "0.1.0"