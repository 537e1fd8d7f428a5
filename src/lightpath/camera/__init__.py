"""Camera models for primary ray generation."""

from .pinhole import PinholeCamera, get_camera_info, get_ray, get_ray_jittered, setup_camera

__all__ = [
    "PinholeCamera",
    "setup_camera",
    "get_ray",
    "get_ray_jittered",
    "get_camera_info",
]
