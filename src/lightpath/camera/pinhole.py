"""Pinhole camera for primary ray generation.

The camera is described by a look-at frame and a vertical field of view.
setup_camera() converts it to a viewport at unit distance and stores it in
Taichi fields; kernels then call get_ray() or get_ray_jittered().

Image coordinates are normalized: u runs left to right and v bottom to
top, both in [0, 1].

Example:
    >>> from lightpath.camera.pinhole import PinholeCamera, setup_camera
    >>> camera = PinholeCamera(
    ...     lookfrom=(0.0, 0.0, 3.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=60.0,
    ...     aspect_ratio=1.0,
    ... )
    >>> setup_camera(camera)
"""

import math
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
import taichi as ti
import taichi.math as tm

from ..core.ray import Ray, make_ray
from ..errors import ConfigurationError

vec3 = tm.vec3


@dataclass
class PinholeCamera:
    """Perspective camera without depth of field.

    Attributes:
        lookfrom: Camera position.
        lookat: Point the camera looks at.
        vup: Approximate up direction.
        vfov: Vertical field of view in degrees.
        aspect_ratio: Image width divided by height.
    """

    lookfrom: tuple[float, float, float]
    lookat: tuple[float, float, float]
    vup: tuple[float, float, float]
    vfov: float
    aspect_ratio: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PinholeCamera":
        return cls(
            lookfrom=tuple(data["lookfrom"]),
            lookat=tuple(data["lookat"]),
            vup=tuple(data.get("vup", (0.0, 1.0, 0.0))),
            vfov=float(data["vfov"]),
            aspect_ratio=float(data.get("aspect_ratio", 1.0)),
        )


_camera_origin = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_horizontal = ti.Vector.field(3, dtype=ti.f32, shape=())
_viewport_vertical = ti.Vector.field(3, dtype=ti.f32, shape=())
_lower_left_corner = ti.Vector.field(3, dtype=ti.f32, shape=())


def setup_camera(camera: PinholeCamera) -> None:
    """Upload the camera's viewport to the camera fields.

    Raises:
        ConfigurationError: If the field of view or frame is degenerate.
    """
    if not 0.0 < camera.vfov < 180.0:
        raise ConfigurationError(f"vfov must be in (0, 180) degrees, got {camera.vfov}")
    if camera.aspect_ratio <= 0.0:
        raise ConfigurationError(f"aspect_ratio must be positive, got {camera.aspect_ratio}")

    lookfrom = np.array(camera.lookfrom, dtype=np.float32)
    lookat = np.array(camera.lookat, dtype=np.float32)
    vup = np.array(camera.vup, dtype=np.float32)

    w = lookfrom - lookat
    if np.linalg.norm(w) == 0.0:
        raise ConfigurationError("Camera lookfrom and lookat coincide")
    w = w / np.linalg.norm(w)
    u = np.cross(vup, w)
    if np.linalg.norm(u) == 0.0:
        raise ConfigurationError("Camera vup is parallel to the view direction")
    u = u / np.linalg.norm(u)
    v = np.cross(w, u)

    viewport_height = 2.0 * math.tan(math.radians(camera.vfov) / 2.0)
    viewport_width = camera.aspect_ratio * viewport_height
    horizontal = viewport_width * u
    vertical = viewport_height * v

    _camera_origin[None] = lookfrom.tolist()
    _viewport_horizontal[None] = horizontal.tolist()
    _viewport_vertical[None] = vertical.tolist()
    _lower_left_corner[None] = (lookfrom - w - horizontal / 2.0 - vertical / 2.0).tolist()


@ti.func
def get_ray(u: ti.f32, v: ti.f32) -> Ray:
    """Ray through normalized image coordinates (u, v)."""
    target = _lower_left_corner[None] + u * _viewport_horizontal[None] + v * _viewport_vertical[None]
    origin = _camera_origin[None]
    return make_ray(origin, tm.normalize(target - origin))


@ti.func
def get_ray_jittered(pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32) -> Ray:
    """Ray through a uniformly random point of pixel (i, j); j = 0 is the bottom row."""
    u = (ti.cast(pixel_i, ti.f32) + ti.random(ti.f32)) / ti.cast(width, ti.f32)
    v = (ti.cast(pixel_j, ti.f32) + ti.random(ti.f32)) / ti.cast(height, ti.f32)
    return get_ray(u, v)


def get_camera_info() -> dict[str, tuple[float, float, float]]:
    """Current camera fields, for debugging and tests."""
    fields = {
        "origin": _camera_origin,
        "horizontal": _viewport_horizontal,
        "vertical": _viewport_vertical,
        "lower_left": _lower_left_corner,
    }
    return {name: tuple(float(c) for c in field[None]) for name, field in fields.items()}
