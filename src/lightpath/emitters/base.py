"""Emitter registry shared by every light source kind.

Emitters are stored in preallocated Taichi fields indexed by emitter id.
Each kind (area, point, environment) reads the columns it needs; the
per-kind modules implement sampling and evaluation, and
``lightpath.emitters.sampling`` dispatches between them.
"""

import logging
from enum import IntEnum

import taichi as ti
import taichi.math as tm

from ..core.ray import Ray
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

vec3 = tm.vec3


class EmitterType(IntEnum):
    """Light source kinds."""

    AREA = 0
    POINT = 1
    ENVIRONMENT = 2


class ShapeKind(IntEnum):
    """Primitive an area emitter is bound to."""

    NONE = -1
    SPHERE = 0
    QUAD = 1


@ti.dataclass
class EmitterSample:
    """Result of sampling an emitter from a reference point.

    Attributes:
        point: Sampled point on the emitter.
        normal: Emitter normal at ``point`` (``-wi`` for environment and point lights).
        wi: Unit direction from the reference point toward the emitter.
        distance: Distance to ``point``; T_MAX for the environment.
        pdf: Solid-angle density of ``wi`` (1 for delta emitters, 0 on failure).
        weight: ``Le / pdf``; zero when the pdf is zero.
        is_delta: 1 for emitters that cannot be hit by BSDF sampling.
        shadow_ray: Ray from the reference point covering the visibility test.
    """

    point: vec3
    normal: vec3
    wi: vec3
    distance: ti.f32
    pdf: ti.f32
    weight: vec3
    is_delta: ti.i32
    shadow_ray: Ray


MAX_EMITTERS = 64

# Shadow rays stop this far short of both ends of the segment
SHADOW_EPSILON = 1e-3

emitter_types = ti.field(dtype=ti.i32, shape=MAX_EMITTERS)
# Radiance for area and environment emitters, power for point lights
emitter_radiance = ti.Vector.field(3, dtype=ti.f32, shape=MAX_EMITTERS)
emitter_positions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_EMITTERS)
emitter_shape_kinds = ti.field(dtype=ti.i32, shape=MAX_EMITTERS)
emitter_shape_indices = ti.field(dtype=ti.i32, shape=MAX_EMITTERS)
num_emitters = ti.field(dtype=ti.i32, shape=())

# Id of the environment emitter, or -1
environment_emitter_id = ti.field(dtype=ti.i32, shape=())


def clear_emitters() -> None:
    num_emitters[None] = 0
    environment_emitter_id[None] = -1


def get_emitter_count() -> int:
    return int(num_emitters[None])


def register_emitter(emitter_type: EmitterType, radiance, position=(0.0, 0.0, 0.0)) -> int:
    """Append an emitter to the registry.

    Args:
        emitter_type: Kind of the emitter.
        radiance: Radiance (area, environment scale) or power (point) as RGB.
        position: Position for point lights.

    Returns:
        The new emitter id.

    Raises:
        RuntimeError: If the maximum number of emitters is exceeded.
        ConfigurationError: If any radiance component is negative.
    """
    if any(c < 0.0 for c in radiance):
        raise ConfigurationError(f"Emitter radiance must be non-negative, got {tuple(radiance)}")

    idx = num_emitters[None]
    if idx >= MAX_EMITTERS:
        raise RuntimeError(f"Maximum number of emitters ({MAX_EMITTERS}) exceeded")

    emitter_types[idx] = int(emitter_type)
    emitter_radiance[idx] = [float(radiance[0]), float(radiance[1]), float(radiance[2])]
    emitter_positions[idx] = [float(position[0]), float(position[1]), float(position[2])]
    emitter_shape_kinds[idx] = int(ShapeKind.NONE)
    emitter_shape_indices[idx] = -1
    num_emitters[None] = idx + 1
    logger.debug("registered %s emitter %d", emitter_type.name, idx)
    return idx


def validate_emitters() -> None:
    """Reject area emitters that were never bound to a shape.

    Raises:
        ConfigurationError: If an area emitter has no shape.
    """
    for idx in range(get_emitter_count()):
        if emitter_types[idx] == int(EmitterType.AREA) and emitter_shape_kinds[idx] < 0:
            raise ConfigurationError(f"Area emitter {idx} has no shape attached")
