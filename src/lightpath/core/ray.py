"""Ray data structure, shading frames and vector utilities.

This module provides the fundamental Ray dataclass and the small vector
helpers shared by every transport kernel. A ray carries its valid parametric
interval ``[mint, maxt]`` so that shadow rays toward an emitter can be built
once and tested without further bookkeeping.

All operations are designed to work within Taichi kernels.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from lightpath.core.ray import make_ray, ray_at
    >>> # Inside a kernel:
    >>> # ray = make_ray(origin, direction)
    >>> # point = ray_at(ray, 5.0)
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3
vec2 = tm.vec2

# Ray offset epsilon to avoid self-intersection
RAY_EPSILON = 1e-4

# Default parametric interval for primary and bounce rays
T_MIN = 1e-4
T_MAX = 1e10


@ti.dataclass
class Ray:
    """A ray with an origin, a direction and a valid parametric interval.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction vector of the ray (vec3). Normalized for
            transport; warps may produce non-unit directions.
        mint: Smallest valid parameter (>= 0).
        maxt: Largest valid parameter (>= mint).
    """

    origin: vec3
    direction: vec3
    mint: ti.f32
    maxt: ti.f32


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t."""
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    """Create a ray with the default interval ``[T_MIN, T_MAX]``."""
    return Ray(origin=origin, direction=direction, mint=T_MIN, maxt=T_MAX)


@ti.func
def make_segment(origin: vec3, direction: vec3, mint: ti.f32, maxt: ti.f32) -> Ray:
    """Create a ray restricted to ``[mint, maxt]``.

    The interval is clamped so that ``0 <= mint <= maxt`` always holds.

    Args:
        origin: The starting point of the ray.
        direction: The direction of the ray.
        mint: Requested lower bound.
        maxt: Requested upper bound.

    Returns:
        A new Ray instance.
    """
    lo = tm.max(mint, 0.0)
    hi = tm.max(maxt, lo)
    return Ray(origin=origin, direction=direction, mint=lo, maxt=hi)


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a normal.

    Args:
        incident: The incoming direction vector (pointing toward the surface).
        normal: The surface normal (should be normalized).

    Returns:
        The reflected direction vector.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(incident: vec3, normal: vec3, eta: ti.f32) -> vec3:
    """Refract an incident vector through a surface.

    Computes the refracted direction using Snell's law. If total internal
    reflection occurs, returns a zero vector.

    Args:
        incident: The incoming direction vector (should be normalized).
        normal: The surface normal on the incident side (normalized).
        eta: The ratio of refractive indices (n_incident / n_transmitted).

    Returns:
        The refracted direction vector, or zero vector if total internal
        reflection occurs.
    """
    cos_i = -tm.dot(incident, normal)
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    result = vec3(0.0, 0.0, 0.0)
    if sin2_t <= 1.0:
        cos_t = ti.sqrt(1.0 - sin2_t)
        result = eta * incident + (eta * cos_i - cos_t) * normal
    return result


@ti.func
def near_zero(v: vec3) -> ti.i32:
    """Check if a vector is near zero in all components."""
    s = 1e-8
    return ti.abs(v.x) < s and ti.abs(v.y) < s and ti.abs(v.z) < s


@ti.func
def max_component(v: vec3) -> ti.f32:
    """Largest of the three channels."""
    return tm.max(v.x, tm.max(v.y, v.z))


@ti.func
def luminance(c: vec3) -> ti.f32:
    """Rec. 709 luminance of a linear RGB color."""
    return 0.2126 * c.x + 0.7152 * c.y + 0.0722 * c.z


# =============================================================================
# Shading Frames
# =============================================================================


@ti.func
def build_onb_from_normal(normal: vec3):
    """Build an orthonormal basis from a normal vector.

    Args:
        normal: The surface normal (should be normalized).

    Returns:
        A tuple (tangent, bitangent, normal) forming an orthonormal basis.
    """
    a = vec3(1.0, 0.0, 0.0)
    if ti.abs(normal.x) > 0.9:
        a = vec3(0.0, 1.0, 0.0)
    tangent = tm.normalize(tm.cross(a, normal))
    bitangent = tm.cross(normal, tangent)
    return tangent, bitangent, normal


@ti.func
def to_world(local_dir: vec3, normal: vec3) -> vec3:
    """Transform a direction from the local frame (z = normal) to world space."""
    tangent, bitangent, n = build_onb_from_normal(normal)
    return local_dir.x * tangent + local_dir.y * bitangent + local_dir.z * n


@ti.func
def to_local(world_dir: vec3, normal: vec3) -> vec3:
    """Transform a world-space direction into the local frame of ``normal``."""
    tangent, bitangent, n = build_onb_from_normal(normal)
    return vec3(tm.dot(world_dir, tangent), tm.dot(world_dir, bitangent), tm.dot(world_dir, n))


@ti.func
def offset_ray_origin(point: vec3, normal: vec3, direction: vec3) -> vec3:
    """Offset ray origin to avoid self-intersection.

    Pushes the point slightly along the geometric normal on the side the
    new ray travels toward (above the surface for reflection, below for
    refraction).
    """
    offset_dir = normal
    if tm.dot(direction, normal) < 0.0:
        offset_dir = -normal
    return point + RAY_EPSILON * offset_dir


# =============================================================================
# Spherical Coordinates
# =============================================================================


@ti.func
def spherical_direction(theta: ti.f32, phi: ti.f32) -> vec3:
    """Unit vector for polar angle ``theta`` (from +z) and azimuth ``phi``."""
    sin_theta = ti.sin(theta)
    return vec3(sin_theta * ti.cos(phi), sin_theta * ti.sin(phi), ti.cos(theta))


@ti.func
def spherical_coordinates(v: vec3):
    """Polar angle in [0, pi] and azimuth in [0, 2pi) of a unit vector."""
    theta = ti.acos(tm.clamp(v.z, -1.0, 1.0))
    phi = ti.atan2(v.y, v.x)
    if phi < 0.0:
        phi += 2.0 * tm.pi
    return theta, phi
