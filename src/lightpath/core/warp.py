"""Importance-sampling warps and their densities.

Each ``square_to_*`` function maps a sample drawn uniformly from the unit
square to a point or direction distributed according to a named target
density. The matching ``square_to_*_pdf`` function returns that density
with respect to the same measure the warp targets: area measure for the
planar domains, solid angle for directions.

Every pdf returns exactly 0 for arguments outside its support (non-unit
vectors for spherical domains, directions below a cap, points outside the
unit disk, negative barycentric coordinates) instead of extrapolating.

Directional warps produce vectors in a local frame whose pole is +z. Use
``lightpath.core.ray.to_world`` to orient them around a surface normal.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from lightpath.core.warp import square_to_cosine_hemisphere
    >>> # Inside a kernel:
    >>> # d = square_to_cosine_hemisphere(ti.math.vec2(ti.random(), ti.random()))
"""

import taichi as ti
import taichi.math as tm

vec2 = tm.vec2
vec3 = tm.vec3

# Tolerance used when testing that a vector lies on the unit sphere
WARP_EPSILON = 1e-3

# Safety cap for the rejection-sampled hemisphere warp
MAX_REJECTION_TRIES = 64

INV_PI = 1.0 / tm.pi
INV_TWO_PI = 0.5 / tm.pi
INV_FOUR_PI = 0.25 / tm.pi


@ti.func
def _is_unit(v: vec3) -> ti.i32:
    return ti.abs(1.0 - tm.length(v)) <= WARP_EPSILON


# =============================================================================
# Planar Domains
# =============================================================================


@ti.func
def square_to_uniform_square(sample: vec2) -> vec2:
    """Identity warp onto the unit square."""
    return sample


@ti.func
def square_to_uniform_square_pdf(p: vec2) -> ti.f32:
    pdf = 0.0
    if 0.0 <= p.x <= 1.0 and 0.0 <= p.y <= 1.0:
        pdf = 1.0
    return pdf


@ti.func
def square_to_uniform_disk(sample: vec2) -> vec2:
    """Uniform point on the unit disk using the square-root radius mapping."""
    r = ti.sqrt(sample.x)
    phi = 2.0 * tm.pi * sample.y
    return vec2(r * ti.cos(phi), r * ti.sin(phi))


@ti.func
def square_to_uniform_disk_pdf(p: vec2) -> ti.f32:
    pdf = 0.0
    if tm.dot(p, p) <= 1.0:
        pdf = INV_PI
    return pdf


@ti.func
def square_to_concentric_disk(sample: vec2) -> vec2:
    """Uniform point on the unit disk using Shirley and Chiu's concentric map.

    Preserves relative distances of the input samples better than the
    square-root mapping, which matters for stratified inputs.
    """
    offset = 2.0 * sample - vec2(1.0, 1.0)
    result = vec2(0.0, 0.0)
    if offset.x != 0.0 or offset.y != 0.0:
        r = 0.0
        theta = 0.0
        if ti.abs(offset.x) > ti.abs(offset.y):
            r = offset.x
            theta = 0.25 * tm.pi * (offset.y / offset.x)
        else:
            r = offset.y
            theta = 0.5 * tm.pi - 0.25 * tm.pi * (offset.x / offset.y)
        result = r * vec2(ti.cos(theta), ti.sin(theta))
    return result


@ti.func
def square_to_concentric_disk_pdf(p: vec2) -> ti.f32:
    return square_to_uniform_disk_pdf(p)


@ti.func
def square_to_uniform_triangle(sample: vec2) -> vec3:
    """Uniform barycentric coordinates ``(u, v, 1 - u - v)`` on a triangle."""
    su = ti.sqrt(sample.x)
    u = 1.0 - su
    v = sample.y * su
    return vec3(u, v, 1.0 - u - v)


@ti.func
def square_to_uniform_triangle_pdf(bary: vec3) -> ti.f32:
    """Density of barycentric coordinates w.r.t. the (u, v) parameter area."""
    pdf = 0.0
    inside = bary.x >= 0.0 and bary.y >= 0.0 and bary.z >= 0.0
    if inside and ti.abs(bary.x + bary.y + bary.z - 1.0) <= WARP_EPSILON:
        pdf = 2.0
    return pdf


# =============================================================================
# Cylinder and Sphere
# =============================================================================


@ti.func
def square_to_uniform_cylinder(sample: vec2) -> vec3:
    """Uniform point on the unit cylinder of height 2 centred on the origin."""
    phi = 2.0 * tm.pi * sample.x
    return vec3(ti.cos(phi), ti.sin(phi), 2.0 * sample.y - 1.0)


@ti.func
def square_to_uniform_cylinder_pdf(v: vec3) -> ti.f32:
    pdf = 0.0
    radial = v.x * v.x + v.y * v.y
    if ti.abs(radial - 1.0) <= WARP_EPSILON and ti.abs(v.z) <= 1.0:
        pdf = INV_FOUR_PI
    return pdf


@ti.func
def square_to_uniform_sphere_cap(sample: vec2, cos_theta_max: ti.f32) -> vec3:
    """Uniform direction inside the cap ``z >= cos_theta_max``.

    Archimedes' hat-box theorem: projecting the cylinder radially onto the
    sphere preserves area, so a uniform height gives a uniform direction.
    """
    cylinder = square_to_uniform_cylinder(sample)
    z = 0.5 * (cylinder.z + 1.0) * (1.0 - cos_theta_max) + cos_theta_max
    r = ti.sqrt(tm.max(0.0, 1.0 - z * z))
    return vec3(r * cylinder.x, r * cylinder.y, z)


@ti.func
def square_to_uniform_sphere_cap_pdf(v: vec3, cos_theta_max: ti.f32) -> ti.f32:
    pdf = 0.0
    if _is_unit(v) and v.z >= cos_theta_max and cos_theta_max < 1.0:
        pdf = INV_TWO_PI / (1.0 - cos_theta_max)
    return pdf


@ti.func
def square_to_uniform_sphere(sample: vec2) -> vec3:
    """Uniform direction on the unit sphere."""
    cylinder = square_to_uniform_cylinder(sample)
    r = ti.sqrt(tm.max(0.0, 1.0 - cylinder.z * cylinder.z))
    return vec3(r * cylinder.x, r * cylinder.y, cylinder.z)


@ti.func
def square_to_uniform_sphere_pdf(v: vec3) -> ti.f32:
    pdf = 0.0
    if _is_unit(v):
        pdf = INV_FOUR_PI
    return pdf


@ti.func
def square_to_uniform_hemisphere(sample: vec2) -> vec3:
    """Uniform direction on the hemisphere ``z >= 0``."""
    return square_to_uniform_sphere_cap(sample, 0.0)


@ti.func
def square_to_uniform_hemisphere_pdf(v: vec3) -> ti.f32:
    return square_to_uniform_sphere_cap_pdf(v, 0.0)


@ti.func
def square_to_cosine_hemisphere(sample: vec2) -> vec3:
    """Cosine-weighted direction on the hemisphere ``z >= 0``.

    The distribution has pdf ``cos(theta) / pi``, which makes it the ideal
    importance sampling density for Lambertian reflection.
    """
    phi = 2.0 * tm.pi * sample.x
    sqrt_r = ti.sqrt(sample.y)
    z = ti.sqrt(tm.max(0.0, 1.0 - sample.y))
    return vec3(ti.cos(phi) * sqrt_r, ti.sin(phi) * sqrt_r, z)


@ti.func
def square_to_cosine_hemisphere_pdf(v: vec3) -> ti.f32:
    pdf = 0.0
    if _is_unit(v) and v.z >= 0.0:
        pdf = v.z * INV_PI
    return pdf


# =============================================================================
# Microfacet Half-Vector Distributions
# =============================================================================


@ti.func
def square_to_beckmann(sample: vec2, alpha: ti.f32) -> vec3:
    """Half vector distributed according to ``D_beckmann(h) cos(theta_h)``."""
    phi = 2.0 * tm.pi * sample.x
    tan2_theta = -alpha * alpha * ti.log(tm.max(1.0 - sample.y, 1e-12))
    cos_theta = 1.0 / ti.sqrt(1.0 + tan2_theta)
    sin_theta = ti.sqrt(tm.max(0.0, 1.0 - cos_theta * cos_theta))
    return vec3(sin_theta * ti.cos(phi), sin_theta * ti.sin(phi), cos_theta)


@ti.func
def square_to_beckmann_pdf(m: vec3, alpha: ti.f32) -> ti.f32:
    pdf = 0.0
    if _is_unit(m) and m.z > 0.0:
        cos2 = m.z * m.z
        tan2 = (1.0 - cos2) / cos2
        a2 = alpha * alpha
        pdf = ti.exp(-tan2 / a2) / (tm.pi * a2 * cos2 * m.z)
    return pdf


@ti.func
def ggx_distribution(cos_theta_h: ti.f32, alpha: ti.f32) -> ti.f32:
    """Trowbridge-Reitz (GGX) normal distribution ``D(h)``."""
    d = 0.0
    if cos_theta_h > 0.0:
        a2 = alpha * alpha
        t = cos_theta_h * cos_theta_h * (a2 - 1.0) + 1.0
        d = a2 / (tm.pi * t * t)
    return d


@ti.func
def square_to_ggx(sample: vec2, alpha: ti.f32) -> vec3:
    """Half vector distributed according to ``D_ggx(h) cos(theta_h)``."""
    phi = 2.0 * tm.pi * sample.x
    a2 = alpha * alpha
    cos2_theta = (1.0 - sample.y) / (1.0 + (a2 - 1.0) * sample.y)
    cos_theta = ti.sqrt(tm.clamp(cos2_theta, 0.0, 1.0))
    sin_theta = ti.sqrt(tm.max(0.0, 1.0 - cos_theta * cos_theta))
    return vec3(sin_theta * ti.cos(phi), sin_theta * ti.sin(phi), cos_theta)


@ti.func
def square_to_ggx_pdf(m: vec3, alpha: ti.f32) -> ti.f32:
    pdf = 0.0
    if _is_unit(m) and m.z > 0.0:
        pdf = ggx_distribution(m.z, alpha) * m.z
    return pdf


# =============================================================================
# Rejection Sampling
# =============================================================================


@ti.func
def sample_uniform_hemisphere_rejection(pole: vec3) -> vec3:
    """Uniform direction on the hemisphere around an arbitrary pole.

    Draws three independent coordinates in [-1, 1], rejects points outside
    the unit ball and flips accepted points into the pole's hemisphere
    instead of rejecting on hemisphere membership. Gives up after
    MAX_REJECTION_TRIES draws and returns the zero vector, which callers
    treat as a zero-weight sample.

    Args:
        pole: Direction defining the hemisphere (need not be normalized).

    Returns:
        A unit direction with ``dot(v, pole) >= 0``, or the zero vector.
    """
    result = vec3(0.0, 0.0, 0.0)
    found = 0
    for _ in range(MAX_REJECTION_TRIES):
        if found == 0:
            v = vec3(
                1.0 - 2.0 * ti.random(ti.f32),
                1.0 - 2.0 * ti.random(ti.f32),
                1.0 - 2.0 * ti.random(ti.f32),
            )
            len2 = tm.dot(v, v)
            if 1e-12 < len2 <= 1.0:
                if tm.dot(v, pole) < 0.0:
                    v = -v
                result = v / ti.sqrt(len2)
                found = 1
    return result


@ti.func
def next_2d() -> vec2:
    """Two fresh uniform numbers from the calling thread's random stream."""
    return vec2(ti.random(ti.f32), ti.random(ti.f32))
