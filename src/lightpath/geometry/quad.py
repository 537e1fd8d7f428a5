"""Parallelogram primitive used for walls and rectangular area lights.

A quad is the parallelogram with corners Q, Q+u, Q+v and Q+u+v. Its
outward normal is ``normalize(cross(u, v))`` (right-hand rule), and the
quad parameterization ``(alpha, beta)`` doubles as its texture coordinates.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from lightpath.geometry.quad import Quad, hit_quad
    >>> # Floor quad at y=0, facing +y
    >>> quad = Quad(
    ...     Q=ti.math.vec3(0, 0, 0),
    ...     u=ti.math.vec3(0, 0, 1),
    ...     v=ti.math.vec3(1, 0, 0)
    ... )
"""

import taichi as ti
import taichi.math as tm

from .sphere import HitRecord

vec2 = tm.vec2
vec3 = tm.vec3


@ti.dataclass
class Quad:
    """A parallelogram defined by a corner point and two edge vectors."""

    Q: vec3
    u: vec3
    v: vec3


@ti.func
def _compute_quad_frame(quad: Quad):
    """Plane normal, plane constant and the dual edge vectors of a quad.

    ``w_u`` and ``w_v`` satisfy ``dot(w_u, u) = dot(w_v, v) = 1`` and
    ``dot(w_u, v) = dot(w_v, u) = 0``, so ``alpha = dot(w_u, P - Q)`` and
    ``beta = dot(w_v, P - Q)``. They are zero for a degenerate quad.
    """
    n = tm.cross(quad.u, quad.v)
    normal = tm.normalize(n)
    d = tm.dot(normal, quad.Q)
    n_dot_n = tm.dot(n, n)

    w_u = vec3(0.0, 0.0, 0.0)
    w_v = vec3(0.0, 0.0, 0.0)
    if n_dot_n > 1e-10:
        w_u = tm.cross(quad.v, n) / n_dot_n
        w_v = tm.cross(n, quad.u) / n_dot_n

    return normal, d, w_u, w_v


@ti.func
def hit_quad(
    ray_origin: vec3,
    ray_direction: vec3,
    quad: Quad,
    t_min: ti.f32,
    t_max: ti.f32,
) -> HitRecord:
    """Intersect a ray with a quad over the open interval ``(t_min, t_max)``.

    Intersects the supporting plane, then accepts the hit when its
    parameterization lies in ``[0, 1] x [0, 1]``.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray (need not be normalized).
        quad: The quad to test intersection against.
        t_min: Lower bound on t (exclusive).
        t_max: Upper bound on t (exclusive).

    Returns:
        A HitRecord; check ``hit`` before reading the other fields.
    """
    normal, d, w_u, w_v = _compute_quad_frame(quad)
    denom = tm.dot(normal, ray_direction)

    did_hit = 0
    hit_t = 0.0
    hit_point = vec3(0.0, 0.0, 0.0)
    hit_normal = vec3(0.0, 0.0, 0.0)
    is_front_face = 0
    uv = vec2(0.0, 0.0)

    if ti.abs(denom) > 1e-8:
        t = (d - tm.dot(normal, ray_origin)) / denom
        if t > t_min and t < t_max:
            p = ray_origin + t * ray_direction
            alpha = tm.dot(w_u, p - quad.Q)
            beta = tm.dot(w_v, p - quad.Q)

            if 0.0 <= alpha <= 1.0 and 0.0 <= beta <= 1.0:
                did_hit = 1
                hit_t = t
                hit_point = p
                uv = vec2(alpha, beta)
                if denom > 0.0:
                    is_front_face = 0
                    hit_normal = -normal
                else:
                    is_front_face = 1
                    hit_normal = normal

    return HitRecord(
        hit=did_hit,
        t=hit_t,
        point=hit_point,
        normal=hit_normal,
        geo_normal=normal,
        front_face=is_front_face,
        uv=uv,
    )


@ti.func
def quad_normal(quad: Quad) -> vec3:
    """Outward unit normal ``normalize(cross(u, v))``."""
    return tm.normalize(tm.cross(quad.u, quad.v))


@ti.func
def quad_area(quad: Quad) -> ti.f32:
    return tm.length(tm.cross(quad.u, quad.v))


@ti.func
def sample_quad_surface(quad: Quad, sample: vec2):
    """Uniformly sample a point on the quad.

    Returns:
        Tuple (point, outward_normal, pdf_area) with ``pdf_area = 1 / area``.
    """
    point = quad.Q + sample.x * quad.u + sample.y * quad.v
    area = quad_area(quad)
    pdf = 0.0
    if area > 0.0:
        pdf = 1.0 / area
    return point, quad_normal(quad), pdf
