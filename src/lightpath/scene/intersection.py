"""Scene-level ray queries over all registered primitives.

Spheres and quads live in preallocated Taichi fields (structure of arrays).
Each primitive carries a material id and, when it is the shape of an area
emitter, that emitter's id; other primitives store -1.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from lightpath.scene.intersection import add_sphere, clear_scene
    >>> clear_scene()
    >>> add_sphere((0, 0, -1), 0.5, material_id=0)
    >>> # Use intersect_scene within a Taichi kernel
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from ..core.ray import Ray
from ..geometry.quad import Quad, hit_quad
from ..geometry.sphere import HitRecord, Sphere, hit_sphere

vec2 = tm.vec2
vec3 = tm.vec3


@ti.dataclass
class SceneHitRecord:
    """Closest intersection of a ray with the scene.

    Attributes:
        hit: 1 if any primitive was intersected.
        t: Ray parameter of the intersection.
        point: World-space intersection point.
        normal: Unit shading normal facing the incoming ray.
        geo_normal: Unit outward geometric normal.
        front_face: 1 when the ray arrived from the outward side.
        uv: Surface parameterization of the hit primitive.
        material_id: Material of the hit primitive (-1 on miss).
        emitter_id: Area emitter attached to the primitive (-1 when none).
    """

    hit: ti.i32
    t: ti.f32
    point: vec3
    normal: vec3
    geo_normal: vec3
    front_face: ti.i32
    uv: vec2
    material_id: ti.i32
    emitter_id: ti.i32


MAX_SPHERES = 1024
MAX_QUADS = 1024

sphere_centers = ti.Vector.field(3, dtype=ti.f32, shape=MAX_SPHERES)
sphere_radii = ti.field(dtype=ti.f32, shape=MAX_SPHERES)
sphere_material_ids = ti.field(dtype=ti.i32, shape=MAX_SPHERES)
sphere_emitter_ids = ti.field(dtype=ti.i32, shape=MAX_SPHERES)
num_spheres = ti.field(dtype=ti.i32, shape=())

quad_corners = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_edge_u = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_edge_v = ti.Vector.field(3, dtype=ti.f32, shape=MAX_QUADS)
quad_material_ids = ti.field(dtype=ti.i32, shape=MAX_QUADS)
quad_emitter_ids = ti.field(dtype=ti.i32, shape=MAX_QUADS)
num_quads = ti.field(dtype=ti.i32, shape=())

# Axis-aligned bounds of all primitives, refreshed by update_scene_bounds()
scene_bounds_min = ti.Vector.field(3, dtype=ti.f32, shape=())
scene_bounds_max = ti.Vector.field(3, dtype=ti.f32, shape=())


def clear_scene() -> None:
    """Remove all primitives. Field contents are overwritten on reuse."""
    num_spheres[None] = 0
    num_quads[None] = 0
    scene_bounds_min[None] = (0.0, 0.0, 0.0)
    scene_bounds_max[None] = (0.0, 0.0, 0.0)


def add_sphere(center, radius: float, material_id: int = 0, emitter_id: int = -1) -> int:
    """Add a sphere to the scene.

    Args:
        center: The center point of the sphere.
        radius: The radius of the sphere (should be positive).
        material_id: Material used to shade the sphere.
        emitter_id: Area emitter whose shape this sphere is, or -1.

    Returns:
        The index of the added sphere.

    Raises:
        RuntimeError: If the maximum number of spheres is exceeded.
    """
    idx = num_spheres[None]
    if idx >= MAX_SPHERES:
        raise RuntimeError(f"Maximum number of spheres ({MAX_SPHERES}) exceeded")
    sphere_centers[idx] = center
    sphere_radii[idx] = radius
    sphere_material_ids[idx] = material_id
    sphere_emitter_ids[idx] = emitter_id
    num_spheres[None] = idx + 1
    return idx


def add_quad(q, u, v, material_id: int = 0, emitter_id: int = -1) -> int:
    """Add a quad with corners Q, Q+u, Q+v, Q+u+v to the scene.

    Returns:
        The index of the added quad.

    Raises:
        RuntimeError: If the maximum number of quads is exceeded.
    """
    idx = num_quads[None]
    if idx >= MAX_QUADS:
        raise RuntimeError(f"Maximum number of quads ({MAX_QUADS}) exceeded")
    quad_corners[idx] = q
    quad_edge_u[idx] = u
    quad_edge_v[idx] = v
    quad_material_ids[idx] = material_id
    quad_emitter_ids[idx] = emitter_id
    num_quads[None] = idx + 1
    return idx


def get_sphere_count() -> int:
    return int(num_spheres[None])


def get_quad_count() -> int:
    return int(num_quads[None])


def compute_scene_bounds():
    """Axis-aligned bounding box of every primitive.

    Returns:
        Tuple (lo, hi) of float32 arrays of shape (3,). Both are zero for an
        empty scene.
    """
    points = []
    n_s = get_sphere_count()
    if n_s > 0:
        centers = sphere_centers.to_numpy()[:n_s]
        radii = sphere_radii.to_numpy()[:n_s, None]
        points.append(centers - radii)
        points.append(centers + radii)
    n_q = get_quad_count()
    if n_q > 0:
        q = quad_corners.to_numpy()[:n_q]
        u = quad_edge_u.to_numpy()[:n_q]
        v = quad_edge_v.to_numpy()[:n_q]
        points.extend([q, q + u, q + v, q + u + v])

    if not points:
        zero = np.zeros(3, dtype=np.float32)
        return zero, zero.copy()
    stacked = np.concatenate(points, axis=0)
    return stacked.min(axis=0).astype(np.float32), stacked.max(axis=0).astype(np.float32)


def update_scene_bounds():
    """Recompute the bounds and upload them to the bounds fields.

    Returns:
        The (lo, hi) pair that was uploaded.
    """
    lo, hi = compute_scene_bounds()
    scene_bounds_min[None] = lo.tolist()
    scene_bounds_max[None] = hi.tolist()
    return lo, hi


@ti.func
def _to_scene_record(rec: HitRecord, material_id: ti.i32, emitter_id: ti.i32) -> SceneHitRecord:
    return SceneHitRecord(
        hit=rec.hit,
        t=rec.t,
        point=rec.point,
        normal=rec.normal,
        geo_normal=rec.geo_normal,
        front_face=rec.front_face,
        uv=rec.uv,
        material_id=material_id,
        emitter_id=emitter_id,
    )


@ti.func
def _make_miss_record() -> SceneHitRecord:
    return SceneHitRecord(
        hit=0,
        t=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        geo_normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        uv=vec2(0.0, 0.0),
        material_id=-1,
        emitter_id=-1,
    )


@ti.func
def intersect_scene(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Closest hit among all primitives with t in ``(t_min, t_max)``."""
    closest_t = t_max
    result = _make_miss_record()

    for i in range(num_spheres[None]):
        sphere = Sphere(center=sphere_centers[i], radius=sphere_radii[i])
        rec = hit_sphere(ray_origin, ray_direction, sphere, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = _to_scene_record(rec, sphere_material_ids[i], sphere_emitter_ids[i])

    for i in range(num_quads[None]):
        quad = Quad(Q=quad_corners[i], u=quad_edge_u[i], v=quad_edge_v[i])
        rec = hit_quad(ray_origin, ray_direction, quad, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            result = _to_scene_record(rec, quad_material_ids[i], quad_emitter_ids[i])

    return result


@ti.func
def intersect_scene_any(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> ti.i32:
    """1 if any primitive blocks the ray inside ``(t_min, t_max)``."""
    hit_any = 0

    for i in range(num_spheres[None]):
        if hit_any == 0:
            sphere = Sphere(center=sphere_centers[i], radius=sphere_radii[i])
            rec = hit_sphere(ray_origin, ray_direction, sphere, t_min, t_max)
            if rec.hit == 1:
                hit_any = 1

    for i in range(num_quads[None]):
        if hit_any == 0:
            quad = Quad(Q=quad_corners[i], u=quad_edge_u[i], v=quad_edge_v[i])
            rec = hit_quad(ray_origin, ray_direction, quad, t_min, t_max)
            if rec.hit == 1:
                hit_any = 1

    return hit_any


@ti.func
def intersect_ray(ray: Ray) -> SceneHitRecord:
    """Closest hit inside the ray's own ``[mint, maxt]`` interval."""
    return intersect_scene(ray.origin, ray.direction, ray.mint, ray.maxt)


@ti.func
def occluded(ray: Ray) -> ti.i32:
    """Shadow query over the ray's own ``[mint, maxt]`` interval."""
    return intersect_scene_any(ray.origin, ray.direction, ray.mint, ray.maxt)
