"""Scene storage and construction.

Components:
    intersection: Primitive fields and ray-scene queries
    manager: SceneManager (materials, primitives, emitters, medium)
    cornell_box: Cornell box test scene

Only intersection is imported here. manager depends on the emitters and
integrators packages, which themselves import intersection, so importing
manager here would be circular. Import it directly:
    from lightpath.scene.manager import SceneManager
"""

from .intersection import (
    MAX_QUADS,
    MAX_SPHERES,
    SceneHitRecord,
    clear_scene,
    get_quad_count,
    get_sphere_count,
    intersect_ray,
    intersect_scene,
    occluded,
    update_scene_bounds,
)

__all__ = [
    "MAX_QUADS",
    "MAX_SPHERES",
    "SceneHitRecord",
    "clear_scene",
    "get_quad_count",
    "get_sphere_count",
    "intersect_ray",
    "intersect_scene",
    "occluded",
    "update_scene_bounds",
]
