"""Average visibility (ambient occlusion) estimator.

Returns 1 for camera rays that leave the scene. At the first hit it casts
one occlusion ray of length ``ao_length`` in a uniformly random direction
of the normal's hemisphere and returns 1 if nothing blocks it, else 0.
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import Ray, make_segment, near_zero, offset_ray_origin
from ..core.warp import sample_uniform_hemisphere_rejection
from ..scene.intersection import intersect_ray, occluded
from .common import ao_length

vec3 = tm.vec3


@ti.func
def estimate_av(ray: Ray) -> vec3:
    result = vec3(1.0, 1.0, 1.0)
    hit = intersect_ray(ray)
    if hit.hit == 1:
        result = vec3(0.0, 0.0, 0.0)
        d = sample_uniform_hemisphere_rejection(hit.normal)
        if not near_zero(d):
            origin = offset_ray_origin(hit.point, hit.normal, d)
            if not occluded(make_segment(origin, d, 0.0, ao_length[None])):
                result = vec3(1.0, 1.0, 1.0)
    return result
