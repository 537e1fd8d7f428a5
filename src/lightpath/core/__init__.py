"""Core building blocks: rays, sampling warps and the render loop.

Components:
    ray: Ray struct, frame helpers and vector utilities
    warp: Square-to-domain warps with matching densities
    integrator: Render target and render kernel
    progressive: ProgressiveRenderer
"""

from .ray import T_MAX, T_MIN, Ray, make_ray, make_segment

# integrator and progressive are NOT imported here to avoid circular imports
# (they depend on lightpath.integrators, which depends on this package).
# Import them directly:
#   from lightpath.core.progressive import ProgressiveRenderer

__all__ = [
    "Ray",
    "make_ray",
    "make_segment",
    "T_MIN",
    "T_MAX",
]
