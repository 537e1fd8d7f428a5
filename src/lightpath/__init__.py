"""Monte Carlo light transport simulator built on Taichi.

Subpackages:
    core: Rays, sampling warps and the render loop
    geometry: Sphere and quad primitives with surface sampling
    materials: Lambertian, conductor and dielectric BSDFs
    emitters: Area, point and environment lights
    media: Heterogeneous participating medium
    integrators: AV, direct, path, volumetric path and photon estimators
    photon: Photon arena and grid index
    scene: Scene storage, SceneManager and the Cornell box
    camera: Pinhole camera

Taichi must be initialized (``ti.init``) before importing any subpackage,
since each one allocates its fields at import time.
"""

__version__ = "0.1.0"
