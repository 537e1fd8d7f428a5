"""Cornell box test scene.

Five diffuse walls (red left, green right, white back, floor and ceiling),
a quad area light under the ceiling and three spheres: diffuse, rough
conductor and glass. The box spans [0, box_size] on every axis with the
camera outside the open front, looking toward +z.

CornellBoxParams can also fill the box with a fog of constant density,
which makes it a test scene for the volumetric estimators.

Example:
    >>> from lightpath.camera.pinhole import setup_camera
    >>> from lightpath.scene.cornell_box import CornellBoxParams, create_cornell_box_scene
    >>> scene, camera = create_cornell_box_scene(params=CornellBoxParams(fog_density=0.002))
    >>> setup_camera(camera)
"""

from dataclasses import dataclass

import numpy as np

from ..camera.pinhole import PinholeCamera
from .manager import SceneManager

BOX_SIZE = 555.0

RED_WALL_ALBEDO = (0.65, 0.05, 0.05)
GREEN_WALL_ALBEDO = (0.12, 0.45, 0.15)
WHITE_WALL_ALBEDO = (0.73, 0.73, 0.73)

DIFFUSE_SPHERE_ALBEDO = (0.73, 0.73, 0.73)
CONDUCTOR_SPHERE_ALBEDO = (0.95, 0.93, 0.88)
CONDUCTOR_SPHERE_ROUGHNESS = 0.3
GLASS_SPHERE_IOR = 1.5

# Classic light size, in box units
LIGHT_WIDTH = 130.0
LIGHT_DEPTH = 105.0

# Fog grid resolution per axis
FOG_GRID_RES = 8


@dataclass
class CornellBoxParams:
    """Adjustable parts of the Cornell box.

    Attributes:
        light_intensity: Scalar multiplier of the light color.
        light_color: RGB color of the area light.
        left_wall_color: Albedo of the left wall.
        right_wall_color: Albedo of the right wall.
        back_wall_color: Albedo of the back wall, floor and ceiling.
        fog_density: Extinction of a uniform fog filling the box (0 for none).
        fog_albedo: Single-scattering albedo of the fog.
    """

    light_intensity: float = 15.0
    light_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    left_wall_color: tuple[float, float, float] = RED_WALL_ALBEDO
    right_wall_color: tuple[float, float, float] = GREEN_WALL_ALBEDO
    back_wall_color: tuple[float, float, float] = WHITE_WALL_ALBEDO
    fog_density: float = 0.0
    fog_albedo: float = 0.8

    @property
    def light_radiance(self) -> tuple[float, float, float]:
        return tuple(c * self.light_intensity for c in self.light_color)


def create_cornell_box_scene(
    box_size: float = BOX_SIZE,
    params: CornellBoxParams | None = None,
) -> tuple[SceneManager, PinholeCamera]:
    """Build the Cornell box into a fresh SceneManager.

    Args:
        box_size: Edge length of the box.
        params: Light, wall and fog settings; defaults to CornellBoxParams().

    Returns:
        Tuple of (SceneManager, PinholeCamera).
    """
    if params is None:
        params = CornellBoxParams()

    scene = SceneManager()

    left_mat = scene.add_lambertian_material(albedo=params.left_wall_color)
    right_mat = scene.add_lambertian_material(albedo=params.right_wall_color)
    white_mat = scene.add_lambertian_material(albedo=params.back_wall_color)
    diffuse_mat = scene.add_lambertian_material(albedo=DIFFUSE_SPHERE_ALBEDO)
    conductor_mat = scene.add_conductor_material(
        albedo=CONDUCTOR_SPHERE_ALBEDO,
        roughness=CONDUCTOR_SPHERE_ROUGHNESS,
    )
    glass_mat = scene.add_dielectric_material(int_ior=GLASS_SPHERE_IOR, ext_ior=1.0)

    # Walls (shading uses the ray-facing normal, so orientation is free)
    s = box_size
    # the camera looks down +z with +x to its left
    scene.add_quad((s, 0.0, s), (0.0, s, 0.0), (0.0, 0.0, -s), left_mat)
    scene.add_quad((0.0, 0.0, 0.0), (0.0, s, 0.0), (0.0, 0.0, s), right_mat)
    scene.add_quad((0.0, 0.0, s), (s, 0.0, 0.0), (0.0, s, 0.0), white_mat)
    scene.add_quad((0.0, 0.0, 0.0), (s, 0.0, 0.0), (0.0, 0.0, s), white_mat)
    scene.add_quad((0.0, s, s), (s, 0.0, 0.0), (0.0, 0.0, -s), white_mat)

    # Light just below the ceiling, emitting downward
    light = get_light_quad_info(box_size)
    scene.add_area_light_quad(light["corner"], light["edge_u"], light["edge_v"], params.light_radiance)

    radius = 80.0 * box_size / BOX_SIZE
    scene.add_sphere((s * 0.27, radius, s * 0.35), radius, diffuse_mat)
    scene.add_sphere((s * 0.73, radius, s * 0.35), radius, conductor_mat)
    scene.add_sphere((s * 0.5, radius, s * 0.65), radius, glass_mat)

    if params.fog_density > 0.0:
        density = np.ones((FOG_GRID_RES,) * 3, dtype=np.float32)
        sigma_t = params.fog_density
        sigma_s = sigma_t * params.fog_albedo
        scene.set_medium(
            density,
            bounds_min=(0.0, 0.0, 0.0),
            bounds_max=(s, s, s),
            sigma_a=(sigma_t - sigma_s,) * 3,
            sigma_s=(sigma_s,) * 3,
        )

    camera = PinholeCamera(
        lookfrom=(s / 2.0, s / 2.0, -800.0 * box_size / BOX_SIZE),
        lookat=(s / 2.0, s / 2.0, s / 2.0),
        vup=(0.0, 1.0, 0.0),
        vfov=40.0,
        aspect_ratio=1.0,
    )
    return scene, camera


def get_light_quad_info(box_size: float = BOX_SIZE) -> dict[str, tuple[float, float, float]]:
    """Corner, edges and center of the ceiling light quad."""
    scale = box_size / BOX_SIZE
    width = LIGHT_WIDTH * scale
    depth = LIGHT_DEPTH * scale
    x0 = (box_size - width) / 2.0
    z0 = (box_size - depth) / 2.0
    y = box_size - 1.0 * scale
    return {
        "corner": (x0, y, z0),
        "edge_u": (width, 0.0, 0.0),
        "edge_v": (0.0, 0.0, depth),
        "center": (x0 + width / 2.0, y, z0 + depth / 2.0),
    }


def get_cornell_box_bounds(box_size: float = BOX_SIZE) -> dict[str, tuple[float, float, float]]:
    return {
        "min": (0.0, 0.0, 0.0),
        "max": (box_size, box_size, box_size),
        "center": (box_size / 2.0, box_size / 2.0, box_size / 2.0),
    }
