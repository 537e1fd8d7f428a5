"""Scene manager coordinating primitives, materials, emitters and the medium.

The SceneManager is the host-side entry point for building scenes. It owns
the unified material id space, binds area emitters to the spheres and
quads that carry them, and keeps a Python-side record of everything it
added so scenes round-trip through plain dictionaries (JSON scene files).

Every mutation also invalidates the photon map, since a map built for an
earlier scene must never be rendered.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from lightpath.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> white = scene.add_lambertian_material(albedo=(0.8, 0.8, 0.8))
    >>> scene.add_quad((-1, 0, -1), (2, 0, 0), (0, 0, 2), white)
    0
    >>> scene.add_area_light_sphere(center=(0, 1, 0), radius=0.2, radiance=(10, 10, 10))
    (0, 0)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import taichi.math as tm

from ..emitters.area import add_area_emitter, attach_area_shape
from ..emitters.base import MAX_EMITTERS, EmitterType, ShapeKind, clear_emitters, get_emitter_count
from ..emitters.environment import add_environment_emitter
from ..emitters.point import add_point_emitter
from ..errors import ConfigurationError
from ..integrators.photon import reset_photon_map
from ..materials.bsdf import MAX_MATERIALS, MaterialType, clear_material_table, num_materials, register_material
from ..materials.conductor import add_conductor_material, clear_conductor_materials
from ..materials.dielectric import DEFAULT_EXT_IOR, DEFAULT_INT_IOR, add_dielectric_material, clear_dielectric_materials
from ..materials.lambertian import add_lambertian_material, clear_lambertian_materials
from ..media.heterogeneous import clear_medium, set_medium
from .intersection import MAX_QUADS, MAX_SPHERES, add_quad, add_sphere, clear_scene, get_quad_count, get_sphere_count

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# Albedo of the material given to area lights created without one
LIGHT_ALBEDO = (0.0, 0.0, 0.0)


@dataclass
class MaterialInfo:
    """A registered material.

    Attributes:
        material_id: The unified material ID.
        material_type: Lambertian, conductor or dielectric.
        type_index: Index within the type-specific registry.
        params: The parameters the material was created with.
    """

    material_id: int
    material_type: MaterialType
    type_index: int
    params: dict[str, Any]


@dataclass
class SphereInfo:
    sphere_index: int
    center: tuple[float, float, float]
    radius: float
    material_id: int
    emission: tuple[float, float, float] | None = None


@dataclass
class QuadInfo:
    quad_index: int
    corner: tuple[float, float, float]
    edge_u: tuple[float, float, float]
    edge_v: tuple[float, float, float]
    material_id: int
    emission: tuple[float, float, float] | None = None


@dataclass
class EmitterInfo:
    """A point or environment emitter (area emitters live on their shapes)."""

    emitter_id: int
    emitter_type: EmitterType
    params: dict[str, Any]


@dataclass
class SceneConfig:
    """Serializable scene description.

    Attributes:
        materials: Material configurations, in material id order.
        spheres: Sphere configurations; ``emission`` marks an area light.
        quads: Quad configurations; ``emission`` marks an area light.
        emitters: Point and environment emitter configurations.
        medium: Medium configuration, or None.
    """

    materials: list[dict[str, Any]] = field(default_factory=list)
    spheres: list[dict[str, Any]] = field(default_factory=list)
    quads: list[dict[str, Any]] = field(default_factory=list)
    emitters: list[dict[str, Any]] = field(default_factory=list)
    medium: dict[str, Any] | None = None


def _vec(values, default=(0.0, 0.0, 0.0)) -> tuple[float, float, float]:
    if values is None:
        values = default
    if len(values) != 3:
        raise ConfigurationError(f"Expected 3 components, got {values!r}")
    return (float(values[0]), float(values[1]), float(values[2]))


def _serializable_source(source) -> Any:
    """Paths stay paths; arrays are inlined as nested lists."""
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    return np.asarray(source).tolist()


class SceneManager:
    """Builds a scene into the global Taichi fields.

    Creating a SceneManager clears all scene state. Only one scene is live
    at a time.

    Attributes:
        materials: MaterialInfo for every material, indexed by material id.
        spheres: SphereInfo for every sphere.
        quads: QuadInfo for every quad.
        emitters: EmitterInfo for point and environment emitters.
        medium: Parameters of the medium, or None.
    """

    def __init__(self) -> None:
        self.materials: list[MaterialInfo] = []
        self.spheres: list[SphereInfo] = []
        self.quads: list[QuadInfo] = []
        self.emitters: list[EmitterInfo] = []
        self.medium: dict[str, Any] | None = None
        self._clear_all()

    def _clear_all(self) -> None:
        clear_scene()
        clear_lambertian_materials()
        clear_conductor_materials()
        clear_dielectric_materials()
        clear_material_table()
        clear_emitters()
        clear_medium()
        reset_photon_map()
        self.materials.clear()
        self.spheres.clear()
        self.quads.clear()
        self.emitters.clear()
        self.medium = None

    def clear(self) -> None:
        """Remove every primitive, material, emitter and the medium."""
        self._clear_all()

    # =========================================================================
    # Materials
    # =========================================================================

    def _register(self, material_type: MaterialType, type_index: int, params: dict[str, Any]) -> int:
        material_id = register_material(material_type, type_index)
        self.materials.append(
            MaterialInfo(
                material_id=material_id,
                material_type=material_type,
                type_index=type_index,
                params=params,
            )
        )
        return material_id

    def add_lambertian_material(self, albedo: tuple[float, float, float]) -> int:
        """Add a diffuse material.

        Raises:
            RuntimeError: If the maximum number of materials is exceeded.
            ValueError: If any albedo component is outside [0, 1].
        """
        type_index = add_lambertian_material(albedo)
        return self._register(MaterialType.LAMBERTIAN, type_index, {"albedo": _vec(albedo)})

    def add_conductor_material(self, albedo: tuple[float, float, float], roughness: float = 0.0) -> int:
        """Add a conductor; roughness 0 is a perfect mirror.

        Raises:
            RuntimeError: If the maximum number of materials is exceeded.
            ValueError: If any albedo component or the roughness is outside [0, 1].
        """
        type_index = add_conductor_material(albedo, roughness)
        return self._register(
            MaterialType.CONDUCTOR,
            type_index,
            {"albedo": _vec(albedo), "roughness": float(roughness)},
        )

    def add_dielectric_material(self, int_ior: float = DEFAULT_INT_IOR, ext_ior: float = DEFAULT_EXT_IOR) -> int:
        """Add a smooth dielectric.

        Raises:
            RuntimeError: If the maximum number of materials is exceeded.
            ValueError: If either IOR is less than 1.0.
        """
        type_index = add_dielectric_material(int_ior, ext_ior)
        return self._register(
            MaterialType.DIELECTRIC,
            type_index,
            {"int_ior": float(int_ior), "ext_ior": float(ext_ior)},
        )

    def get_material_count(self) -> int:
        return int(num_materials[None])

    def get_material_info(self, material_id: int) -> MaterialInfo | None:
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    def _check_material(self, material_id: int) -> None:
        if not 0 <= material_id < self.get_material_count():
            raise ConfigurationError(f"Invalid material_id: {material_id}")

    def _light_material(self, material_id: int | None) -> int:
        if material_id is None:
            return self.add_lambertian_material(LIGHT_ALBEDO)
        return material_id

    # =========================================================================
    # Primitives
    # =========================================================================

    def add_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        material_id: int,
        emission: tuple[float, float, float] | None = None,
    ) -> int:
        """Add a sphere; with ``emission`` it also becomes an area light.

        Returns:
            The index of the added sphere.

        Raises:
            ConfigurationError: If material_id is invalid, the radius is not
                positive or the emission is negative.
            RuntimeError: If the maximum number of spheres or emitters is exceeded.
        """
        self._check_material(material_id)
        if radius <= 0.0:
            raise ConfigurationError(f"Sphere radius must be positive, got {radius}")

        emitter_id = -1
        if emission is not None:
            emitter_id = add_area_emitter(emission)
        sphere_index = add_sphere(vec3(center[0], center[1], center[2]), radius, material_id)
        if emitter_id >= 0:
            attach_area_shape(emitter_id, ShapeKind.SPHERE, sphere_index)

        self.spheres.append(
            SphereInfo(
                sphere_index=sphere_index,
                center=_vec(center),
                radius=float(radius),
                material_id=material_id,
                emission=None if emission is None else _vec(emission),
            )
        )
        reset_photon_map()
        return sphere_index

    def add_quad(
        self,
        corner: tuple[float, float, float],
        edge_u: tuple[float, float, float],
        edge_v: tuple[float, float, float],
        material_id: int,
        emission: tuple[float, float, float] | None = None,
    ) -> int:
        """Add a parallelogram with corners Q, Q+u, Q+v, Q+u+v.

        With ``emission`` it also becomes an area light emitting on the side
        of ``cross(edge_u, edge_v)``.

        Returns:
            The index of the added quad.

        Raises:
            ConfigurationError: If material_id is invalid, the edges are
                parallel or the emission is negative.
            RuntimeError: If the maximum number of quads or emitters is exceeded.
        """
        self._check_material(material_id)
        if np.linalg.norm(np.cross(np.asarray(edge_u, dtype=np.float64), np.asarray(edge_v, dtype=np.float64))) == 0.0:
            raise ConfigurationError("Quad edges must not be parallel")

        emitter_id = -1
        if emission is not None:
            emitter_id = add_area_emitter(emission)
        quad_index = add_quad(
            vec3(corner[0], corner[1], corner[2]),
            vec3(edge_u[0], edge_u[1], edge_u[2]),
            vec3(edge_v[0], edge_v[1], edge_v[2]),
            material_id,
        )
        if emitter_id >= 0:
            attach_area_shape(emitter_id, ShapeKind.QUAD, quad_index)

        self.quads.append(
            QuadInfo(
                quad_index=quad_index,
                corner=_vec(corner),
                edge_u=_vec(edge_u),
                edge_v=_vec(edge_v),
                material_id=material_id,
                emission=None if emission is None else _vec(emission),
            )
        )
        reset_photon_map()
        return quad_index

    def add_lambertian_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        albedo: tuple[float, float, float],
    ) -> tuple[int, int]:
        """Add a sphere with a new Lambertian material.

        Returns:
            Tuple of (sphere_index, material_id).
        """
        material_id = self.add_lambertian_material(albedo)
        return self.add_sphere(center, radius, material_id), material_id

    def add_lambertian_quad(
        self,
        corner: tuple[float, float, float],
        edge_u: tuple[float, float, float],
        edge_v: tuple[float, float, float],
        albedo: tuple[float, float, float],
    ) -> tuple[int, int]:
        material_id = self.add_lambertian_material(albedo)
        return self.add_quad(corner, edge_u, edge_v, material_id), material_id

    # =========================================================================
    # Emitters
    # =========================================================================

    def add_area_light_sphere(
        self,
        center: tuple[float, float, float],
        radius: float,
        radiance: tuple[float, float, float],
        material_id: int | None = None,
    ) -> tuple[int, int]:
        """Add an emitting sphere; without a material it gets a black Lambertian.

        Returns:
            Tuple of (sphere_index, material_id).
        """
        material_id = self._light_material(material_id)
        return self.add_sphere(center, radius, material_id, emission=radiance), material_id

    def add_area_light_quad(
        self,
        corner: tuple[float, float, float],
        edge_u: tuple[float, float, float],
        edge_v: tuple[float, float, float],
        radiance: tuple[float, float, float],
        material_id: int | None = None,
    ) -> tuple[int, int]:
        """Add an emitting quad; without a material it gets a black Lambertian.

        Returns:
            Tuple of (quad_index, material_id).
        """
        material_id = self._light_material(material_id)
        return self.add_quad(corner, edge_u, edge_v, material_id, emission=radiance), material_id

    def add_point_light(self, position: tuple[float, float, float], power: tuple[float, float, float]) -> int:
        """Add an isotropic point light with RGB power (intensity times 4 pi).

        Returns:
            The emitter id.
        """
        emitter_id = add_point_emitter(position, power)
        self.emitters.append(
            EmitterInfo(
                emitter_id=emitter_id,
                emitter_type=EmitterType.POINT,
                params={"position": _vec(position), "power": _vec(power)},
            )
        )
        reset_photon_map()
        return emitter_id

    def set_environment(self, source, scale: float = 1.0) -> int:
        """Add the environment light from an equirectangular image.

        Args:
            source: NumPy array, ``.npy`` path or any Pillow-readable image path.
            scale: Radiance multiplier.

        Returns:
            The emitter id.

        Raises:
            ConfigurationError: If the scene already has an environment light.
        """
        emitter_id = add_environment_emitter(source, scale)
        self.emitters.append(
            EmitterInfo(
                emitter_id=emitter_id,
                emitter_type=EmitterType.ENVIRONMENT,
                params={"source": _serializable_source(source), "scale": float(scale)},
            )
        )
        reset_photon_map()
        return emitter_id

    def get_emitter_count(self) -> int:
        return get_emitter_count()

    # =========================================================================
    # Medium
    # =========================================================================

    def set_medium(
        self,
        density,
        bounds_min: tuple[float, float, float],
        bounds_max: tuple[float, float, float],
        sigma_a: tuple[float, float, float],
        sigma_s: tuple[float, float, float],
    ) -> None:
        """Install the heterogeneous medium, replacing any previous one.

        Raises:
            ConfigurationError: On an invalid grid, bounds or coefficients.
            RuntimeError: If the grid exceeds the maximum resolution.
        """
        set_medium(density, bounds_min, bounds_max, sigma_a, sigma_s)
        self.medium = {
            "density": _serializable_source(density),
            "bounds_min": _vec(bounds_min),
            "bounds_max": _vec(bounds_max),
            "sigma_a": _vec(sigma_a),
            "sigma_s": _vec(sigma_s),
        }
        reset_photon_map()

    def clear_medium(self) -> None:
        clear_medium()
        self.medium = None
        reset_photon_map()

    # =========================================================================
    # Scene Queries
    # =========================================================================

    def get_sphere_count(self) -> int:
        return get_sphere_count()

    def get_quad_count(self) -> int:
        return get_quad_count()

    def get_primitive_count(self) -> int:
        return self.get_sphere_count() + self.get_quad_count()

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        config = SceneConfig()
        for mat in self.materials:
            config.materials.append({"type": mat.material_type.name.lower(), **mat.params})
        for sphere in self.spheres:
            entry: dict[str, Any] = {
                "center": list(sphere.center),
                "radius": sphere.radius,
                "material_id": sphere.material_id,
            }
            if sphere.emission is not None:
                entry["emission"] = list(sphere.emission)
            config.spheres.append(entry)
        for quad in self.quads:
            entry = {
                "corner": list(quad.corner),
                "edge_u": list(quad.edge_u),
                "edge_v": list(quad.edge_v),
                "material_id": quad.material_id,
            }
            if quad.emission is not None:
                entry["emission"] = list(quad.emission)
            config.quads.append(entry)
        for emitter in self.emitters:
            params = {key: list(value) if isinstance(value, tuple) else value for key, value in emitter.params.items()}
            config.emitters.append({"type": emitter.emitter_type.name.lower(), **params})
        if self.medium is not None:
            config.medium = {
                key: list(value) if isinstance(value, tuple) else value for key, value in self.medium.items()
            }
        return config

    def from_config(self, config: SceneConfig) -> None:
        """Replace the current scene with ``config``.

        Raises:
            ConfigurationError: On unknown material or emitter types and any
                invalid value.
        """
        self.clear()

        for mat_config in config.materials:
            mat_type = str(mat_config.get("type", "")).lower()
            if mat_type == "lambertian":
                self.add_lambertian_material(_vec(mat_config.get("albedo"), (0.5, 0.5, 0.5)))
            elif mat_type == "conductor":
                self.add_conductor_material(
                    _vec(mat_config.get("albedo"), (0.8, 0.8, 0.8)),
                    float(mat_config.get("roughness", 0.0)),
                )
            elif mat_type == "dielectric":
                self.add_dielectric_material(
                    float(mat_config.get("int_ior", DEFAULT_INT_IOR)),
                    float(mat_config.get("ext_ior", DEFAULT_EXT_IOR)),
                )
            else:
                raise ConfigurationError(f"Unknown material type: {mat_type}")

        for sphere_config in config.spheres:
            emission = sphere_config.get("emission")
            self.add_sphere(
                _vec(sphere_config.get("center")),
                float(sphere_config.get("radius", 1.0)),
                int(sphere_config.get("material_id", 0)),
                emission=None if emission is None else _vec(emission),
            )

        for quad_config in config.quads:
            emission = quad_config.get("emission")
            self.add_quad(
                _vec(quad_config.get("corner")),
                _vec(quad_config.get("edge_u"), (1.0, 0.0, 0.0)),
                _vec(quad_config.get("edge_v"), (0.0, 1.0, 0.0)),
                int(quad_config.get("material_id", 0)),
                emission=None if emission is None else _vec(emission),
            )

        for emitter_config in config.emitters:
            emitter_type = str(emitter_config.get("type", "")).lower()
            if emitter_type == "point":
                self.add_point_light(_vec(emitter_config.get("position")), _vec(emitter_config.get("power")))
            elif emitter_type == "environment":
                source = emitter_config["source"]
                if isinstance(source, list):
                    source = np.asarray(source, dtype=np.float32)
                self.set_environment(source, float(emitter_config.get("scale", 1.0)))
            else:
                raise ConfigurationError(f"Unknown emitter type: {emitter_type}")

        if config.medium is not None:
            medium = config.medium
            self.set_medium(
                medium["density"],
                _vec(medium.get("bounds_min")),
                _vec(medium.get("bounds_max"), (1.0, 1.0, 1.0)),
                _vec(medium.get("sigma_a")),
                _vec(medium.get("sigma_s")),
            )
        logger.info(
            "loaded scene: %d materials, %d primitives, %d emitters",
            self.get_material_count(),
            self.get_primitive_count(),
            self.get_emitter_count(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Export the scene as a JSON-compatible dictionary."""
        config = self.to_config()
        data: dict[str, Any] = {
            "materials": config.materials,
            "spheres": config.spheres,
            "quads": config.quads,
            "emitters": config.emitters,
        }
        if config.medium is not None:
            data["medium"] = config.medium
        return data

    def from_dict(self, data: dict[str, Any]) -> None:
        config = SceneConfig(
            materials=data.get("materials", []),
            spheres=data.get("spheres", []),
            quads=data.get("quads", []),
            emitters=data.get("emitters", []),
            medium=data.get("medium"),
        )
        self.from_config(config)

    # =========================================================================
    # Capacity Information
    # =========================================================================

    @staticmethod
    def get_max_spheres() -> int:
        return MAX_SPHERES

    @staticmethod
    def get_max_quads() -> int:
        return MAX_QUADS

    @staticmethod
    def get_max_materials() -> int:
        return MAX_MATERIALS

    @staticmethod
    def get_max_emitters() -> int:
        return MAX_EMITTERS
