"""Pytest configuration for lightpath tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear scene, emitter, medium and photon state before and after each test."""
    # Import here so Taichi is initialized before any field is allocated
    from lightpath.emitters.base import clear_emitters
    from lightpath.integrators.photon import reset_photon_map
    from lightpath.materials.bsdf import clear_material_table
    from lightpath.materials.conductor import clear_conductor_materials
    from lightpath.materials.dielectric import clear_dielectric_materials
    from lightpath.materials.lambertian import clear_lambertian_materials
    from lightpath.media.heterogeneous import clear_medium
    from lightpath.scene.intersection import clear_scene

    def _clear_all():
        clear_scene()
        clear_lambertian_materials()
        clear_conductor_materials()
        clear_dielectric_materials()
        clear_material_table()
        clear_emitters()
        clear_medium()
        reset_photon_map()

        try:
            from lightpath.core.integrator import clear_render_target, release_render_target

            clear_render_target()
            release_render_target()
        except (ImportError, RuntimeError):
            # Render target not set up yet
            pass

    _clear_all()

    yield

    _clear_all()
