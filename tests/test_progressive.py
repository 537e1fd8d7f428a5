"""Tests for the progressive renderer.

This module tests the ProgressiveRenderer class including:
- Initialization and setup
- Progressive sample accumulation
- Batch rendering
- Progress callbacks and generators
- Photon map preprocessing on demand
- Image output in various formats

Note: Imports are done inside test methods to avoid Taichi initialization issues.
The conftest.py fixture initializes Taichi before tests run.
"""

import numpy as np
import pytest


def _simple_scene():
    from lightpath.camera.pinhole import PinholeCamera, setup_camera
    from lightpath.scene.manager import SceneManager

    scene = SceneManager()
    grey = scene.add_lambertian_material((0.5, 0.5, 0.5))
    scene.add_sphere((0.0, 0.0, -2.0), 1.0, grey)
    scene.add_quad((-3.0, -1.0, -5.0), (6.0, 0.0, 0.0), (0.0, 0.0, 5.0), grey)
    scene.add_area_light_sphere((0.0, 2.5, -2.0), 0.5, (10.0, 10.0, 10.0))
    setup_camera(
        PinholeCamera(
            lookfrom=(0.0, 0.0, 0.0),
            lookat=(0.0, 0.0, -1.0),
            vup=(0.0, 1.0, 0.0),
            vfov=90.0,
            aspect_ratio=1.0,
        )
    )
    return scene


class TestProgressiveRendererInit:
    """Test ProgressiveRenderer initialization."""

    def test_init_creates_render_target(self):
        """Test that initialization creates a render target with correct dimensions."""
        from lightpath.config import IntegratorType
        from lightpath.core.progressive import ProgressiveRenderer

        renderer = ProgressiveRenderer(128, 96)

        assert renderer.width == 128
        assert renderer.height == 96
        assert renderer.sample_count == 0
        assert renderer.config.integrator == IntegratorType.PATH_MIS

    def test_init_rejects_oversized_dimensions(self):
        """Test that initialization rejects dimensions exceeding max size."""
        from lightpath.core.progressive import ProgressiveRenderer

        with pytest.raises(RuntimeError, match="exceed maximum"):
            ProgressiveRenderer(4096, 100)

    def test_repr(self):
        """Test the string representation."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        renderer = ProgressiveRenderer(32, 16, RenderConfig(integrator="direct_mis"))
        assert repr(renderer) == "ProgressiveRenderer(width=32, height=16, integrator=direct_mis, samples=0)"


class TestProgressiveRendering:
    """Test sample accumulation."""

    def test_render_accumulates_samples(self):
        """Test that render adds the requested samples per pixel."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        _simple_scene()
        renderer = ProgressiveRenderer(16, 16, RenderConfig(integrator="path_mis"))
        renderer.render(num_samples=3)
        renderer.render(num_samples=2, batch_size=2)

        assert renderer.sample_count == 5

    def test_callback_receives_batches(self):
        """Test that the callback runs once per batch with running totals."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        _simple_scene()
        renderer = ProgressiveRenderer(8, 8, RenderConfig(integrator="direct"))
        calls = []
        renderer.render(num_samples=5, batch_size=2, callback=lambda current, target: calls.append((current, target)))

        assert calls == [(2, 5), (4, 5), (5, 5)]

    def test_generator_yields_progress(self):
        """Test render_progressive as a generator."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        _simple_scene()
        renderer = ProgressiveRenderer(8, 8, RenderConfig(integrator="av"))
        renderer.render(num_samples=1)
        progress = list(renderer.render_progressive(4, batch_size=4))

        assert progress == [(5, 5)]

    def test_zero_samples_is_a_no_op(self):
        """Test that asking for no samples renders nothing."""
        from lightpath.core.progressive import ProgressiveRenderer

        renderer = ProgressiveRenderer(8, 8)
        assert list(renderer.render_progressive(0)) == []
        assert renderer.sample_count == 0

    def test_reset_and_resize(self):
        """Test that reset and resize clear the accumulated samples."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        _simple_scene()
        renderer = ProgressiveRenderer(8, 8, RenderConfig(integrator="direct_mats"))
        renderer.render(2)
        renderer.reset()
        assert renderer.sample_count == 0

        renderer.render(1)
        renderer.resize(12, 6)
        assert renderer.sample_count == 0
        assert renderer.get_radiance().shape == (6, 12, 3)

    def test_photon_mapper_preprocesses_once(self):
        """Test that the photon map is built on the first batch and reused."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        _simple_scene()
        config = RenderConfig(integrator="photon_mapper", photon_count=2000)
        renderer = ProgressiveRenderer(8, 8, config)
        assert renderer.photon_mapper is None

        renderer.render(1)
        mapper = renderer.photon_mapper
        assert mapper is not None and mapper.ready

        renderer.render(1)
        assert renderer.photon_mapper is mapper
        assert renderer.sample_count == 2

    def test_photon_map_rebuilt_after_scene_change(self):
        """Test that editing the scene triggers a new preprocessing pass."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        scene = _simple_scene()
        renderer = ProgressiveRenderer(8, 8, RenderConfig(integrator="photon_mapper", photon_count=2000))
        renderer.render(1)
        first = renderer.photon_mapper

        scene.add_point_light((1.0, 1.0, -1.0), (5.0, 5.0, 5.0))
        renderer.render(1)

        assert renderer.photon_mapper is not first
        assert renderer.photon_mapper.ready


class TestProgressiveImageOutput:
    """Test image retrieval and saving."""

    def test_image_formats(self):
        """Test float and uint8 images."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        _simple_scene()
        renderer = ProgressiveRenderer(10, 8, RenderConfig(integrator="path_mis"))
        renderer.render(2)

        image = renderer.get_image_numpy()
        assert image.shape == (8, 10, 3)
        assert image.min() >= 0.0 and image.max() <= 1.0

        image_u8 = renderer.get_image_uint8()
        assert image_u8.dtype == np.uint8
        assert image_u8.shape == (8, 10, 3)

    def test_gamma_brightens(self):
        """Test that gamma correction never darkens a clamped image."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        _simple_scene()
        renderer = ProgressiveRenderer(8, 8, RenderConfig(integrator="direct_mis"))
        renderer.render(2)

        assert np.all(renderer.get_image_numpy(gamma=2.2) >= renderer.get_image_numpy() - 1e-6)

    def test_save_image(self, tmp_path):
        """Test that images are written to disk."""
        from lightpath.config import RenderConfig
        from lightpath.core.progressive import ProgressiveRenderer

        _simple_scene()
        renderer = ProgressiveRenderer(8, 8, RenderConfig(integrator="av"))
        renderer.render(1)

        path = tmp_path / "render.png"
        renderer.save_image(str(path))
        assert path.exists()
