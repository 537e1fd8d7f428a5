"""Tests for the render loop.

This module tests the render loop around the estimators including:
- Render target setup and management
- Scene validation before rendering
- Single sample rendering
- Progressive accumulation
- Image output

Note: Imports are done inside test methods to avoid Taichi initialization issues.
The conftest.py fixture initializes Taichi before tests run, so module-level
imports of modules containing ti.field() declarations would fail.
"""

import numpy as np
import pytest


def _sphere_scene(with_light=True):
    """A grey sphere in front of the camera, optionally lit from above."""
    from lightpath.camera.pinhole import PinholeCamera, setup_camera
    from lightpath.scene.manager import SceneManager

    scene = SceneManager()
    grey = scene.add_lambertian_material((0.5, 0.5, 0.5))
    scene.add_sphere((0.0, 0.0, -2.0), 1.0, grey)
    if with_light:
        scene.add_area_light_quad((-1.0, 2.0, -3.0), (2.0, 0.0, 0.0), (0.0, 0.0, 2.0), (4.0, 4.0, 4.0))
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


class TestRenderTargetSetup:
    """Test render target initialization and management."""

    def test_setup_render_target_sets_dimensions(self):
        """Test that setup_render_target records the image size."""
        from lightpath.core.integrator import get_image_dimensions, get_total_samples, setup_render_target

        setup_render_target(64, 48)

        assert get_image_dimensions() == (64, 48)
        assert get_total_samples() == 0

    def test_setup_render_target_clears_existing(self):
        """Test that setup_render_target clears previous data."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_total_samples, render_image, setup_render_target

        _sphere_scene()
        setup_render_target(16, 16)
        render_image(1, RenderConfig(integrator="path_mis"))
        assert get_total_samples() == 1

        setup_render_target(16, 16)
        assert get_total_samples() == 0

    def test_clear_render_target(self):
        """Test that clear_render_target resets sample count."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import clear_render_target, get_total_samples, render_image, setup_render_target

        _sphere_scene()
        setup_render_target(16, 16)
        render_image(2, RenderConfig(integrator="direct_mis"))
        assert get_total_samples() == 2

        clear_render_target()
        assert get_total_samples() == 0

    def test_oversized_target_raises(self):
        """Test that images beyond the preallocated buffers are rejected."""
        from lightpath.core.integrator import MAX_IMAGE_WIDTH, setup_render_target

        with pytest.raises(RuntimeError, match="exceed maximum"):
            setup_render_target(MAX_IMAGE_WIDTH + 1, 16)

    def test_empty_target_raises(self):
        """Test that zero-sized images are rejected."""
        from lightpath.core.integrator import setup_render_target

        with pytest.raises(ValueError, match="must be positive"):
            setup_render_target(0, 16)

    def test_render_without_target_raises(self):
        """Test that rendering requires a render target."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import render_image

        _sphere_scene()
        with pytest.raises(RuntimeError, match="Render target not set up"):
            render_image(1, RenderConfig(integrator="av"))


class TestSceneValidation:
    """Test the checks performed before any kernel runs."""

    def test_emitter_sampling_requires_emitters(self):
        """Test that estimators sampling emitters refuse an unlit scene."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import render_image, setup_render_target
        from lightpath.errors import ConfigurationError

        _sphere_scene(with_light=False)
        setup_render_target(8, 8)

        for integrator in ("direct", "direct_ems", "direct_mis", "path_mis", "vol_path_mis"):
            with pytest.raises(ConfigurationError, match="requires at least one emitter"):
                render_image(1, RenderConfig(integrator=integrator))

    def test_unlit_scene_renders_with_bsdf_sampling(self):
        """Test that AV and BSDF-sampling estimators accept a scene without emitters."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_radiance_numpy, render_image, setup_render_target

        _sphere_scene(with_light=False)
        setup_render_target(8, 8)

        render_image(1, RenderConfig(integrator="path_mats"))
        assert np.all(get_radiance_numpy() == 0.0)

        setup_render_target(8, 8)
        render_image(1, RenderConfig(integrator="av"))
        assert get_radiance_numpy().max() == 1.0


class TestRenderSample:
    """Test single pixel sampling."""

    def test_render_sample_returns_color(self):
        """Test that render_sample returns a non-negative RGB tuple."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import render_sample, setup_render_target

        _sphere_scene()
        setup_render_target(16, 16)
        color = render_sample(8, 8, RenderConfig(integrator="path_mis"))

        assert len(color) == 3
        assert all(c >= 0.0 for c in color)

    def test_render_sample_does_not_accumulate(self):
        """Test that single samples leave the buffers untouched."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_total_samples, render_sample, setup_render_target

        _sphere_scene()
        setup_render_target(16, 16)
        render_sample(0, 0, RenderConfig(integrator="direct"))

        assert get_total_samples() == 0

    def test_miss_is_black_without_environment(self):
        """Test that a ray leaving an unlit-background scene returns zero."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import render_sample, setup_render_target

        _sphere_scene()
        setup_render_target(16, 16)
        # corner pixels look past the sphere and the light
        color = render_sample(0, 0, RenderConfig(integrator="path_mis"))

        assert color == (0.0, 0.0, 0.0)


class TestAccumulation:
    """Test progressive accumulation into the color buffer."""

    def test_sample_count_accumulates(self):
        """Test that successive calls add samples."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_total_samples, render_image, setup_render_target

        _sphere_scene()
        setup_render_target(16, 16)
        config = RenderConfig(integrator="direct_mis")
        render_image(3, config)
        render_image(2, config)

        assert get_total_samples() == 5

    def test_radiance_shape_and_range(self):
        """Test the layout of the radiance array and that samples are non-negative."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_radiance_numpy, render_image, setup_render_target

        _sphere_scene()
        setup_render_target(24, 16)
        render_image(4, RenderConfig(integrator="path_mis"))
        radiance = get_radiance_numpy()

        assert radiance.shape == (16, 24, 3)
        assert radiance.dtype == np.float32
        assert np.all(np.isfinite(radiance))
        assert np.all(radiance >= 0.0)
        assert radiance.max() > 0.0

    def test_lit_sphere_is_brighter_on_top(self):
        """Test that the upper half of the sphere faces the light."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_radiance_numpy, render_image, setup_render_target

        _sphere_scene()
        setup_render_target(16, 16)
        render_image(16, RenderConfig(integrator="direct_mis"))
        radiance = get_radiance_numpy()

        # rows are top first
        assert radiance[4:8, 6:10].mean() > radiance[8:12, 6:10].mean()

    def test_switching_integrators_keeps_buffer(self):
        """Test that samples from different estimators share one running average."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_total_samples, render_image, setup_render_target

        _sphere_scene()
        setup_render_target(8, 8)
        render_image(1, RenderConfig(integrator="path_mats"))
        render_image(1, RenderConfig(integrator="path_mis"))

        assert get_total_samples() == 2


class TestImageOutput:
    """Test saving images."""

    def test_save_png(self, tmp_path):
        """Test that PNG output has the image size."""
        from PIL import Image

        from lightpath.config import RenderConfig
        from lightpath.core.integrator import render_image, save_image, setup_render_target

        _sphere_scene()
        setup_render_target(20, 10)
        render_image(1, RenderConfig(integrator="av"))
        path = tmp_path / "out.png"
        save_image(str(path))

        with Image.open(path) as image:
            assert image.size == (20, 10)
            assert image.mode == "RGB"

    def test_save_npy_keeps_radiance(self, tmp_path):
        """Test that .npy output stores the raw radiance."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_radiance_numpy, render_image, save_image, setup_render_target

        _sphere_scene()
        setup_render_target(8, 8)
        render_image(2, RenderConfig(integrator="direct_mis"))
        path = tmp_path / "out.npy"
        save_image(str(path))

        assert np.array_equal(np.load(path), get_radiance_numpy())

    def test_normalized_image_is_clamped(self):
        """Test that the display image is clamped to [0, 1]."""
        from lightpath.config import RenderConfig
        from lightpath.core.integrator import get_normalized_image_numpy, render_image, setup_render_target

        _sphere_scene()
        setup_render_target(8, 8)
        render_image(4, RenderConfig(integrator="path_mis"))
        image = get_normalized_image_numpy()

        assert image.min() >= 0.0
        assert image.max() <= 1.0
