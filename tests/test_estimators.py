"""Tests for the radiance estimators.

Tests cover:
- The balance heuristic and Russian roulette helpers
- Every direct and path variant against the form factor of a square light
  above a diffuse floor
- Average visibility under a large occluder
- Environment lighting of an open floor
- Volumetric variants agreeing with each other inside fog
- The photon mapper agreeing with next event estimation
"""

import math

import numpy as np
import pytest
import taichi as ti

NUM_SAMPLES = 100_000
IMAGE_SIZE = 16
SPP = 64


def _corner_form_factor(x, y):
    """Form factor from a point to an x by y rectangle one unit above one corner."""
    a = math.sqrt(1.0 + x * x)
    b = math.sqrt(1.0 + y * y)
    return (x / a * math.atan(y / a) + y / b * math.atan(x / b)) / (2.0 * math.pi)


def _square_form_factor(px, pz, half=1.0):
    """Form factor from floor point (px, pz) to a 2*half square light at height 1."""
    total = 0.0
    for dx in (half - px, half + px):
        for dz in (half - pz, half + pz):
            total += _corner_form_factor(dx, dz)
    return total


def _expected_floor_radiance(albedo=0.5, radiance=1.0):
    """Reflected radiance averaged over the patch of floor the test camera sees."""
    extent = 0.5 * math.tan(math.radians(15.0))
    steps = 16
    total = 0.0
    for i in range(steps):
        for j in range(steps):
            px = -extent + (i + 0.5) * 2.0 * extent / steps
            pz = -extent + (j + 0.5) * 2.0 * extent / steps
            total += _square_form_factor(px, pz)
    return albedo * radiance * total / (steps * steps)


def _look_down_camera():
    from lightpath.camera.pinhole import PinholeCamera, setup_camera

    setup_camera(
        PinholeCamera(
            lookfrom=(0.0, 0.5, 0.0),
            lookat=(0.0, 0.0, 0.0),
            vup=(0.0, 0.0, 1.0),
            vfov=30.0,
            aspect_ratio=1.0,
        )
    )


def _floor_under_light(floor_half=2.0, light_half=1.0):
    """Diffuse floor at y=0 lit by a downward facing square light at y=1."""
    from lightpath.scene.manager import SceneManager

    scene = SceneManager()
    floor = scene.add_lambertian_material((0.5, 0.5, 0.5))
    a = floor_half
    scene.add_quad((-a, 0.0, -a), (2.0 * a, 0.0, 0.0), (0.0, 0.0, 2.0 * a), floor)
    b = light_half
    scene.add_area_light_quad((-b, 1.0, -b), (2.0 * b, 0.0, 0.0), (0.0, 0.0, 2.0 * b), (1.0, 1.0, 1.0))
    _look_down_camera()
    return scene


def _mean_radiance(config, spp=SPP):
    from lightpath.core.integrator import get_radiance_numpy, render_image, setup_render_target

    setup_render_target(IMAGE_SIZE, IMAGE_SIZE)
    render_image(spp, config)
    return float(get_radiance_numpy().mean())


class TestWeightHelpers:
    """Tests for the MIS weight and roulette helpers."""

    def test_balance_heuristic(self):
        """Test that complementary weights sum to one and 0/0 gives 0."""
        from lightpath.integrators.common import balance_heuristic

        results = ti.field(dtype=ti.f32, shape=4)

        @ti.kernel
        def test_kernel():
            results[0] = balance_heuristic(1.0, 3.0)
            results[1] = balance_heuristic(3.0, 1.0)
            results[2] = balance_heuristic(0.0, 0.0)
            results[3] = balance_heuristic(2.0, 0.0)

        test_kernel()
        assert abs(results[0] - 0.25) < 1e-6
        assert abs(results[0] + results[1] - 1.0) < 1e-6
        assert results[2] == 0.0
        assert results[3] == 1.0

    def test_russian_roulette_is_unbiased(self):
        """Test that the expected throughput after roulette is unchanged."""
        from lightpath.config import RenderConfig
        from lightpath.integrators.common import apply_render_config, russian_roulette, vec3

        apply_render_config(RenderConfig(rr_start_depth=0, rr_cap=1.0))
        total = ti.field(dtype=ti.f64, shape=())
        survivors = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(NUM_SAMPLES):
                survived, result = russian_roulette(vec3(0.3, 0.2, 0.1), 0)
                if survived == 1:
                    survivors[None] += 1
                    total[None] += result.x

        test_kernel()
        assert abs(total[None] / NUM_SAMPLES - 0.3) < 0.01
        assert abs(survivors[None] / NUM_SAMPLES - 0.3) < 0.01

    def test_russian_roulette_waits_for_start_depth(self):
        """Test that vertices before the start depth always survive untouched."""
        from lightpath.config import RenderConfig
        from lightpath.integrators.common import apply_render_config, russian_roulette, vec3

        apply_render_config(RenderConfig(rr_start_depth=3))
        killed = ti.field(dtype=ti.i32, shape=())
        changed = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(1000):
                survived, result = russian_roulette(vec3(0.01, 0.01, 0.01), 2)
                if survived == 0:
                    killed[None] += 1
                if abs(result.x - 0.01) > 1e-7:
                    changed[None] += 1

        test_kernel()
        assert killed[None] == 0
        assert changed[None] == 0


class TestSurfaceEstimators:
    """All surface estimators converge to the same reflected radiance."""

    @pytest.mark.parametrize(
        "integrator",
        [
            "direct",
            "direct_ems",
            "direct_mats",
            "direct_mis",
            "path_mats",
            "path_mis",
            "vol_path_mats",
            "vol_path_mis",
        ],
    )
    def test_floor_under_square_light(self, integrator):
        """Test each variant against the analytic form factor of the light."""
        from lightpath.config import RenderConfig

        _floor_under_light()
        mean = _mean_radiance(RenderConfig(integrator=integrator))

        expected = _expected_floor_radiance()
        assert abs(mean - expected) < 0.05 * expected

    def test_direct_variants_agree_on_sphere(self):
        """Test that EMS, MATS and MIS converge on a diffuse sphere under a spherical light."""
        from lightpath.camera.pinhole import PinholeCamera, setup_camera
        from lightpath.config import RenderConfig
        from lightpath.scene.manager import SceneManager

        scene = SceneManager()
        grey = scene.add_lambertian_material((0.5, 0.5, 0.5))
        scene.add_sphere((0.0, 0.0, 0.0), 1.0, grey)
        scene.add_area_light_sphere((0.0, 3.0, 0.0), 1.0, (4.0, 4.0, 4.0))
        setup_camera(
            PinholeCamera(
                lookfrom=(0.0, 0.0, 4.0),
                lookat=(0.0, 0.0, 0.0),
                vup=(0.0, 1.0, 0.0),
                vfov=30.0,
                aspect_ratio=1.0,
            )
        )

        ems = _mean_radiance(RenderConfig(integrator="direct_ems"), spp=128)
        mats = _mean_radiance(RenderConfig(integrator="direct_mats"), spp=128)
        mis = _mean_radiance(RenderConfig(integrator="direct_mis"), spp=128)

        assert mis > 0.0
        assert abs(ems - mis) < 0.1 * mis
        assert abs(mats - mis) < 0.1 * mis

    def test_direct_sees_emitter_radiance(self):
        """Test that a camera ray hitting the light returns its radiance."""
        from lightpath.camera.pinhole import PinholeCamera, setup_camera
        from lightpath.config import RenderConfig

        _floor_under_light()
        setup_camera(
            PinholeCamera(
                lookfrom=(0.0, 0.5, 0.0),
                lookat=(0.0, 1.0, 0.0),
                vup=(0.0, 0.0, 1.0),
                vfov=30.0,
                aspect_ratio=1.0,
            )
        )
        for integrator in ("direct_mis", "path_mis", "direct_mats"):
            mean = _mean_radiance(RenderConfig(integrator=integrator))
            assert abs(mean - 1.0) < 1e-4

    def test_max_depth_one_is_direct_lighting(self):
        """Test that a one-bounce path limit still sees the light's reflection."""
        from lightpath.config import RenderConfig

        _floor_under_light()
        mean = _mean_radiance(RenderConfig(integrator="path_mis", max_depth=1))

        expected = _expected_floor_radiance()
        assert abs(mean - expected) < 0.05 * expected


class TestAverageVisibility:
    """Tests for the ambient occlusion estimator."""

    def _floor_under_ceiling(self):
        from lightpath.scene.manager import SceneManager

        scene = SceneManager()
        grey = scene.add_lambertian_material((0.5, 0.5, 0.5))
        scene.add_quad((-100.0, 0.0, -100.0), (200.0, 0.0, 0.0), (0.0, 0.0, 200.0), grey)
        scene.add_quad((-100.0, 1.0, -100.0), (200.0, 0.0, 0.0), (0.0, 0.0, 200.0), grey)
        _look_down_camera()

    def test_escaped_rays_are_visible(self):
        """Test that an empty scene renders fully visible without emitters."""
        from lightpath.config import RenderConfig

        _look_down_camera()
        assert _mean_radiance(RenderConfig(integrator="av")) == 1.0

    def test_short_rays_never_reach_ceiling(self):
        """Test that occlusion rays shorter than the gap are never blocked."""
        from lightpath.config import RenderConfig

        self._floor_under_ceiling()
        assert _mean_radiance(RenderConfig(integrator="av", ao_length=0.5)) == 1.0

    def test_uniform_hemisphere_fraction(self):
        """Test that rays of length 2 escape when cos(theta) < 1/2, half the hemisphere."""
        from lightpath.config import RenderConfig

        self._floor_under_ceiling()
        mean = _mean_radiance(RenderConfig(integrator="av", ao_length=2.0))
        assert abs(mean - 0.5) < 0.02


class TestEnvironmentLighting:
    """Tests for estimators lit by a constant environment."""

    def _constant_environment(self, scene, value=1.0):
        scene.set_environment(np.full((8, 16, 3), value, dtype=np.float32))

    def test_escaped_camera_rays(self):
        """Test that camera rays leaving the scene return the environment radiance."""
        from lightpath.config import RenderConfig
        from lightpath.scene.manager import SceneManager

        scene = SceneManager()
        self._constant_environment(scene, 0.5)
        _look_down_camera()
        for integrator in ("direct", "direct_mis", "path_mis", "vol_path_mats"):
            mean = _mean_radiance(RenderConfig(integrator=integrator))
            assert abs(mean - 0.5) < 1e-4

    @pytest.mark.parametrize("integrator", ["direct_ems", "direct_mis", "path_mats", "path_mis"])
    def test_open_floor_reflects_albedo(self, integrator):
        """Test that an unoccluded floor reflects albedo times the sky radiance."""
        from lightpath.config import RenderConfig
        from lightpath.scene.manager import SceneManager

        scene = SceneManager()
        floor = scene.add_lambertian_material((0.5, 0.5, 0.5))
        scene.add_quad((-100.0, 0.0, -100.0), (200.0, 0.0, 0.0), (0.0, 0.0, 200.0), floor)
        self._constant_environment(scene)
        _look_down_camera()

        mean = _mean_radiance(RenderConfig(integrator=integrator))
        assert abs(mean - 0.5) < 0.025


class TestVolumetricEstimators:
    """Tests for free-flight sampling inside the path estimators."""

    def _fog(self, scene, sigma_a=0.2, sigma_s=0.6):
        scene.set_medium(
            np.ones((2, 2, 2), dtype=np.float32),
            (-2.0, -0.5, -2.0),
            (2.0, 1.5, 2.0),
            (sigma_a,) * 3,
            (sigma_s,) * 3,
        )

    def test_mats_and_mis_agree_in_fog(self):
        """Test that both volumetric variants estimate the same radiance."""
        from lightpath.config import RenderConfig

        scene = _floor_under_light()
        self._fog(scene)

        mats = _mean_radiance(RenderConfig(integrator="vol_path_mats"), spp=256)
        mis = _mean_radiance(RenderConfig(integrator="vol_path_mis"), spp=256)
        assert abs(mats - mis) < 0.1 * mis

    def test_empty_medium_equals_no_medium(self):
        """Test that a zero-density grid leaves the volumetric estimate unchanged."""
        from lightpath.config import RenderConfig

        scene = _floor_under_light()
        scene.set_medium(np.zeros((2, 2, 2), dtype=np.float32), (-2.0, -0.5, -2.0), (2.0, 1.5, 2.0), (1.0,) * 3, (1.0,) * 3)

        mean = _mean_radiance(RenderConfig(integrator="vol_path_mis"))
        expected = _expected_floor_radiance()
        assert abs(mean - expected) < 0.05 * expected

    def test_absorbing_fog_darkens(self):
        """Test that a purely absorbing medium removes light."""
        from lightpath.config import RenderConfig

        scene = _floor_under_light()
        self._fog(scene, sigma_a=1.0, sigma_s=0.0)

        fogged = _mean_radiance(RenderConfig(integrator="vol_path_mis"))
        ignored = _mean_radiance(RenderConfig(integrator="path_mis"))
        # camera to floor alone is 0.5 units of absorption
        assert fogged < ignored * math.exp(-0.5)
        assert fogged > 0.0


class TestPhotonEstimator:
    """Tests for rendering with a built photon map."""

    def test_agrees_with_next_event_estimation(self):
        """Test that density estimation matches direct lighting on a diffuse floor."""
        from lightpath.config import RenderConfig
        from lightpath.integrators.photon import PhotonMapper

        _floor_under_light()
        config = RenderConfig(integrator="photon_mapper", photon_count=100_000, photon_radius=0.05)
        PhotonMapper(config).preprocess()

        photons = _mean_radiance(config)
        reference = _mean_radiance(RenderConfig(integrator="direct_mis"))
        assert abs(photons - reference) < 0.1 * reference
