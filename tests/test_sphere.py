"""Unit tests for sphere intersection and surface sampling.

Tests cover:
- Ray hitting sphere from outside (front face)
- Ray missing sphere
- Ray starting inside sphere (back face)
- Interval limits
- Uniform surface sampling
"""

import taichi as ti


def _run_hit(origin, direction, center=(0.0, 0.0, 0.0), radius=1.0, t_min=0.001, t_max=1000.0):
    from lightpath.geometry.sphere import Sphere, hit_sphere, vec3

    hit = ti.field(dtype=ti.i32, shape=())
    t_val = ti.field(dtype=ti.f32, shape=())
    normal = ti.Vector.field(3, dtype=ti.f32, shape=())
    geo_normal = ti.Vector.field(3, dtype=ti.f32, shape=())
    front_face = ti.field(dtype=ti.i32, shape=())

    @ti.kernel
    def test_kernel(
        ox: ti.f32, oy: ti.f32, oz: ti.f32, dx: ti.f32, dy: ti.f32, dz: ti.f32,
        cx: ti.f32, cy: ti.f32, cz: ti.f32, r: ti.f32, lo: ti.f32, hi: ti.f32,
    ):
        sphere = Sphere(center=vec3(cx, cy, cz), radius=r)
        record = hit_sphere(vec3(ox, oy, oz), vec3(dx, dy, dz), sphere, lo, hi)
        hit[None] = record.hit
        t_val[None] = record.t
        normal[None] = record.normal
        geo_normal[None] = record.geo_normal
        front_face[None] = record.front_face

    test_kernel(*origin, *direction, *center, radius, t_min, t_max)
    return hit[None], t_val[None], normal[None], geo_normal[None], front_face[None]


class TestSphereIntersection:
    """Tests for ray-sphere intersection."""

    def test_hit_sphere_direct_hit(self):
        """Test ray hitting sphere head-on from outside."""
        hit, t, normal, geo_normal, front_face = _run_hit((0.0, 0.0, 5.0), (0.0, 0.0, -1.0))

        assert hit == 1
        assert abs(t - 4.0) < 1e-5
        assert abs(normal[2] - 1.0) < 1e-5
        assert abs(geo_normal[2] - 1.0) < 1e-5
        assert front_face == 1

    def test_miss(self):
        """Test ray passing beside the sphere."""
        hit, _, _, _, _ = _run_hit((2.0, 0.0, 5.0), (0.0, 0.0, -1.0))
        assert hit == 0

    def test_hit_from_inside(self):
        """Test that a ray starting inside sees the back face with a flipped normal."""
        hit, t, normal, geo_normal, front_face = _run_hit((0.0, 0.0, 0.0), (1.0, 0.0, 0.0))

        assert hit == 1
        assert abs(t - 1.0) < 1e-5
        assert front_face == 0
        # Shading normal faces the ray, geometric normal points outward
        assert abs(normal[0] + 1.0) < 1e-5
        assert abs(geo_normal[0] - 1.0) < 1e-5

    def test_interval_excludes_far_hits(self):
        """Test that hits beyond t_max are rejected."""
        hit, _, _, _, _ = _run_hit((0.0, 0.0, 5.0), (0.0, 0.0, -1.0), t_max=3.0)
        assert hit == 0

    def test_unnormalized_direction(self):
        """Test that t scales with an unnormalized direction."""
        hit, t, _, _, _ = _run_hit((0.0, 0.0, 5.0), (0.0, 0.0, -2.0))
        assert hit == 1
        assert abs(t - 2.0) < 1e-5


class TestSphereSampling:
    """Tests for uniform surface sampling."""

    def test_samples_on_surface_with_area_pdf(self):
        """Test that samples lie on the sphere with pdf 1 / area."""
        from lightpath.core.warp import next_2d
        from lightpath.geometry.sphere import Sphere, sample_sphere_surface, vec3

        off_surface = ti.field(dtype=ti.i32, shape=())
        pdf_value = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            sphere = Sphere(center=vec3(1.0, 2.0, 3.0), radius=2.0)
            for _ in range(1000):
                point, normal, pdf = sample_sphere_surface(sphere, next_2d())
                if abs((point - sphere.center).norm() - 2.0) > 1e-4:
                    off_surface[None] += 1
                if abs(normal.norm() - 1.0) > 1e-4:
                    off_surface[None] += 1
                pdf_value[None] = pdf

        test_kernel()
        assert off_surface[None] == 0
        assert abs(pdf_value[None] - 1.0 / (16.0 * 3.141592653589793)) < 1e-6
