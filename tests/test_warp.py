"""Unit tests for the sampling warps.

Tests cover:
- Warped samples land inside their target domain
- Densities integrate to one over their domain
- Densities are exactly zero outside their support
- Every sample has positive density and unit length where it is a direction
"""

import math

import pytest
import taichi as ti

NUM_SAMPLES = 200_000


class TestPlanarWarps:
    """Tests for the square, disk and triangle warps."""

    def test_uniform_disk_samples_inside(self):
        """Test that both disk warps stay inside the unit disk."""
        from lightpath.core.warp import next_2d, square_to_concentric_disk, square_to_uniform_disk

        outside = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(10_000):
                a = square_to_uniform_disk(next_2d())
                b = square_to_concentric_disk(next_2d())
                if a.dot(a) > 1.0 + 1e-5 or b.dot(b) > 1.0 + 1e-5:
                    outside[None] += 1

        test_kernel()
        assert outside[None] == 0

    def test_concentric_disk_maps_center_to_origin(self):
        """Test that the centre of the square maps to the disk centre."""
        from lightpath.core.warp import square_to_concentric_disk, vec2

        result = ti.Vector.field(2, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            result[None] = square_to_concentric_disk(vec2(0.5, 0.5))

        test_kernel()
        assert abs(result[None][0]) < 1e-6
        assert abs(result[None][1]) < 1e-6

    def test_disk_pdf_zero_outside(self):
        """Test that the disk density vanishes outside the unit disk."""
        from lightpath.core.warp import square_to_uniform_disk_pdf, vec2

        inside = ti.field(dtype=ti.f32, shape=())
        outside = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            inside[None] = square_to_uniform_disk_pdf(vec2(0.3, 0.2))
            outside[None] = square_to_uniform_disk_pdf(vec2(2.0, 0.0))

        test_kernel()
        assert abs(inside[None] - 1.0 / 3.141592653589793) < 1e-5
        assert outside[None] == 0.0

    def test_uniform_square_pdf(self):
        """Test the identity warp's density inside and outside the square."""
        from lightpath.core.warp import square_to_uniform_square_pdf, vec2

        inside = ti.field(dtype=ti.f32, shape=())
        outside = ti.field(dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            inside[None] = square_to_uniform_square_pdf(vec2(0.5, 0.5))
            outside[None] = square_to_uniform_square_pdf(vec2(1.5, 0.5))

        test_kernel()
        assert inside[None] == 1.0
        assert outside[None] == 0.0

    def test_triangle_barycentrics(self):
        """Test that triangle samples are valid barycentric coordinates."""
        from lightpath.core.warp import next_2d, square_to_uniform_triangle, square_to_uniform_triangle_pdf

        invalid = ti.field(dtype=ti.i32, shape=())
        pdf_sum = ti.field(dtype=ti.f64, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(10_000):
                bary = square_to_uniform_triangle(next_2d())
                if bary.x < -1e-6 or bary.y < -1e-6 or bary.z < -1e-6:
                    invalid[None] += 1
                if abs(bary.x + bary.y + bary.z - 1.0) > 1e-5:
                    invalid[None] += 1
                pdf_sum[None] += square_to_uniform_triangle_pdf(bary)

        test_kernel()
        assert invalid[None] == 0
        assert abs(pdf_sum[None] / 10_000 - 2.0) < 1e-3


class TestDirectionalWarps:
    """Tests for the sphere, hemisphere and cap warps."""

    def test_cosine_hemisphere_samples_on_upper_hemisphere(self):
        """Test that cosine samples are unit vectors with z >= 0."""
        from lightpath.core.warp import next_2d, square_to_cosine_hemisphere

        invalid = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(10_000):
                v = square_to_cosine_hemisphere(next_2d())
                if v.z < 0.0 or abs(v.norm() - 1.0) > 1e-4:
                    invalid[None] += 1

        test_kernel()
        assert invalid[None] == 0

    def test_sphere_cap_respects_cap(self):
        """Test that cap samples stay inside z >= cos_theta_max."""
        from lightpath.core.warp import next_2d, square_to_uniform_sphere_cap

        invalid = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(10_000):
                v = square_to_uniform_sphere_cap(next_2d(), 0.7)
                if v.z < 0.7 - 1e-5:
                    invalid[None] += 1

        test_kernel()
        assert invalid[None] == 0

    def test_directional_pdfs_integrate_to_one(self):
        """Test that each directional density integrates to one over the sphere."""
        from lightpath.core.warp import (
            next_2d,
            square_to_beckmann_pdf,
            square_to_cosine_hemisphere_pdf,
            square_to_ggx_pdf,
            square_to_uniform_hemisphere_pdf,
            square_to_uniform_sphere,
            square_to_uniform_sphere_cap_pdf,
            square_to_uniform_sphere_pdf,
        )

        sums = ti.field(dtype=ti.f64, shape=6)

        @ti.kernel
        def test_kernel():
            for _ in range(NUM_SAMPLES):
                v = square_to_uniform_sphere(next_2d())
                inv_pdf = 4.0 * ti.math.pi
                sums[0] += square_to_uniform_sphere_pdf(v) * inv_pdf
                sums[1] += square_to_uniform_hemisphere_pdf(v) * inv_pdf
                sums[2] += square_to_cosine_hemisphere_pdf(v) * inv_pdf
                sums[3] += square_to_uniform_sphere_cap_pdf(v, 0.5) * inv_pdf
                sums[4] += square_to_beckmann_pdf(v, 0.5) * inv_pdf
                sums[5] += square_to_ggx_pdf(v, 0.5) * inv_pdf

        test_kernel()
        for k in range(6):
            assert abs(sums[k] / NUM_SAMPLES - 1.0) < 0.03, f"density {k} integrates to {sums[k] / NUM_SAMPLES}"

    def test_pdfs_zero_outside_support(self):
        """Test that densities are zero below the hemisphere and off the sphere."""
        from lightpath.core.warp import (
            square_to_cosine_hemisphere_pdf,
            square_to_uniform_hemisphere_pdf,
            square_to_uniform_sphere_pdf,
            vec3,
        )

        results = ti.field(dtype=ti.f32, shape=4)

        @ti.kernel
        def test_kernel():
            results[0] = square_to_cosine_hemisphere_pdf(vec3(0.0, 0.0, -1.0))
            results[1] = square_to_uniform_hemisphere_pdf(vec3(0.0, 0.6, -0.8))
            results[2] = square_to_uniform_sphere_pdf(vec3(0.0, 0.0, 2.0))
            results[3] = square_to_cosine_hemisphere_pdf(vec3(0.0, 0.0, 0.5))

        test_kernel()
        for k in range(4):
            assert results[k] == 0.0

    def test_rejection_hemisphere_follows_pole(self):
        """Test that rejection samples are unit vectors on the pole's side."""
        from lightpath.core.warp import sample_uniform_hemisphere_rejection, vec3

        invalid = ti.field(dtype=ti.i32, shape=())

        @ti.kernel
        def test_kernel():
            pole = vec3(1.0, 1.0, 0.0)
            for _ in range(10_000):
                v = sample_uniform_hemisphere_rejection(pole)
                if v.dot(pole) < 0.0 or abs(v.norm() - 1.0) > 1e-4:
                    invalid[None] += 1

        test_kernel()
        assert invalid[None] == 0


# Support measure of each warp's domain, or None where 1 / pdf is unbounded
SUPPORT_MEASURES = {
    "uniform_square": 1.0,
    "uniform_disk": math.pi,
    "concentric_disk": math.pi,
    "uniform_triangle": 0.5,
    "uniform_cylinder": 4.0 * math.pi,
    "uniform_sphere": 4.0 * math.pi,
    "uniform_hemisphere": 2.0 * math.pi,
    "uniform_sphere_cap": math.pi,
    "cosine_hemisphere": None,
    "beckmann": None,
    "ggx": None,
}

DIRECTIONAL = {"uniform_sphere", "uniform_hemisphere", "uniform_sphere_cap", "cosine_hemisphere", "beckmann", "ggx"}


class TestSampledDensities:
    """Tests that every warp's samples are supported by its own density."""

    @pytest.mark.parametrize("name", sorted(SUPPORT_MEASURES))
    def test_samples_have_positive_density(self, name):
        """Test pdf(sample) > 0, unit directions and E[1 / pdf] equal to the support measure."""
        from lightpath.core import warp

        sampler = getattr(warp, f"square_to_{name}")
        density = getattr(warp, f"square_to_{name}_pdf")
        zero_pdf = ti.field(dtype=ti.i32, shape=())
        off_unit = ti.field(dtype=ti.i32, shape=())
        inv_pdf_sum = ti.field(dtype=ti.f64, shape=())

        @ti.kernel
        def test_kernel():
            for _ in range(NUM_SAMPLES):
                pdf = 0.0
                if ti.static(name == "uniform_sphere_cap"):
                    v = sampler(warp.next_2d(), 0.5)
                    pdf = density(v, 0.5)
                    if abs(v.norm() - 1.0) > 1e-5:
                        off_unit[None] += 1
                elif ti.static(name in ("beckmann", "ggx")):
                    m = sampler(warp.next_2d(), 0.3)
                    pdf = density(m, 0.3)
                    if abs(m.norm() - 1.0) > 1e-5:
                        off_unit[None] += 1
                elif ti.static(name in DIRECTIONAL):
                    d = sampler(warp.next_2d())
                    pdf = density(d)
                    if abs(d.norm() - 1.0) > 1e-5:
                        off_unit[None] += 1
                else:
                    p = sampler(warp.next_2d())
                    pdf = density(p)
                if pdf > 0.0:
                    inv_pdf_sum[None] += 1.0 / pdf
                else:
                    zero_pdf[None] += 1

        test_kernel()
        assert zero_pdf[None] == 0
        assert off_unit[None] == 0
        expected = SUPPORT_MEASURES[name]
        if expected is not None:
            assert abs(inv_pdf_sum[None] / NUM_SAMPLES - expected) < 1e-3 * expected
