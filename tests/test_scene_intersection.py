"""Tests for scene-level intersection over all primitives.

Tests cover:
- Closest hit among spheres and quads
- Material and emitter ids carried by hits
- Shadow queries limited to the ray interval
- Scene bounds
"""

import numpy as np
import taichi as ti


def _trace(origin, direction, maxt=1e10):
    from lightpath.core.ray import make_segment, vec3
    from lightpath.scene.intersection import intersect_ray, occluded

    hit = ti.field(dtype=ti.i32, shape=())
    t_val = ti.field(dtype=ti.f32, shape=())
    material_id = ti.field(dtype=ti.i32, shape=())
    emitter_id = ti.field(dtype=ti.i32, shape=())
    blocked = ti.field(dtype=ti.i32, shape=())

    @ti.kernel
    def test_kernel(ox: ti.f32, oy: ti.f32, oz: ti.f32, dx: ti.f32, dy: ti.f32, dz: ti.f32, hi: ti.f32):
        ray = make_segment(vec3(ox, oy, oz), vec3(dx, dy, dz), 1e-4, hi)
        rec = intersect_ray(ray)
        hit[None] = rec.hit
        t_val[None] = rec.t
        material_id[None] = rec.material_id
        emitter_id[None] = rec.emitter_id
        blocked[None] = occluded(ray)

    test_kernel(*origin, *direction, maxt)
    return hit[None], t_val[None], material_id[None], emitter_id[None], blocked[None]


class TestIntersectScene:
    """Tests for closest-hit queries."""

    def test_empty_scene_misses(self):
        """Test that an empty scene returns a miss record."""
        hit, _, material_id, emitter_id, blocked = _trace((0.0, 0.0, 0.0), (0.0, 0.0, -1.0))

        assert hit == 0
        assert material_id == -1
        assert emitter_id == -1
        assert blocked == 0

    def test_closest_sphere_wins(self):
        """Test that the nearer of two spheres is reported."""
        from lightpath.scene.intersection import add_sphere

        add_sphere((0.0, 0.0, -10.0), 1.0, material_id=3)
        add_sphere((0.0, 0.0, -5.0), 1.0, material_id=7)

        hit, t, material_id, emitter_id, _ = _trace((0.0, 0.0, 0.0), (0.0, 0.0, -1.0))

        assert hit == 1
        assert abs(t - 4.0) < 1e-4
        assert material_id == 7
        assert emitter_id == -1

    def test_quad_in_front_of_sphere(self):
        """Test that a quad occluding a sphere is the closest hit."""
        from lightpath.scene.intersection import add_quad, add_sphere

        add_sphere((0.0, 0.0, -10.0), 1.0, material_id=1)
        add_quad((-1.0, -1.0, -3.0), (2.0, 0.0, 0.0), (0.0, 2.0, 0.0), material_id=2, emitter_id=5)

        hit, t, material_id, emitter_id, _ = _trace((0.0, 0.0, 0.0), (0.0, 0.0, -1.0))

        assert hit == 1
        assert abs(t - 3.0) < 1e-4
        assert material_id == 2
        assert emitter_id == 5

    def test_occluded_respects_maxt(self):
        """Test that shadow rays ignore primitives beyond maxt."""
        from lightpath.scene.intersection import add_sphere

        add_sphere((0.0, 0.0, -5.0), 1.0)

        _, _, _, _, blocked_far = _trace((0.0, 0.0, 0.0), (0.0, 0.0, -1.0), maxt=10.0)
        _, _, _, _, blocked_near = _trace((0.0, 0.0, 0.0), (0.0, 0.0, -1.0), maxt=3.0)

        assert blocked_far == 1
        assert blocked_near == 0


class TestSceneBounds:
    """Tests for the scene bounding box."""

    def test_empty_scene_bounds_are_zero(self):
        """Test that an empty scene has degenerate zero bounds."""
        from lightpath.scene.intersection import compute_scene_bounds

        lo, hi = compute_scene_bounds()
        assert np.allclose(lo, 0.0)
        assert np.allclose(hi, 0.0)

    def test_bounds_cover_spheres_and_quads(self):
        """Test that bounds enclose every primitive."""
        from lightpath.scene.intersection import add_quad, add_sphere, scene_bounds_max, update_scene_bounds

        add_sphere((0.0, 0.0, 0.0), 1.0)
        add_quad((2.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 4.0))

        lo, hi = update_scene_bounds()

        assert np.allclose(lo, [-1.0, -1.0, -1.0])
        assert np.allclose(hi, [3.0, 1.0, 4.0])
        assert np.allclose(scene_bounds_max[None].to_numpy(), [3.0, 1.0, 4.0])
