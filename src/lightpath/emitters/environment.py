"""Image-based environment light (equirectangular RGB map).

The map covers the whole sphere of directions with +y as the pole: row
``i`` spans polar angles ``[i, i+1] * pi / rows`` and column ``j`` spans
azimuths ``[j, j+1] * 2pi / cols`` with ``phi`` measured from +x toward +z.

Importance sampling uses a piecewise-constant 2D distribution built on the
host with NumPy. Each pixel is weighted by its luminance times
``sin(theta)`` at the pixel centre, which accounts for the shrinking solid
angle of rows near the poles. A direction is drawn by choosing a row from
the marginal CDF, a column from that row's conditional CDF and a
continuous offset inside the pixel. Its solid-angle density is

    pdf = p(row) * p(col | row) * rows * cols / (2 * pi^2 * sin(theta))

Radiance lookups use the pixel containing the direction. Shadow rays
toward the environment are unbounded.

Example:
    >>> from lightpath.emitters.environment import add_environment_emitter
    >>> add_environment_emitter("sky.png", scale=2.0)
"""

import logging
import math
import os

import numpy as np
import taichi as ti
import taichi.math as tm
from PIL import Image

from ..core.ray import T_MAX, make_segment, to_world
from ..core.warp import square_to_concentric_disk
from ..errors import ConfigurationError
from ..scene.intersection import scene_bounds_max, scene_bounds_min
from .base import SHADOW_EPSILON, EmitterSample, EmitterType, environment_emitter_id, register_emitter

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3

MAX_ENV_ROWS = 256
MAX_ENV_COLS = 512

env_radiance = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_ENV_ROWS, MAX_ENV_COLS))
env_marginal_pdf = ti.field(dtype=ti.f32, shape=MAX_ENV_ROWS)
env_marginal_cdf = ti.field(dtype=ti.f32, shape=MAX_ENV_ROWS + 1)
env_conditional_pdf = ti.field(dtype=ti.f32, shape=(MAX_ENV_ROWS, MAX_ENV_COLS))
env_conditional_cdf = ti.field(dtype=ti.f32, shape=(MAX_ENV_ROWS, MAX_ENV_COLS + 1))
env_rows = ti.field(dtype=ti.i32, shape=())
env_cols = ti.field(dtype=ti.i32, shape=())
# 0 for an all-black map, which is valid but never contributes
env_has_energy = ti.field(dtype=ti.i32, shape=())


def _srgb_to_linear(c: np.ndarray) -> np.ndarray:
    return np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)


def load_environment_image(source) -> np.ndarray:
    """Load an environment map as a float32 (rows, cols, 3) linear RGB array.

    Args:
        source: A NumPy array, a ``.npy`` path, or any image Pillow can read.
            8-bit images are decoded from sRGB.

    Raises:
        ConfigurationError: If the data is not an RGB image or holds
            negative values.
    """
    if isinstance(source, np.ndarray):
        data = source.astype(np.float32)
    elif str(source).lower().endswith(".npy"):
        data = np.load(os.fspath(source)).astype(np.float32)
    else:
        with Image.open(source) as img:
            rgb = np.asarray(img.convert("RGB"), dtype=np.float32) / 255.0
        data = _srgb_to_linear(rgb).astype(np.float32)

    if data.ndim != 3 or data.shape[2] != 3:
        raise ConfigurationError(f"Environment map must have shape (rows, cols, 3), got {data.shape}")
    if data.shape[0] == 0 or data.shape[1] == 0:
        raise ConfigurationError("Environment map is empty")
    if np.any(data < 0.0) or not np.all(np.isfinite(data)):
        raise ConfigurationError("Environment map values must be finite and non-negative")

    rows, cols = data.shape[:2]
    step = max(math.ceil(rows / MAX_ENV_ROWS), math.ceil(cols / MAX_ENV_COLS))
    if step > 1:
        logger.warning(
            "environment map %dx%d exceeds capacity %dx%d, keeping every %d-th pixel",
            cols,
            rows,
            MAX_ENV_COLS,
            MAX_ENV_ROWS,
            step,
        )
        data = np.ascontiguousarray(data[::step, ::step])
    return data


def build_environment_distribution(radiance: np.ndarray):
    """Piecewise-constant sampling tables for an equirectangular map.

    Args:
        radiance: Float array of shape (rows, cols, 3).

    Returns:
        Tuple (marginal_pdf, marginal_cdf, conditional_pdf, conditional_cdf,
        total). PDFs are discrete probabilities (they sum to 1). Rows with
        no energy get zero marginal probability and a uniform conditional.
        ``total`` is 0 for an all-black map, in which case every table is
        uniform.
    """
    rows, cols = radiance.shape[:2]
    luminance = radiance[..., 0] * 0.2126 + radiance[..., 1] * 0.7152 + radiance[..., 2] * 0.0722
    theta = (np.arange(rows, dtype=np.float64) + 0.5) * np.pi / rows
    weights = luminance.astype(np.float64) * np.sin(theta)[:, None]

    row_sums = weights.sum(axis=1)
    total = float(row_sums.sum())

    conditional_pdf = np.full((rows, cols), 1.0 / cols)
    nonzero = row_sums > 0.0
    conditional_pdf[nonzero] = weights[nonzero] / row_sums[nonzero, None]

    if total > 0.0:
        marginal_pdf = row_sums / total
    else:
        marginal_pdf = np.full(rows, 1.0 / rows)

    marginal_cdf = np.concatenate([[0.0], np.cumsum(marginal_pdf)])
    marginal_cdf /= marginal_cdf[-1]
    conditional_cdf = np.concatenate([np.zeros((rows, 1)), np.cumsum(conditional_pdf, axis=1)], axis=1)
    conditional_cdf /= conditional_cdf[:, -1:]

    return (
        marginal_pdf.astype(np.float32),
        marginal_cdf.astype(np.float32),
        conditional_pdf.astype(np.float32),
        conditional_cdf.astype(np.float32),
        total,
    )


def add_environment_emitter(source, scale: float = 1.0) -> int:
    """Register the scene's environment light.

    Args:
        source: Environment image (see load_environment_image()).
        scale: Radiance multiplier.

    Returns:
        The new emitter id.

    Raises:
        ConfigurationError: If the scene already has an environment emitter
            or the image is invalid.
    """
    if environment_emitter_id[None] >= 0:
        raise ConfigurationError("A scene can contain at most one environment emitter")
    if scale < 0.0:
        raise ConfigurationError(f"Environment scale must be non-negative, got {scale}")

    radiance = load_environment_image(source) * np.float32(scale)
    rows, cols = radiance.shape[:2]
    marginal_pdf, marginal_cdf, conditional_pdf, conditional_cdf, total = build_environment_distribution(
        radiance
    )

    padded = np.zeros((MAX_ENV_ROWS, MAX_ENV_COLS, 3), dtype=np.float32)
    padded[:rows, :cols] = radiance
    env_radiance.from_numpy(padded)

    buf = np.zeros(MAX_ENV_ROWS, dtype=np.float32)
    buf[:rows] = marginal_pdf
    env_marginal_pdf.from_numpy(buf)
    buf = np.ones(MAX_ENV_ROWS + 1, dtype=np.float32)
    buf[: rows + 1] = marginal_cdf
    env_marginal_cdf.from_numpy(buf)
    buf = np.zeros((MAX_ENV_ROWS, MAX_ENV_COLS), dtype=np.float32)
    buf[:rows, :cols] = conditional_pdf
    env_conditional_pdf.from_numpy(buf)
    buf = np.ones((MAX_ENV_ROWS, MAX_ENV_COLS + 1), dtype=np.float32)
    buf[:rows, : cols + 1] = conditional_cdf
    env_conditional_cdf.from_numpy(buf)

    env_rows[None] = rows
    env_cols[None] = cols
    env_has_energy[None] = 1 if total > 0.0 else 0
    if total <= 0.0:
        logger.warning("environment map is black; it will never contribute")

    emitter_id = register_emitter(EmitterType.ENVIRONMENT, (scale, scale, scale))
    environment_emitter_id[None] = emitter_id
    logger.info("environment emitter %d: %dx%d map", emitter_id, cols, rows)
    return emitter_id


# =============================================================================
# Direction Mapping
# =============================================================================


@ti.func
def env_direction(theta: ti.f32, phi: ti.f32) -> vec3:
    """Unit direction for polar angle ``theta`` from +y and azimuth ``phi``."""
    sin_theta = ti.sin(theta)
    return vec3(sin_theta * ti.cos(phi), ti.cos(theta), sin_theta * ti.sin(phi))


@ti.func
def env_angles(d: vec3):
    theta = ti.acos(tm.clamp(d.y, -1.0, 1.0))
    phi = ti.atan2(d.z, d.x)
    if phi < 0.0:
        phi += 2.0 * tm.pi
    return theta, phi


@ti.func
def _env_pixel(d: vec3):
    theta, phi = env_angles(d)
    rows = env_rows[None]
    cols = env_cols[None]
    row = ti.max(0, ti.min(ti.cast(theta / tm.pi * rows, ti.i32), rows - 1))
    col = ti.max(0, ti.min(ti.cast(phi / (2.0 * tm.pi) * cols, ti.i32), cols - 1))
    return row, col, theta


@ti.func
def _find_marginal(u: ti.f32, n: ti.i32) -> ti.i32:
    """Largest k in [0, n) with ``cdf[k] <= u``."""
    lo = 0
    hi = n - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if env_marginal_cdf[mid] <= u:
            lo = mid
        else:
            hi = mid - 1
    return lo


@ti.func
def _find_conditional(row: ti.i32, u: ti.f32, n: ti.i32) -> ti.i32:
    lo = 0
    hi = n - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if env_conditional_cdf[row, mid] <= u:
            lo = mid
        else:
            hi = mid - 1
    return lo


@ti.func
def eval_environment(d: vec3) -> vec3:
    """Radiance arriving from direction ``d`` (nearest pixel)."""
    row, col, _ = _env_pixel(d)
    return env_radiance[row, col]


@ti.func
def pdf_environment(d: vec3) -> ti.f32:
    """Solid-angle density with which sample_environment() produces ``d``."""
    pdf = 0.0
    if env_has_energy[None] == 1:
        row, col, theta = _env_pixel(d)
        sin_theta = ti.sin(theta)
        if sin_theta > 0.0:
            rows = ti.cast(env_rows[None], ti.f32)
            cols = ti.cast(env_cols[None], ti.f32)
            p = env_marginal_pdf[row] * env_conditional_pdf[row, col]
            pdf = p * rows * cols / (2.0 * tm.pi * tm.pi * sin_theta)
    return pdf


@ti.func
def sample_environment_direction(sample: vec2):
    """Draw a direction from the map's distribution.

    Returns:
        Tuple (direction, pdf). The pdf is 0 for a black map.
    """
    rows = env_rows[None]
    cols = env_cols[None]
    row = _find_marginal(sample.x, rows)
    c0 = env_marginal_cdf[row]
    c1 = env_marginal_cdf[row + 1]
    du = 0.5
    if c1 > c0:
        du = tm.clamp((sample.x - c0) / (c1 - c0), 0.0, 1.0)

    col = _find_conditional(row, sample.y, cols)
    k0 = env_conditional_cdf[row, col]
    k1 = env_conditional_cdf[row, col + 1]
    dv = 0.5
    if k1 > k0:
        dv = tm.clamp((sample.y - k0) / (k1 - k0), 0.0, 1.0)

    theta = (ti.cast(row, ti.f32) + du) * tm.pi / ti.cast(rows, ti.f32)
    phi = (ti.cast(col, ti.f32) + dv) * 2.0 * tm.pi / ti.cast(cols, ti.f32)
    direction = env_direction(theta, phi)

    pdf = 0.0
    sin_theta = ti.sin(theta)
    if env_has_energy[None] == 1 and sin_theta > 0.0:
        p = env_marginal_pdf[row] * env_conditional_pdf[row, col]
        pdf = p * ti.cast(rows * cols, ti.f32) / (2.0 * tm.pi * tm.pi * sin_theta)
    return direction, pdf


@ti.func
def sample_environment(emitter_id: ti.i32, ref: vec3, sample: vec2) -> EmitterSample:
    wi, pdf = sample_environment_direction(sample)
    weight = vec3(0.0, 0.0, 0.0)
    if pdf > 0.0:
        weight = eval_environment(wi) / pdf
    return EmitterSample(
        point=ref + wi,
        normal=-wi,
        wi=wi,
        distance=T_MAX,
        pdf=pdf,
        weight=weight,
        is_delta=0,
        shadow_ray=make_segment(ref, wi, SHADOW_EPSILON, T_MAX),
    )


@ti.func
def sample_environment_photon(emitter_id: ti.i32, sample_pos: vec2, sample_dir: vec2):
    """Photon entering the scene from the environment.

    The origin lies on a disk of the scene's bounding-sphere radius facing
    the scene from the sampled direction.

    Returns:
        Tuple (origin, direction, power) with ``power = Le / pdf * pi R^2``.
    """
    wi, pdf = sample_environment_direction(sample_dir)
    lo = scene_bounds_min[None]
    hi = scene_bounds_max[None]
    center = 0.5 * (lo + hi)
    radius = tm.max(0.5 * tm.length(hi - lo), 1e-3)

    disk = square_to_concentric_disk(sample_pos)
    offset = to_world(vec3(disk.x, disk.y, 0.0), wi)
    origin = center + radius * (wi + offset)

    power = vec3(0.0, 0.0, 0.0)
    if pdf > 0.0:
        power = eval_environment(wi) / pdf * (tm.pi * radius * radius)
    return origin, -wi, power
