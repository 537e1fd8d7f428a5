"""Render loop: image buffers and the per-sample render kernel.

One kernel launch adds one sample per pixel. The estimator is selected by
the RenderConfig and passed to the kernel as a template argument, so each
estimator compiles once and switching between them never invalidates the
others. Samples accumulate as a running average in a preallocated color
buffer; NaN, infinite and negative samples are replaced by zero.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.gpu)
    >>> from lightpath.camera.pinhole import setup_camera
    >>> from lightpath.config import RenderConfig
    >>> from lightpath.core.integrator import render_image, save_image, setup_render_target
    >>> from lightpath.scene.cornell_box import create_cornell_box_scene
    >>>
    >>> scene, camera = create_cornell_box_scene()
    >>> setup_camera(camera)
    >>> setup_render_target(256, 256)
    >>> render_image(16, RenderConfig(integrator="path_mis"))
    >>> save_image("cornell.png")
"""

import logging

import numpy as np
import taichi as ti
import taichi.math as tm

from ..camera.pinhole import get_ray_jittered
from ..config import IntegratorType, RenderConfig
from ..emitters.base import get_emitter_count, validate_emitters
from ..errors import ConfigurationError
from ..integrators import apply_render_config, estimate, is_photon_map_ready
from ..scene.intersection import update_scene_bounds

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# =============================================================================
# Render Target
# =============================================================================

MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

_image_width = ti.field(dtype=ti.i32, shape=())
_image_height = ti.field(dtype=ti.i32, shape=())
_color_buffer = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_sample_count = ti.field(dtype=ti.i32, shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))
_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Set the active image size and clear the buffers.

    Raises:
        RuntimeError: If the size exceeds MAX_IMAGE_WIDTH x MAX_IMAGE_HEIGHT.
        ValueError: If either dimension is not positive.
    """
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise RuntimeError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )
    if width < 1 or height < 1:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")

    _image_width[None] = width
    _image_height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()
    logger.debug("render target %dx%d", width, height)


def clear_render_target() -> None:
    _color_buffer.fill(0.0)
    _sample_count.fill(0)


def release_render_target() -> None:
    """Forget the active render target; rendering raises until the next setup."""
    _render_target_initialized[None] = 0


def get_image_dimensions() -> tuple[int, int]:
    return int(_image_width[None]), int(_image_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


# =============================================================================
# Kernels
# =============================================================================


@ti.func
def _sanitize(color: vec3) -> vec3:
    result = tm.max(color, vec3(0.0, 0.0, 0.0))
    for c in ti.static(range(3)):
        if tm.isnan(result[c]) or tm.isinf(result[c]):
            result[c] = 0.0
    return result


@ti.kernel
def _render_one_spp(width: ti.i32, height: ti.i32, kind: ti.template()):
    for i, j in ti.ndrange(width, height):
        ray = get_ray_jittered(i, j, width, height)
        color = _sanitize(estimate(ray, kind))

        _sample_count[i, j] += 1
        n = _sample_count[i, j]
        _color_buffer[i, j] += (color - _color_buffer[i, j]) / ti.cast(n, ti.f32)


@ti.kernel
def _render_single_pixel(pixel_i: ti.i32, pixel_j: ti.i32, width: ti.i32, height: ti.i32, kind: ti.template()) -> vec3:
    ray = get_ray_jittered(pixel_i, pixel_j, width, height)
    return _sanitize(estimate(ray, kind))


# =============================================================================
# Public Rendering API
# =============================================================================


def prepare_render(config: RenderConfig) -> None:
    """Validate the scene for ``config`` and upload its parameters.

    Raises:
        ConfigurationError: If the integrator needs emitters and the scene
            has none, or an area emitter has no shape.
        RuntimeError: If the photon mapper has not been preprocessed.
    """
    validate_emitters()
    if config.needs_emitters() and get_emitter_count() == 0:
        raise ConfigurationError(f"Integrator {config.integrator.name} requires at least one emitter")
    if config.integrator == IntegratorType.PHOTON_MAPPER and not is_photon_map_ready():
        raise RuntimeError("Photon map not built. Call PhotonMapper.preprocess() before rendering.")
    update_scene_bounds()
    apply_render_config(config)


def render_sample(pixel_i: int, pixel_j: int, config: RenderConfig | None = None) -> tuple[float, float, float]:
    """Estimate one sample of a single pixel without touching the buffers.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    if config is None:
        config = RenderConfig()
    prepare_render(config)

    width, height = get_image_dimensions()
    color = _render_single_pixel(pixel_i, pixel_j, width, height, int(config.integrator))
    return (float(color[0]), float(color[1]), float(color[2]))


def render_image(num_samples: int = 1, config: RenderConfig | None = None) -> None:
    """Add ``num_samples`` samples per pixel to the color buffer.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    if config is None:
        config = RenderConfig()
    prepare_render(config)

    width, height = get_image_dimensions()
    kind = int(config.integrator)
    for _ in range(num_samples):
        _render_one_spp(width, height, kind)
    logger.debug("rendered %d spp with %s", num_samples, config.integrator.name)


def get_total_samples() -> int:
    """Samples per pixel accumulated so far (read from pixel (0, 0))."""
    _check_render_target_initialized()
    return int(_sample_count[0, 0])


def get_radiance_numpy() -> np.ndarray:
    """Accumulated radiance as a (height, width, 3) float32 array, top row first."""
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    image = _color_buffer.to_numpy()[:width, :height, :]
    return np.flipud(np.transpose(image, (1, 0, 2))).astype(np.float32)


def get_normalized_image_numpy() -> np.ndarray:
    """Radiance clamped to [0, 1]."""
    return np.clip(get_radiance_numpy(), 0.0, 1.0)


def save_image(filepath: str, gamma: float = 2.2) -> None:
    """Save the image; ``.npy`` keeps raw radiance, anything else goes through Pillow."""
    from PIL import Image as PILImage

    if str(filepath).endswith(".npy"):
        np.save(filepath, get_radiance_numpy())
        return

    image = np.power(get_normalized_image_numpy(), 1.0 / gamma)
    PILImage.fromarray((image * 255).astype(np.uint8)).save(filepath)
    logger.info("saved %s", filepath)
