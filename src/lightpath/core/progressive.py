"""Progressive renderer for iterative sample accumulation.

ProgressiveRenderer wraps the render loop for one image size and one
RenderConfig. It runs the photon preprocessing pass on demand when the
config selects the photon mapper.

Example:
    >>> from lightpath.config import RenderConfig
    >>> from lightpath.core.progressive import ProgressiveRenderer
    >>> renderer = ProgressiveRenderer(256, 256, RenderConfig(integrator="vol_path_mis"))
    >>> for current, target in renderer.render_progressive(64, batch_size=16):
    ...     print(f"{current}/{target} spp")
    >>> renderer.save_image("volume.png")
"""

import logging
from collections.abc import Callable, Generator

import numpy as np
import numpy.typing as npt

from ..config import IntegratorType, RenderConfig
from ..integrators import PhotonMapper, is_photon_map_ready
from .integrator import (
    clear_render_target,
    get_normalized_image_numpy,
    get_radiance_numpy,
    get_total_samples,
    render_image,
    save_image,
    setup_render_target,
)

logger = logging.getLogger(__name__)

# Receives (current_samples, target_samples)
ProgressCallback = Callable[[int, int], None]


class ProgressiveRenderer:
    """Accumulates samples for one image size and render configuration.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        config: Render configuration used for every batch.
    """

    def __init__(self, width: int, height: int, config: RenderConfig | None = None) -> None:
        self._width = width
        self._height = height
        self.config = config if config is not None else RenderConfig()
        self.photon_mapper: PhotonMapper | None = None
        setup_render_target(width, height)

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def sample_count(self) -> int:
        return get_total_samples()

    def reset(self) -> None:
        """Clear accumulated samples; the photon map is kept."""
        clear_render_target()

    def resize(self, width: int, height: int) -> None:
        self._width = width
        self._height = height
        setup_render_target(width, height)

    def preprocess(self) -> None:
        """Build the photon map if the config needs one and it is missing."""
        if self.config.integrator != IntegratorType.PHOTON_MAPPER:
            return
        if self.photon_mapper is None or not is_photon_map_ready():
            self.photon_mapper = PhotonMapper(self.config)
            self.photon_mapper.preprocess()

    def render(
        self,
        num_samples: int = 1,
        batch_size: int = 1,
        callback: ProgressCallback | None = None,
    ) -> None:
        """Add ``num_samples`` samples per pixel, calling ``callback`` after each batch."""
        for current, target in self.render_progressive(num_samples, batch_size):
            if callback is not None:
                callback(current, target)

    def render_progressive(
        self,
        num_samples: int = 1,
        batch_size: int = 1,
    ) -> Generator[tuple[int, int], None, None]:
        """Render in batches, yielding (current, target) samples after each one."""
        if num_samples <= 0:
            return
        self.preprocess()

        target_samples = self.sample_count + num_samples
        remaining = num_samples
        while remaining > 0:
            batch = min(batch_size, remaining)
            render_image(batch, self.config)
            remaining -= batch
            logger.debug("progress %d/%d spp", self.sample_count, target_samples)
            yield (self.sample_count, target_samples)

    def get_radiance(self) -> npt.NDArray[np.float32]:
        """Unclamped accumulated radiance, shape (height, width, 3)."""
        return get_radiance_numpy()

    def get_image_numpy(self, gamma: float = 1.0) -> npt.NDArray[np.float32]:
        image = get_normalized_image_numpy()
        if gamma != 1.0:
            image = np.power(image, 1.0 / gamma)
        return image

    def get_image_uint8(self, gamma: float = 2.2) -> npt.NDArray[np.uint8]:
        return (self.get_image_numpy(gamma=gamma) * 255).astype(np.uint8)

    def save_image(self, filepath: str, gamma: float = 2.2) -> None:
        save_image(filepath, gamma=gamma)

    def __repr__(self) -> str:
        return (
            f"ProgressiveRenderer(width={self.width}, height={self.height}, "
            f"integrator={self.config.integrator.name.lower()}, samples={self.sample_count})"
        )
