"""Light sources behind one sampling contract.

Components:
    base: Emitter registry fields, EmitterType and the EmitterSample record
    area: One-sided diffuse emitters bound to a sphere or quad
    point: Isotropic point lights (delta position)
    environment: Importance-sampled equirectangular environment map
    sampling: sample / eval / pdf / photon dispatch and uniform selection

Every emitter supports:
    - sample_emitter(): Sample a direction toward the emitter with weight Le / pdf
    - eval_emitter(): Radiance arriving along a direction that hit the emitter
    - pdf_emitter(): Solid-angle density of that direction
    - sample_photon(): Emit a photon (origin, direction, power)
"""

from .area import add_area_emitter, attach_area_shape
from .base import (
    MAX_EMITTERS,
    EmitterSample,
    EmitterType,
    ShapeKind,
    clear_emitters,
    get_emitter_count,
    validate_emitters,
)
from .environment import add_environment_emitter, load_environment_image
from .point import add_point_emitter
from .sampling import (
    choose_emitter,
    eval_emitter,
    eval_escaped,
    pdf_emitter,
    sample_emitter,
    sample_photon,
)

__all__ = [
    "MAX_EMITTERS",
    "EmitterSample",
    "EmitterType",
    "ShapeKind",
    "add_area_emitter",
    "add_environment_emitter",
    "add_point_emitter",
    "attach_area_shape",
    "choose_emitter",
    "clear_emitters",
    "eval_emitter",
    "eval_escaped",
    "get_emitter_count",
    "load_environment_image",
    "pdf_emitter",
    "sample_emitter",
    "sample_photon",
    "validate_emitters",
]
