"""Render configuration.

RenderConfig gathers the per-render tunables: which estimator to run and
the bounce, roulette, ambient-occlusion and photon-mapping parameters. It
round-trips through plain dictionaries for JSON scene files.

Example:
    >>> from lightpath.config import RenderConfig
    >>> config = RenderConfig.from_dict({"integrator": "path_mis", "max_depth": 16})
    >>> config.effective_rr_cap()
    1.0
"""

from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any

from .errors import ConfigurationError


class IntegratorType(IntEnum):
    """Light transport estimators."""

    AV = 0
    DIRECT = 1
    DIRECT_EMS = 2
    DIRECT_MATS = 3
    DIRECT_MIS = 4
    PATH_MATS = 5
    PATH_MIS = 6
    VOL_PATH_MATS = 7
    VOL_PATH_MIS = 8
    PHOTON_MAPPER = 9

    @classmethod
    def parse(cls, value: "IntegratorType | str | int") -> "IntegratorType":
        """Accept an enum member, its name (any case) or its integer value."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ConfigurationError(f"Unknown integrator: {value!r}") from None
        try:
            return cls(int(value))
        except ValueError:
            raise ConfigurationError(f"Unknown integrator: {value!r}") from None


# Integrators that sample emitters explicitly and need at least one
EMITTER_SAMPLING_INTEGRATORS = frozenset(
    {
        IntegratorType.DIRECT,
        IntegratorType.DIRECT_EMS,
        IntegratorType.DIRECT_MIS,
        IntegratorType.PATH_MIS,
        IntegratorType.VOL_PATH_MIS,
        IntegratorType.PHOTON_MAPPER,
    }
)

VOLUMETRIC_INTEGRATORS = frozenset({IntegratorType.VOL_PATH_MATS, IntegratorType.VOL_PATH_MIS})

# Roulette survival caps used when RenderConfig.rr_cap is None
DEFAULT_RR_CAP = 1.0
DEFAULT_VOLUMETRIC_RR_CAP = 0.95
DEFAULT_PHOTON_RR_CAP = 0.99

DEFAULT_MAX_DEPTH = 64
DEFAULT_PHOTON_COUNT = 1_000_000


@dataclass
class RenderConfig:
    """Per-render parameters.

    Attributes:
        integrator: Estimator to run.
        max_depth: Maximum number of scattering events per path.
        rr_start_depth: Bounce index from which Russian roulette applies.
        rr_cap: Upper bound on the roulette survival probability. None
            selects the estimator's default.
        ao_length: Occlusion ray length for the AV estimator.
        photon_count: Number of photons to deposit during preprocessing.
        photon_radius: Density estimation radius. None or 0 derives it from
            the scene bounding box.
    """

    integrator: IntegratorType = IntegratorType.PATH_MIS
    max_depth: int = DEFAULT_MAX_DEPTH
    rr_start_depth: int = 0
    rr_cap: float | None = None
    ao_length: float = 1.0
    photon_count: int = DEFAULT_PHOTON_COUNT
    photon_radius: float | None = None

    def __post_init__(self) -> None:
        self.integrator = IntegratorType.parse(self.integrator)
        if self.max_depth < 1:
            raise ConfigurationError(f"max_depth must be at least 1, got {self.max_depth}")
        if self.rr_start_depth < 0:
            raise ConfigurationError(f"rr_start_depth must be non-negative, got {self.rr_start_depth}")
        if self.rr_cap is not None and not 0.0 < self.rr_cap <= 1.0:
            raise ConfigurationError(f"rr_cap must be in (0, 1], got {self.rr_cap}")
        if self.ao_length <= 0.0:
            raise ConfigurationError(f"ao_length must be positive, got {self.ao_length}")
        if self.photon_count < 1:
            raise ConfigurationError(f"photon_count must be positive, got {self.photon_count}")
        if self.photon_radius is not None and self.photon_radius < 0.0:
            raise ConfigurationError(f"photon_radius must be non-negative, got {self.photon_radius}")

    def effective_rr_cap(self) -> float:
        """Roulette cap for this render, falling back to the estimator default."""
        if self.rr_cap is not None:
            return float(self.rr_cap)
        if self.integrator in VOLUMETRIC_INTEGRATORS:
            return DEFAULT_VOLUMETRIC_RR_CAP
        if self.integrator == IntegratorType.PHOTON_MAPPER:
            return DEFAULT_PHOTON_RR_CAP
        return DEFAULT_RR_CAP

    def needs_emitters(self) -> bool:
        return self.integrator in EMITTER_SAMPLING_INTEGRATORS

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["integrator"] = self.integrator.name.lower()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RenderConfig":
        """Build a config from a dictionary, ignoring unknown keys.

        Raises:
            ConfigurationError: If any value is invalid.
        """
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in data.items() if key in known})
