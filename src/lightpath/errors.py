"""Exception hierarchy for lightpath.

Malformed scenes and parameters are rejected on the host before any kernel
runs. Numerical degeneracies inside kernels never raise; they resolve to
zero contributions.
"""


class LightpathError(Exception):
    """Base class for all errors raised by lightpath."""


class ConfigurationError(LightpathError, ValueError):
    """A scene, emitter, medium or render parameter is invalid.

    Subclasses ValueError so callers validating plain arguments can keep
    catching ValueError.
    """
