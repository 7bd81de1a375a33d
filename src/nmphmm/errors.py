"""
Exception types raised by the model builder, the sampler and the engines.
"""


class NMPError(Exception):
    """Base class for all package errors."""


class ConfigurationError(NMPError, ValueError):
    """A prior, transition, likelihood or inference setting is invalid."""


class SamplingError(NMPError, RuntimeError):
    """Inverse-CDF sampling could not select an index."""


class ShapeError(NMPError, ValueError):
    """A tensor or index sequence does not have the expected shape."""
