"""Exception types raised by ardactl."""


class ArdactlError(Exception):
    """Base class for all ardactl errors."""
    pass


class ConfigError(ArdactlError):
    """The cluster configuration is missing, unreadable or invalid."""
    pass


class DistributionError(ArdactlError):
    """The configuration broadcast was truncated or does not decode."""
    pass


class NoReadyNodesError(ArdactlError):
    """Every candidate node failed its preflight checks."""
    pass


class ResultFormatError(ArdactlError):
    """A serialized NodeResult record could not be decoded."""
    pass
