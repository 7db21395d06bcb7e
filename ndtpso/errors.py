"""Exception and warning types raised by the NDT-PSO scan matcher.

Every exception derives from NDTPSOError and from the closest builtin, so
callers can catch either (e.g. ``except ValueError`` still catches a bad
configuration).

Fatal (construction / startup):
    - ConfigError: invalid grid, optimizer or node parameters
    - ResourceExhaustion: the requested grid could not be allocated
    - BootstrapTimeout: the sensor-mount transform never arrived

Recoverable (per cycle, downgraded to warnings by the matcher):
    - InputError: malformed range array
    - DegenerateMapError: reference map has no informative cells yet
    - exceptions raised by cycle listeners (ListenerWarning)
"""


class NDTPSOError(Exception):
    """Base class for all scan matcher errors."""


class ConfigError(NDTPSOError, ValueError):
    """Invalid configuration value, detected at construction time."""


class InputError(NDTPSOError, ValueError):
    """Malformed sensor input for one cycle."""


class DegenerateMapError(NDTPSOError, RuntimeError):
    """The reference frame cannot score anything (no informative cells)."""


class BootstrapTimeout(NDTPSOError, TimeoutError):
    """A required transform did not become available within the bounded wait."""


class ResourceExhaustion(NDTPSOError, MemoryError):
    """Grid storage could not be allocated."""


class ScanInputWarning(UserWarning):
    """A scan was rejected; the cycle continues with an empty point cloud."""


class DegenerateAlignmentWarning(UserWarning):
    """Alignment returned the seed pose unchanged."""


class ListenerWarning(UserWarning):
    """A cycle listener raised; the cycle result is kept and other listeners still run."""
