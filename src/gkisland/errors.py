"""
Exception hierarchy for gkisland.

Configuration errors and physical-consistency violations are fatal: they
propagate out of the enclosing time step and are never retried. Mode
coupling beyond the resolved spectral range is NOT an error (it is defined
to contribute zero) and therefore has no exception here.
"""


class GKIslandError(Exception):
    """Base class for all gkisland errors."""


class ConfigurationError(GKIslandError, ValueError):
    """Invalid or inconsistent user configuration."""


class UnknownEquationError(ConfigurationError):
    """Requested Vlasov equation type is not one of the supported variants."""


class ProfileExpressionError(ConfigurationError):
    """A density/temperature profile expression could not be parsed."""


class IslandConfigurationError(ConfigurationError):
    """Island width cannot be reached by the calibration root-find."""


class PhysicalConsistencyError(GKIslandError):
    """
    Species table violates a physical consistency requirement.

    Not a ValueError: raised from model validators and must reach the
    caller unchanged rather than folded into a pydantic ValidationError.
    """


class ChargeNeutralityError(PhysicalConsistencyError):
    """Charge-weighted background densities do not sum to zero."""


class SpeciesMassError(PhysicalConsistencyError):
    """Species mass below the numerical floor."""
