"""Exception types raised by the load-test harness."""


class LoadTestError(Exception):
    """Base class for harness errors."""


class ConfigurationError(LoadTestError):
    """Invalid CLI or environment configuration."""


class SetupError(LoadTestError):
    """Fatal setup failure; aborts the run before any actor starts."""


class ThresholdSyntaxError(LoadTestError):
    """Threshold expression could not be parsed."""
