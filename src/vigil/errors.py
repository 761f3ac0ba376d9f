"""Exception types shared across vigil."""


class ConfigurationError(ValueError):
    """A daemon, service or probe configuration is missing a required field."""


class CheckError(Exception):
    """Raised by a probe to signal a failed check along with a reason.

    Never escapes ``HealthCheckEngine.evaluate``; the engine folds it into
    an unhealthy result.
    """
