from __future__ import annotations


class FreeCycleError(Exception):
    """Base class for recoverable application errors. None of them are fatal."""


class ConfigurationError(FreeCycleError):
    """Missing or invalid credentials for one of the remote services."""


class ConnectivityError(FreeCycleError):
    """A subscription or request could not reach the remote service."""


class UpstreamError(FreeCycleError):
    """The remote service answered with an explicit error payload."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FreeCycleError):
    """Input rejected before any network call."""


class MissingIdentityError(ValidationError):
    """A write was attempted without a signed-in identity."""


# Generation path -------------------------------------------------------------


class GenerationError(FreeCycleError):
    """Any failure of a single generation request."""


class GenerationConfigurationError(GenerationError, ConfigurationError):
    pass


class GenerationConnectivityError(GenerationError, ConnectivityError):
    pass


class GenerationUpstreamError(GenerationError, UpstreamError):
    pass


class MalformedResponseError(GenerationError):
    """The endpoint answered with a body that is not JSON."""
