"""
Runtime configuration and the shared error taxonomy.

Everything environment-dependent is resolved once into a RuntimeEnvironment
and passed down; components never read the process environment themselves.
"""

from .environment import RuntimeEnvironment
from .errors import (
    ConfigurationError,
    ConnectivityError,
    FreeCycleError,
    GenerationConfigurationError,
    GenerationConnectivityError,
    GenerationError,
    GenerationUpstreamError,
    MalformedResponseError,
    MissingIdentityError,
    UpstreamError,
    ValidationError,
)

__all__ = [
    "RuntimeEnvironment",
    "ConfigurationError",
    "ConnectivityError",
    "FreeCycleError",
    "GenerationConfigurationError",
    "GenerationConnectivityError",
    "GenerationError",
    "GenerationUpstreamError",
    "MalformedResponseError",
    "MissingIdentityError",
    "UpstreamError",
    "ValidationError",
]
