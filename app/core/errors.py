"""Exception types for the live counter."""


class CounterError(Exception):
    """Base class for live counter errors."""


class IdentityResolutionError(CounterError):
    """Raised when a visitor id cannot be read or minted for a request."""


class ConnectionStateError(CounterError):
    """Raised on an illegal connection lifecycle transition."""


class RegistryInvariantError(CounterError):
    """Raised when the connection counter disagrees with the registered handles."""
