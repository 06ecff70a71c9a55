"""Setup errors. Any of these aborts the run before a request is sent."""


class WebTestError(Exception):
    """Base class for fatal setup failures."""


class ConfigurationError(WebTestError, ValueError):
    """Invalid run configuration."""


class TokenFileError(WebTestError):
    """Bearer token file missing, unreadable or empty."""


class ClientSetupError(WebTestError):
    """The shared HTTP client could not be constructed."""
