class AsterixError(RuntimeError):
    """Base error for fatal client failures."""


class ConfigurationError(AsterixError, ValueError):
    """Raised when settings are unusable (bad URL, name, feed host/port)."""


class MetadataError(AsterixError):
    """Raised when the dataset's primary key or fields cannot be discovered."""


class FeedError(AsterixError):
    """Raised when the socket feed cannot be opened."""
