from .client import AsterixDBClient
from .config import Settings, load_settings
from .connector import QueryServiceConnector
from .exceptions import AsterixError, ConfigurationError, FeedError, MetadataError
from .models import ResultPhase, Status, TableSchema

__all__ = [
    "AsterixDBClient",
    "AsterixError",
    "ConfigurationError",
    "FeedError",
    "MetadataError",
    "QueryServiceConnector",
    "ResultPhase",
    "Settings",
    "Status",
    "TableSchema",
    "load_settings",
]
