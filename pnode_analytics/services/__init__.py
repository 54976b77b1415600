"""
Services
Discovery transports and the background indexing driver.
"""

from .discovery import (
    FallbackDataSource,
    NodeDataSource,
    PollingDataSource,
    WebSocketDataSource,
    build_data_source,
)
from .scheduler import IndexingScheduler

__all__ = [
    "FallbackDataSource",
    "NodeDataSource",
    "PollingDataSource",
    "WebSocketDataSource",
    "build_data_source",
    "IndexingScheduler",
]
