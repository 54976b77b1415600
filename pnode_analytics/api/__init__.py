"""
API Routers
"""
from .alerts import router as alerts_router
from .analytics import router as analytics_router
from .indexer import router as indexer_router
from .network import router as network_router
from .query import QueryAPI, get_query

__all__ = [
    "alerts_router",
    "analytics_router",
    "indexer_router",
    "network_router",
    "QueryAPI",
    "get_query",
]
