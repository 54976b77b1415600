"""
Indexer API
Manual cycle trigger and pipeline status.

Endpoints:
    POST /api/indexer/trigger  → Run one indexing cycle now
    GET  /api/indexer/status   → Collector, scheduler, store and alert stats
"""

from fastapi import APIRouter, Depends

from .query import QueryAPI, get_query

router = APIRouter(prefix="/indexer", tags=["Indexer"])


@router.post("/trigger")
def trigger(query: QueryAPI = Depends(get_query)):
    """
    Runs synchronously. Returns status "skipped" when a cycle is already in
    flight; 503 when the discovery source is unavailable.
    """
    return query.trigger_indexing_cycle()


@router.get("/status")
def status(query: QueryAPI = Depends(get_query)):
    return query.status()
