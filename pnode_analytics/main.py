"""
pNode Analytics API
App factory and service wiring.

Run:
    python -m pnode_analytics.main
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pnode_analytics.alerts.engine import AlertRuleEngine
from pnode_analytics.analytics.engine import QuantAnalyticsEngine
from pnode_analytics.api import (
    QueryAPI,
    alerts_router,
    analytics_router,
    indexer_router,
    network_router,
)
from pnode_analytics.config import Settings, get_settings
from pnode_analytics.core.collector import Collector
from pnode_analytics.core.errors import (
    DiscoveryError,
    NotFoundError,
    RuleValidationError,
    StorageError,
)
from pnode_analytics.core.normalizer import NodeStateNormalizer
from pnode_analytics.db.alert_store import AlertStore
from pnode_analytics.db.sqlite import SQLiteDatabase, TimeSeriesStore
from pnode_analytics.services.discovery import NodeDataSource, build_data_source
from pnode_analytics.services.scheduler import IndexingScheduler

logger = logging.getLogger(__name__)

APP_NAME = "pNode Analytics API"
APP_VERSION = "1.0.0"


@dataclass
class Services:
    """Every long-lived instance, built once per process."""
    settings: Settings
    db: SQLiteDatabase
    store: TimeSeriesStore
    alert_engine: AlertRuleEngine
    quant_engine: QuantAnalyticsEngine
    collector: Collector
    scheduler: IndexingScheduler
    query: QueryAPI

    def close(self) -> None:
        self.scheduler.stop()
        self.db.close()


def build_services(
    settings: Optional[Settings] = None,
    source: Optional[NodeDataSource] = None,
) -> Services:
    settings = settings or get_settings()
    db = SQLiteDatabase(settings.storage.db_path)
    store = TimeSeriesStore(db)
    alert_engine = AlertRuleEngine(AlertStore(db), settings.alerts)
    quant_engine = QuantAnalyticsEngine(store, settings.analytics)
    collector = Collector(
        source or build_data_source(settings.discovery),
        store,
        normalizer=NodeStateNormalizer(settings.normalizer),
        alert_engine=alert_engine,
    )
    scheduler = IndexingScheduler(collector, settings.indexer.interval_seconds)
    query = QueryAPI(store, alert_engine, quant_engine, collector, scheduler)
    return Services(
        settings=settings,
        db=db,
        store=store,
        alert_engine=alert_engine,
        quant_engine=quant_engine,
        collector=collector,
        scheduler=scheduler,
        query=query,
    )


# =============================================================================
# Error mapping
# =============================================================================

def _error_response(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    settings = settings or (services.settings if services else get_settings())
    logging.basicConfig(
        level=settings.get_log_level(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.indexer.autostart:
            services.scheduler.start()
        yield
        services.close()

    app = FastAPI(
        title=APP_NAME,
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
    )
    app.state.services = services
    app.state.query = services.query

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NotFoundError, _error_response(404))
    app.add_exception_handler(RuleValidationError, _error_response(400))
    app.add_exception_handler(DiscoveryError, _error_response(503))
    app.add_exception_handler(StorageError, _error_response(500))

    app.include_router(alerts_router, prefix="/api")
    app.include_router(analytics_router, prefix="/api")
    app.include_router(network_router, prefix="/api")
    app.include_router(indexer_router, prefix="/api")

    @app.get("/")
    def root():
        return {"name": APP_NAME, "version": APP_VERSION, "docs": "/docs"}

    @app.get("/health")
    def health():
        collector = services.collector.stats()
        store = services.store.stats()
        return {
            "status": "healthy",
            "collector": {
                "state": collector["state"],
                "last_success_at": collector["last_success_at"],
            },
            "store": {
                "cycle_count": store["cycle_count"],
                "latest_cycle_at": store["latest_cycle_at"],
            },
            "scheduler": {"is_running": services.scheduler.is_running},
        }

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("pnode_analytics.main:create_app", factory=True, host="0.0.0.0", port=8000)
