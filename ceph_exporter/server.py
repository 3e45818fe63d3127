"""
Scrape server - FastAPI app exposing /metrics and /health
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST

from .exporter import Exporter
from .exposition import render

logger = logging.getLogger("ceph_exporter.server")


def create_metrics_routes(exporter: Exporter) -> APIRouter:
    """Create scrape and health routes."""
    router = APIRouter()

    @router.get("/metrics")
    async def metrics():
        """Prometheus scrape endpoint. Always 200, with whatever could be collected."""
        try:
            samples = await exporter.collect()
        except Exception as e:
            logger.exception(f"scrape failed: {e}")
            samples = []
        return Response(content=render(samples, exporter.describe()), media_type=CONTENT_TYPE_LATEST)

    @router.get("/health")
    async def health():
        return {
            "status": "ok",
            "cluster": exporter.config.cluster,
            "collectors": sorted(exporter.pipelines),
            "timestamp": int(time.time()),
        }

    return router


def create_app(exporter: Exporter) -> FastAPI:
    """Build the FastAPI app; background collection runs for the app's lifetime."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        exporter.start()
        try:
            yield
        finally:
            await exporter.stop()

    app = FastAPI(title="ceph_exporter", lifespan=lifespan)
    app.include_router(create_metrics_routes(exporter))
    return app
