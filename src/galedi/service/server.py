"""
Galedi long-running service (background sync jobs + small HTTP API).

Provides:
- Ingestion job: pull each partner's raw data file into the store
- Export job: request/feedback handshake, upload pending records
- GET /health, GET /status
- POST /sync/ingest/run_once, POST /sync/export/run_once
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Any

from aiohttp import web

from galedi.config.settings import AgentConfig, PartnerConfig
from galedi.connections.manager import create_remote_channel
from galedi.core.initialization import initialize
from galedi.core.store import RecordStore
from galedi.exceptions import GalediError
from galedi.service.scheduler import IntervalSchedule, PeriodicJob
from galedi.sync.export import run_export
from galedi.sync.ingest import run_ingestion
from galedi.sync.locks import KeyedLocks
from galedi.sync.types import PURPOSE_EXPORT, PURPOSE_INGEST, ChannelFactory
from galedi.utils.cancellation import CancelToken
from galedi.utils.logging import get_logger

logger = get_logger("galedi.service")


class SyncService:
    """Owns the store, the locks and the two periodic jobs of one agent."""

    def __init__(
        self,
        config: AgentConfig,
        store: RecordStore,
        *,
        channel_factory: ChannelFactory = create_remote_channel,
    ):
        self.config = config
        self.store = store
        self.channel_factory = channel_factory

        self.locks = KeyedLocks()
        self.cancel = CancelToken()

        self.jobs: dict[str, PeriodicJob] = {
            PURPOSE_INGEST: PeriodicJob(
                PURPOSE_INGEST,
                self.run_ingestion_pass,
                IntervalSchedule.from_config(config.schedule.ingest),
            ),
            PURPOSE_EXPORT: PeriodicJob(
                PURPOSE_EXPORT,
                self.run_export_pass,
                IntervalSchedule.from_config(config.schedule.export),
            ),
        }

    def _partners(self, partner_id: str | None = None) -> tuple[PartnerConfig, ...]:
        if partner_id is None:
            return self.config.enabled_partners()
        partner = self.config.partner(partner_id)
        return (partner,) if partner.enabled else ()

    def run_ingestion_pass(self, partner_id: str | None = None) -> dict[str, Any]:
        return run_ingestion(
            self._partners(partner_id),
            store=self.store,
            work_dir=self.config.work_dir,
            locks=self.locks,
            cancel=self.cancel,
            channel_factory=self.channel_factory,
        )

    def run_export_pass(self, partner_id: str | None = None) -> dict[str, Any]:
        return run_export(
            self._partners(partner_id),
            store=self.store,
            work_dir=self.config.work_dir,
            locks=self.locks,
            cancel=self.cancel,
            channel_factory=self.channel_factory,
        )

    def start(self) -> None:
        for job in self.jobs.values():
            job.start()
        partners = ", ".join(p.partner_id for p in self.config.enabled_partners())
        logger.info(
            f"Sync jobs started for {partners} "
            f"(ingest every {self.config.schedule.ingest.every_s:g}s, "
            f"export every {self.config.schedule.export.every_s:g}s)"
        )

    async def stop(self) -> None:
        """Signal cancellation, then wait for in-flight passes to unwind."""
        self.cancel.cancel("shutdown")
        results = await asyncio.gather(*(job.stop() for job in self.jobs.values()), return_exceptions=True)
        for name, result in zip(self.jobs, results):
            if isinstance(result, BaseException):
                logger.error(f"Stopping {name} job failed: {result}")
        self.store.close()
        logger.info("Sync jobs stopped")

    def status(self) -> dict[str, Any]:
        pending: dict[str, int | None] = {}
        for partner in self.config.enabled_partners():
            try:
                pending[partner.partner_id] = self.store.pending_count(partner.partner_id)
            except GalediError as e:
                logger.warning(f"Cannot read pending count for {partner.partner_id}: {e}")
                pending[partner.partner_id] = None
        return {
            "env": self.config.env,
            "cancelled": self.cancel.cancelled,
            "jobs": {name: job.status() for name, job in self.jobs.items()},
            "pending": pending,
        }

    # --- HTTP handlers ----------------------------------------------------

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def handle_status(self, request: web.Request) -> web.Response:
        status = await asyncio.to_thread(self.status)
        return web.json_response(status)

    async def _handle_run_once(self, request: web.Request, purpose: str) -> web.Response:
        """
        POST /sync/{purpose}/run_once
        Body (optional):
          { "partner": "MFR-H" }
        """
        partner_id: str | None = None
        if request.can_read_body:
            try:
                payload = await request.json()
            except ValueError:
                return web.json_response({"error": "Invalid JSON body"}, status=400)
            if not isinstance(payload, dict):
                return web.json_response({"error": "body must be an object"}, status=400)
            partner_id = payload.get("partner")

        if partner_id is not None:
            try:
                self.config.partner(str(partner_id))
            except KeyError:
                return web.json_response({"error": f"unknown partner {partner_id}"}, status=404)
            summary = await asyncio.to_thread(self._pass_for(purpose), str(partner_id))
        else:
            summary = await self.jobs[purpose].run_once()
            if summary is None:
                return web.json_response({"status": "busy", "purpose": purpose}, status=409)

        return web.json_response({"status": "ok", "summary": summary})

    def _pass_for(self, purpose: str) -> Callable[[str | None], dict[str, Any]]:
        return self.run_ingestion_pass if purpose == PURPOSE_INGEST else self.run_export_pass

    async def handle_ingest_once(self, request: web.Request) -> web.Response:
        return await self._handle_run_once(request, PURPOSE_INGEST)

    async def handle_export_once(self, request: web.Request) -> web.Response:
        return await self._handle_run_once(request, PURPOSE_EXPORT)


@web.middleware
async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Request ids plus JSON error bodies for failures escaping a handler."""
    request_id = f"req_{uuid.uuid4().hex[:12]}"
    try:
        response = await handler(request)
        response.headers["X-Request-ID"] = request_id
        return response
    except web.HTTPException:
        raise
    except GalediError as e:
        logger.error(f"{request.method} {request.path} failed: {e}")
        return web.json_response(
            {"error": {"type": type(e).__name__, "message": str(e), "details": e.details, "request_id": request_id}},
            status=500,
            headers={"X-Request-ID": request_id},
        )
    except Exception as e:
        logger.exception(f"Unexpected error on {request.method} {request.path}: {e}")
        return web.json_response(
            {"error": {"type": "InternalError", "message": "Internal server error", "request_id": request_id}},
            status=500,
            headers={"X-Request-ID": request_id},
        )


def create_app(svc: SyncService, *, start_jobs: bool = True) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app.add_routes(
        [
            web.get("/health", svc.handle_health),
            web.get("/status", svc.handle_status),
            web.post("/sync/ingest/run_once", svc.handle_ingest_once),
            web.post("/sync/export/run_once", svc.handle_export_once),
        ]
    )

    if start_jobs:

        async def on_startup(app: web.Application) -> None:
            svc.start()

        async def on_cleanup(app: web.Application) -> None:
            await svc.stop()

        app.on_startup.append(on_startup)
        app.on_cleanup.append(on_cleanup)
    return app


async def _run_headless(svc: SyncService) -> None:
    svc.start()
    try:
        await asyncio.Event().wait()
    finally:
        await svc.stop()


def run_service(
    *,
    project_dir: Path,
    env: str | None,
    host: str | None = None,
    port: int | None = None,
    verbose: bool = False,
    enable_http: bool | None = None,
) -> None:
    """
    Run the Galedi agent (blocking) until interrupted.

    Args:
        project_dir: Project directory holding config.yaml
        env: Environment name (dev, staging, prod)
        host: Bind host (default: service.host from config)
        port: Bind port (default: service.port from config)
        verbose: Enable debug logging
        enable_http: Serve the HTTP API (default: service.http_enabled from config)

    Raises:
        ConfigurationError: If the configuration is invalid
        InitializationError: If the store or work directory cannot be set up
    """
    config, store = initialize(project_dir, env=env, verbose=verbose)
    svc = SyncService(config, store)

    http = config.service.http_enabled if enable_http is None else enable_http
    if not http:
        logger.info("HTTP API disabled, running sync jobs only")
        try:
            asyncio.run(_run_headless(svc))
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        return

    host = host or config.service.host
    port = port or config.service.port
    logger.info(f"Galedi service starting on http://{host}:{port}")
    web.run_app(create_app(svc), host=host, port=port, access_log=None, print=None)
