"""FastAPI application for deploysync."""

import logging
from contextlib import asynccontextmanager, suppress

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deploysync.clients.github_client import GitHubClient
from deploysync.clients.linear_client import LinearClient
from deploysync.clients.render_client import RenderClient
from deploysync.config import Settings, settings
from deploysync.handlers.commit_range import CommitRangeResolver
from deploysync.handlers.reconcile import ReconciliationOrchestrator
from deploysync.handlers.ticket_sync import TicketStateSync
from deploysync.ledger import Ledger
from deploysync.retry import RetryingInvoker
from deploysync.routes.audit import router as audit_router
from deploysync.routes.webhooks import router as webhooks_router

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)


def build_orchestrator(
    config: Settings,
    ledger: Ledger,
    render: RenderClient,
    github: GitHubClient,
    linear: LinearClient,
) -> ReconciliationOrchestrator:
    return ReconciliationOrchestrator(
        render=render,
        ledger=ledger,
        resolver=CommitRangeResolver(ledger, github),
        ticket_sync=TicketStateSync(linear, ledger, concurrency=config.ticket_concurrency),
        ticket_prefixes=config.ticket_prefixes,
        branch_filter=config.branch_filter,
        dry_run=config.dry_run,
    )


async def log_watched_services(render: RenderClient, config: Settings) -> None:
    """Best effort: list the workspace's services that match the branch filter."""
    if not config.branch_filter:
        logger.info("Branch filter disabled — skipping service discovery")
        return
    try:
        services = await render.list_services(config.render_workspace_id or None)
    except Exception as exc:
        logger.warning("Could not list Render services: %s", exc)
        return
    watched = [s.name for s in services if s.branch == config.branch_filter]
    logger.info(
        "Watching %d of %d service(s) on branch %s: %s",
        len(watched),
        len(services),
        config.branch_filter,
        ", ".join(watched) or "none",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: Settings = app.state.settings
    logger.info("deploysync starting up (%s mode)", config.mode)
    if config.dry_run:
        logger.info("DRY RUN MODE — no changes will be made to Linear tickets")
    if config.linear_api_key and not config.linear_api_key.startswith("lin_api_"):
        logger.warning('DEPLOYSYNC_LINEAR_API_KEY might be invalid — should start with "lin_api_"')
    if not config.ticket_prefixes:
        logger.warning("No ticket prefixes configured — no tickets will be matched")

    ledger = Ledger.open(config.database_url, echo=config.debug)
    await ledger.init_schema()
    invoker = RetryingInvoker(
        max_attempts=config.retry_max_attempts, base_delay=config.retry_base_delay
    )
    render = linear = github = None
    try:
        render = RenderClient(config.render_api_key, invoker, timeout=config.http_timeout)
        linear = LinearClient(config.linear_api_key, invoker, timeout=config.http_timeout)
        github = GitHubClient(invoker, token=config.github_token, timeout=config.http_timeout)

        app.state.ledger = ledger
        app.state.orchestrator = build_orchestrator(config, ledger, render, github, linear)
        await log_watched_services(render, config)
        yield
    finally:
        logger.info("deploysync shutting down")
        for client in (render, linear, github):
            if client is not None:
                with suppress(Exception):
                    await client.close()
        await ledger.close()


def create_app(config: Settings | None = None) -> FastAPI:
    app = FastAPI(
        title="deploysync",
        description="Moves Linear tickets to Done when the Render deploy that ships them succeeds",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = config or settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhooks_router)
    app.include_router(audit_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "deploysync", "mode": app.state.settings.mode}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("deploysync.main:app", host="0.0.0.0", port=8000)
