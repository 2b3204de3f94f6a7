"""HTTP server: relay routes, dashboard API and the built front-end."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import structlog
from fastapi import FastAPI, HTTPException
from fastapi.responses import FileResponse

from boleto_flow import __version__
from boleto_flow.config import configure_logging, get_settings
from boleto_flow.runtime import Runtime
from boleto_flow.server import api, relay

logger = structlog.get_logger(__name__)


def _resolve_static(static_dir: Path, full_path: str) -> Path | None:
    """Existing file under the build directory, or the SPA entry document."""
    root = static_dir.resolve()
    candidate = (root / full_path).resolve()
    if full_path and candidate.is_file() and candidate.is_relative_to(root):
        return candidate
    index = root / "index.html"
    return index if index.is_file() else None


def create_app(
    runtime: Runtime | None = None,
    upstream: httpx.AsyncClient | None = None,
    static_dir: Path | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        runtime: Session runtime; loaded from settings at startup when omitted.
        upstream: HTTP client the relay forwards with; created at startup when omitted.
        static_dir: Built front-end directory; defaults to settings.
    """
    settings = get_settings()
    build_dir = static_dir or settings.static_dir

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned_runtime = None
        owned_upstream = None
        if getattr(app.state, "runtime", None) is None:
            owned_runtime = app.state.runtime = Runtime.from_settings(settings)
        if getattr(app.state, "upstream", None) is None:
            owned_upstream = app.state.upstream = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.http_timeout)
            )

        logger.info("server_started", relay_routes=["/proxy/digisac", "/proxy/omie"])
        try:
            yield
        finally:
            if owned_runtime is not None:
                await owned_runtime.close()
                app.state.runtime = None
            if owned_upstream is not None:
                await owned_upstream.aclose()
                app.state.upstream = None
            logger.info("server_stopped")

    app = FastAPI(
        title="Boleto Flow",
        description="Relay and dashboard API for boleto notifications",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime
    app.state.upstream = upstream

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(relay.router)
    app.include_router(api.router)

    # Registered last: anything unmatched is a front-end route
    @app.get("/{full_path:path}", include_in_schema=False)
    async def spa(full_path: str) -> FileResponse:
        path = _resolve_static(build_dir, full_path)
        if path is None:
            raise HTTPException(status_code=404, detail="Front-end build not found")
        return FileResponse(path)

    return app


def main() -> None:
    """Console entry point: run the server with uvicorn."""
    import uvicorn

    configure_logging()
    settings = get_settings()
    logger.info("starting_server", host=settings.host, port=settings.port)
    uvicorn.run(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
