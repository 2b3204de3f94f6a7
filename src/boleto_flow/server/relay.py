"""Pass-through relay for cross-origin calls to DigiSac and Omie.

``/proxy/digisac/...`` forwards to the host named in the ``x-target-url``
header; ``/proxy/omie/...`` forwards to the fixed Omie API root.
"""

import httpx
import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse

from boleto_flow.clients.digisac import TARGET_HEADER
from boleto_flow.config import get_settings

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/proxy", tags=["relay"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

# Never forwarded upstream
_REQUEST_HEADERS_DROPPED = frozenset(
    {"host", "content-length", "connection", "transfer-encoding", "accept-encoding", TARGET_HEADER}
)
# Never copied back; httpx has already decoded and re-framed the body
_RESPONSE_HEADERS_DROPPED = frozenset(
    {"content-length", "content-encoding", "transfer-encoding", "connection"}
)


def get_upstream(request: Request) -> httpx.AsyncClient:
    return request.app.state.upstream


async def forward(
    request: Request,
    client: httpx.AsyncClient,
    upstream_url: str,
    unreachable_message: str,
) -> Response:
    """Replay the incoming request against ``upstream_url`` and mirror the answer."""
    headers = {
        name: value
        for name, value in request.headers.items()
        if name.lower() not in _REQUEST_HEADERS_DROPPED
    }
    body = await request.body()

    try:
        upstream = await client.request(
            request.method,
            upstream_url,
            params=list(request.query_params.multi_items()),
            headers=headers,
            content=body or None,
        )
    except httpx.RequestError as e:
        logger.error("relay_upstream_unreachable", url=upstream_url, error=str(e))
        return PlainTextResponse(unreachable_message, status_code=502)

    logger.debug(
        "relay_forwarded",
        method=request.method,
        url=upstream_url,
        status_code=upstream.status_code,
    )
    response_headers = {
        name: value
        for name, value in upstream.headers.items()
        if name.lower() not in _RESPONSE_HEADERS_DROPPED
    }
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=response_headers,
    )


@router.api_route("/digisac/{path:path}", methods=PROXY_METHODS)
async def proxy_digisac(
    path: str, request: Request, client: httpx.AsyncClient = Depends(get_upstream)
) -> Response:
    target = (request.headers.get(TARGET_HEADER) or "").strip()
    if not target:
        logger.error("relay_missing_target")
        return PlainTextResponse("Missing target URL", status_code=400)

    return await forward(
        request,
        client,
        f"{target.rstrip('/')}/{path}",
        "Proxy Error: Could not reach DigiSac server",
    )


@router.api_route("/omie/{path:path}", methods=PROXY_METHODS)
async def proxy_omie(
    path: str, request: Request, client: httpx.AsyncClient = Depends(get_upstream)
) -> Response:
    base = get_settings().omie_api_url.rstrip("/")
    return await forward(
        request,
        client,
        f"{base}/{path}",
        "Proxy Error: Could not reach Omie server",
    )
