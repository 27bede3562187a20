"""HTTP surface: SSE event stream plus snapshot and alert endpoints."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from .service import MarketDataService

logger = logging.getLogger(__name__)


def create_stream_router(service: MarketDataService) -> APIRouter:
    """Create the market router bound to one MarketDataService.

    A fresh router per call keeps services (and test apps) independent.
    """
    router = APIRouter(prefix="/api/market", tags=["market"])

    @router.get("/stream")
    async def stream_events(request: Request) -> StreamingResponse:
        """SSE endpoint for live market events.

        Each MarketEvent becomes one SSE message named after its type:

            event: price_update
            data: {"type": "price_update", "data": {"symbol": "BTC", ...}}

        Opening the stream starts polling; the last disconnect stops it.
        """
        return StreamingResponse(
            _generate_events(service, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    @router.get("/assets")
    async def list_assets() -> dict:
        status = service.connection_status
        return {
            "assets": [a.to_dict() for a in service.assets],
            "connection": status.to_dict() if status else None,
        }

    @router.get("/alerts")
    async def list_alerts() -> dict:
        return {"alerts": [a.to_dict() for a in service.active_alerts.values()]}

    @router.delete("/alerts/{symbol}")
    async def dismiss_alert(symbol: str) -> dict:
        symbol = symbol.upper()
        if not service.dismiss_alert(symbol):
            raise HTTPException(status_code=404, detail=f"No active alert for {symbol}")
        return {"dismissed": symbol}

    @router.post("/refresh", status_code=202)
    async def refresh() -> dict:
        service.refresh()
        return {"status": "scheduled"}

    return router


async def _generate_events(
    service: MarketDataService,
    request: Request,
) -> AsyncGenerator[str, None]:
    """Async generator that yields SSE-formatted market events.

    Stops when the client disconnects or the service is disposed.
    """
    # Tell the client to retry after 1 second if the connection drops
    yield "retry: 1000\n\n"

    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s", client_ip)

    async with aclosing(service.subscribe_updates()) as events:
        async for event in events:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break
            payload = json.dumps(event.to_dict())
            yield f"event: {event.type.value}\ndata: {payload}\n\n"

    logger.info("SSE stream closed for: %s", client_ip)
