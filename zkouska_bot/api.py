"""FastAPI application exposing the announcement projection."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Response, status

from .config import Settings, load_settings
from .discord_client import DiscordClient
from .service import ZkouskaService

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[ZkouskaService] = None,
    run_poller: bool = True,
) -> FastAPI:
    settings = settings or load_settings()
    if service is None:
        service = ZkouskaService(settings, DiscordClient(settings.discord_token))

    async def verify_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> None:
        if not settings.api_key:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="API key is not configured"
            )
        if x_api_key != settings.api_key:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid api key")

    def get_service() -> ZkouskaService:
        if not service.ready:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="state is still being rebuilt"
            )
        return service

    app = FastAPI(title="Zkouska Bot API", version="1.0.0")
    app.state.service = service

    @app.on_event("startup")
    async def startup_event() -> None:  # pragma: no cover - io bound
        if run_poller:
            app.state.poller = asyncio.create_task(service.run_forever())

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - io bound
        poller = getattr(app.state, "poller", None)
        if poller is not None:
            poller.cancel()
        await service.client.close()

    @app.get("/api/announcements")
    async def list_announcements(
        _: None = Depends(verify_api_key),
        svc: ZkouskaService = Depends(get_service),
    ) -> dict[str, object]:
        return {"announcements": svc.list_announcements()}

    @app.get("/api/announcements/{announcement_id}")
    async def get_announcement(
        announcement_id: str,
        _: None = Depends(verify_api_key),
        svc: ZkouskaService = Depends(get_service),
    ) -> dict[str, object]:
        announcement = svc.get_announcement(announcement_id)
        if not announcement:
            raise HTTPException(status_code=404, detail="announcement not found")
        return announcement

    @app.post("/api/refresh")
    async def refresh(
        _: None = Depends(verify_api_key),
        svc: ZkouskaService = Depends(get_service),
    ) -> Response:
        await svc.poll_once()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app"]
