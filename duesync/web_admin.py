from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from duesync.config_manager import ConfigManager
from duesync.models import FEED_SCHEMES
from duesync.refresh_engine import RefreshEngine
from duesync.reconciler import identity
from duesync.scheduler import RefreshScheduler
from duesync.state_store import StateStore


class ConfigUpdateRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


class RefreshRequest(BaseModel):
    url: str | None = None


class ReminderRequest(BaseModel):
    hours_before: int | None = Field(default=None, ge=0, le=24 * 60)


class AppContext:
    def __init__(self, config_path: str, state_path: str) -> None:
        self.config_manager = ConfigManager(config_path)
        self.state_store = StateStore(state_path)
        self.refresh_engine = RefreshEngine(self.config_manager, self.state_store)
        self.scheduler = RefreshScheduler(self.refresh_engine, self.config_manager)


def _sanitize_config_payload(payload: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    sanitized = dict(payload)
    feed = sanitized.get("feed")
    if isinstance(feed, dict):
        feed = dict(feed)
        url = feed.get("url")
        # A masked URL echoed back by a client must not replace the real one.
        if url is not None and "?***" in str(url) and current.get("feed", {}).get("url"):
            feed.pop("url", None)
        if feed:
            sanitized["feed"] = feed
        else:
            sanitized.pop("feed", None)
    return sanitized


def create_app() -> FastAPI:
    config_path = os.getenv("DUESYNC_CONFIG_PATH", "config.yaml")
    state_path = os.getenv("DUESYNC_STATE_PATH", "data/state.db")
    context = AppContext(config_path=config_path, state_path=state_path)

    app = FastAPI(title="Duesync", version="0.1.0")
    app.state.context = context

    @app.on_event("startup")
    def _startup() -> None:
        app.state.context.scheduler.start()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.context.scheduler.stop()

    @app.get("/healthz")
    def healthz() -> dict[str, Any]:
        return {"status": "ok", "scheduler": app.state.context.scheduler.status()}

    @app.get("/api/config")
    def get_config() -> dict[str, Any]:
        return app.state.context.config_manager.masked()

    @app.put("/api/config")
    def put_config(request: ConfigUpdateRequest) -> dict[str, Any]:
        if not isinstance(request.payload, dict):
            raise HTTPException(status_code=400, detail="payload must be an object")
        current = app.state.context.config_manager.load().to_dict()
        app.state.context.config_manager.update(_sanitize_config_payload(request.payload, current))
        return {"message": "config updated", "config": app.state.context.config_manager.masked()}

    @app.get("/api/items")
    def list_items() -> dict[str, Any]:
        engine = app.state.context.refresh_engine
        items = engine.load_items()
        return {
            "items": [{"id": identity(item), **item.to_dict()} for item in items],
            **engine.status(),
        }

    @app.post("/api/refresh")
    def refresh(request: RefreshRequest | None = None) -> dict[str, Any]:
        url = (request.url or "").strip() if request else ""
        if url and not url.lower().startswith(FEED_SCHEMES):
            raise HTTPException(status_code=400, detail="feed url must use http, https, webcal or webcals")
        if url:
            app.state.context.config_manager.update({"feed": {"url": url}})
        result = app.state.context.refresh_engine.run_once(trigger="manual", url_override=url)
        if result.status == "error":
            raise HTTPException(status_code=502, detail=result.message)
        return result.to_dict()

    @app.get("/api/refresh/runs")
    def refresh_runs(limit: int = 20) -> dict[str, Any]:
        return {"runs": app.state.context.state_store.recent_refresh_runs(limit=limit)}

    def _local_action(item_id: str, action: str, hours_before: int | None = None) -> dict[str, Any]:
        try:
            item = app.state.context.refresh_engine.apply_local_action(item_id, action, hours_before)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="item not found") from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"item": {"id": identity(item), **item.to_dict()}}

    @app.post("/api/items/{item_id:path}/complete")
    def toggle_complete(item_id: str) -> dict[str, Any]:
        return _local_action(item_id, "complete")

    @app.post("/api/items/{item_id:path}/in-progress")
    def toggle_in_progress(item_id: str) -> dict[str, Any]:
        return _local_action(item_id, "in_progress")

    @app.post("/api/items/{item_id:path}/pin")
    def toggle_pin(item_id: str) -> dict[str, Any]:
        return _local_action(item_id, "pin")

    @app.put("/api/items/{item_id:path}/reminder")
    def put_reminder(item_id: str, request: ReminderRequest) -> dict[str, Any]:
        return _local_action(item_id, "set_reminder", request.hours_before)

    @app.delete("/api/items/{item_id:path}/reminder")
    def delete_reminder(item_id: str) -> dict[str, Any]:
        return _local_action(item_id, "clear_reminder")

    return app


app = create_app()
