"""FastAPI JSON API over the local workspace."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Request

from ..config import Config
from ..history import REVERTED, HistoryItem
from ..sync import classify
from ..workspace import Workspace

logger = logging.getLogger(__name__)


def create_app(config: Config, workspace: Workspace) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Application configuration.
        workspace: Open workspace; the caller closes it.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="driftsync",
        description="Local edit history and sync status",
        version="0.1.0",
    )

    app.state.config = config
    app.state.workspace = workspace
    orchestrator = workspace.orchestrator(config)
    app.state.orchestrator = orchestrator

    # ==================== Files ====================

    @app.get("/api/files/{file_id}")
    async def api_get_file(file_id: str) -> dict[str, Any]:
        cached = workspace.cache.get(file_id)
        if cached is None:
            raise HTTPException(status_code=404, detail="File not cached")
        return cached.to_dict()

    @app.put("/api/files/{file_id}")
    async def api_save_file(file_id: str, request: Request) -> dict[str, Any]:
        """Autosave new content for a file."""
        body = await request.json()
        content = body.get("content")
        if not isinstance(content, str):
            raise HTTPException(status_code=400, detail="content must be a string")

        result = workspace.save(file_id, content, file_path=body.get("path"))
        if result is None:
            return {"result": "unchanged"}
        if result == REVERTED:
            return {"result": "reverted"}
        return {"result": "recorded", "entry": result.to_dict()}

    # ==================== History ====================

    async def history_items(file_id: str, remote: bool) -> tuple[list[HistoryItem], str | None]:
        if not remote:
            return workspace.history.merge_history(file_id), None
        return await orchestrator.remote_history(file_id)

    @app.get("/api/history/{file_id}")
    async def api_history(file_id: str, remote: bool = False) -> dict[str, Any]:
        """Edit history, newest first; ``remote`` merges the remote's entries."""
        items, error = await history_items(file_id, remote)
        return {
            "file_id": file_id,
            "entries": [item.to_dict() for item in items],
            "has_net_change": workspace.history.has_net_change(file_id),
            "remote_error": error,
        }

    @app.get("/api/history/{file_id}/preview")
    async def api_preview(file_id: str, index: int, remote: bool = False) -> dict[str, Any]:
        items, _ = await history_items(file_id, remote)
        if not 0 <= index < len(items):
            raise HTTPException(status_code=404, detail="No such history entry")
        before, after = workspace.history.preview_history_item(file_id, items, index)
        return {"file_id": file_id, "entry": items[index].to_dict(), "before": before, "after": after}

    @app.post("/api/history/{file_id}/boundary")
    async def api_boundary(file_id: str) -> dict[str, Any]:
        workspace.history.add_boundary(file_id)
        return {"status": "ok"}

    @app.post("/api/history/{file_id}/restore")
    async def api_restore(file_id: str, index: int, remote: bool = False) -> dict[str, Any]:
        items, _ = await history_items(file_id, remote)
        restored = workspace.history.restore_history_item(file_id, items, index)
        if restored is None:
            raise HTTPException(status_code=409, detail="History cannot be restored")
        return {"file_id": file_id, "content": restored}

    @app.delete("/api/history/{file_id}/remote")
    async def api_clear_remote_history(file_id: str) -> dict[str, Any]:
        cleared, error = await orchestrator.clear_remote_history(file_id)
        if error:
            raise HTTPException(status_code=502, detail=error)
        return {"success": cleared}

    # ==================== Sync ====================

    @app.get("/api/status")
    async def api_status(offline: bool = False) -> dict[str, Any]:
        """Sync classification against the remote (or the cached snapshot)."""
        snapshot = None
        error = None
        if not offline:
            snapshot, error = await orchestrator.client.fetch_snapshot()
            if snapshot is not None:
                workspace.baseline.put_remote(snapshot.to_dict())
        if offline or error:
            snapshot = orchestrator.cached_snapshot()

        diff = classify(
            workspace.baseline.get(),
            snapshot,
            workspace.history.locally_modified_ids(),
        )
        return {
            "diff": diff.to_dict(),
            "pending": orchestrator.pending_counts(snapshot),
            "remote_error": error,
        }

    @app.post("/api/sync/push")
    async def api_push() -> dict[str, Any]:
        return (await orchestrator.push()).to_dict()

    @app.post("/api/sync/pull")
    async def api_pull() -> dict[str, Any]:
        return (await orchestrator.pull()).to_dict()

    @app.post("/api/sync/resolve/{file_id}")
    async def api_resolve(file_id: str, choice: str) -> dict[str, Any]:
        if choice not in ("local", "remote"):
            raise HTTPException(status_code=400, detail="choice must be local or remote")
        return (await orchestrator.resolve_conflict(file_id, choice)).to_dict()

    # ==================== Health ====================

    @app.get("/api/stats")
    async def api_stats() -> dict[str, Any]:
        stats: dict[str, Any] = {"timestamp": datetime.now().isoformat()}
        stats["history"] = workspace.history.get_stats()
        stats["store"] = workspace.store.get_stats()
        return stats

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check. Always returns 200 OK."""
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "remote_url": config.sync.remote_url or None,
            "last_sync": orchestrator.last_sync.isoformat() if orchestrator.last_sync else None,
        }

    return app
