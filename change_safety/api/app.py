"""
Change Safety API — FastAPI endpoints.

Exposes the protocol to external status displays and assistant layers:
- Change evaluation (and conditional execution)
- Change history and individual records
- Safety statistics and autonomy level
- Snapshot listing and manual restore
"""

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from change_safety.config.loader import load_config
from change_safety.logging_utils import configure_logging
from change_safety.models.change import Change, EvaluationContext
from change_safety.models.decision import AutonomyLevel
from change_safety.protocol.engine import ChangeSafetyProtocol


# --- Request/Response Models ---

class EvaluateRequest(BaseModel):
    change: Change
    context: Optional[EvaluationContext] = None
    autonomy_level: Optional[AutonomyLevel] = None
    approved: bool = False


class AutonomyUpdateRequest(BaseModel):
    level: AutonomyLevel


# --- Application Factory ---

def create_app(
    protocol: Optional[ChangeSafetyProtocol] = None,
    project_path: Optional[Path] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Change Safety API",
        description="Risk scoring, autonomy-aware decisions and safe execution of automated code changes",
        version="0.1.0",
    )

    if protocol is None:
        configure_logging()
        root = project_path or Path.cwd()
        protocol = ChangeSafetyProtocol(root, config=load_config(root))

    app.state.protocol = protocol

    # === CHANGES ===

    @app.post("/changes/evaluate")
    def evaluate_change(req: EvaluateRequest):
        """Evaluate a proposed change; executes it when the decision allows."""
        record = protocol.evaluate_change(
            req.change,
            context=req.context,
            autonomy_level=req.autonomy_level,
            approved=req.approved,
        )
        return record.model_dump(mode="json")

    @app.get("/changes/history")
    def get_history(limit: int = 10):
        """Most recent change records, oldest first."""
        return [r.model_dump(mode="json") for r in protocol.get_change_history(limit)]

    @app.get("/changes/{record_id}")
    def get_change(record_id: str):
        """A single change record."""
        record = protocol.get_record(record_id)
        if record is None:
            raise HTTPException(404, "Change record not found")
        return record.model_dump(mode="json")

    # === SAFETY ===

    @app.get("/safety/statistics")
    def get_statistics():
        """Success rate, risk-level histogram and limits."""
        return protocol.get_safety_statistics()

    @app.get("/safety/autonomy")
    def get_autonomy():
        return {"autonomy_level": protocol.autonomy_level.value}

    @app.put("/safety/autonomy")
    def update_autonomy(req: AutonomyUpdateRequest):
        """Change the default autonomy level."""
        level = protocol.set_autonomy_level(req.level)
        return {"autonomy_level": level.value}

    # === SNAPSHOTS ===

    @app.get("/snapshots")
    def list_snapshots():
        """Live (unexpired) snapshots."""
        return [
            {
                "id": s.id,
                "created_at": s.created_at.isoformat(),
                "files": sorted(s.files),
            }
            for s in protocol.executor.snapshots.list_snapshots()
        ]

    @app.post("/snapshots/{snapshot_id}/restore")
    def restore_snapshot(snapshot_id: str):
        """Manually restore a snapshot."""
        result = protocol.restore_snapshot(snapshot_id)
        if not result.success and not (result.restored_paths or result.missing_paths or result.failed_paths):
            raise HTTPException(404, result.error or "Snapshot not found")
        return result.model_dump(mode="json")

    return app


# Default application instance
app = create_app()
