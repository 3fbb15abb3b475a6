"""
REST API server for the help reasoner.

Lets the surrounding UI layer stream telemetry, report feedback and
control the reasoner over HTTP without loading Python directly.

Run with:
    python -m help_reasoner.api --preset double_q_learning
"""
from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from . import __version__
from .config import ReasonerConfig, get_preset, list_presets
from .logging_config import configure_logging
from .reasoner import Reasoner

logger = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models for API
# ============================================================================

class TelemetryRequest(BaseModel):
    """One telemetry sample."""
    sample: Dict[str, Any] = Field(..., description="Feature name -> value")


class TelemetryResponse(BaseModel):
    """Action to take, or null while the reasoner is still collecting."""
    action: Optional[str] = None


class FeedbackRequest(BaseModel):
    """Explicit user feedback."""
    kind: Literal["help", "ok"] = Field(..., description="'help' if help was needed")


class UserActionRequest(BaseModel):
    """Action the user took on their own."""
    kind: Literal["help", "ok"]


class EnableRequest(BaseModel):
    enabled: bool


class StepResponse(BaseModel):
    """Whether a call closed the current decision step."""
    updated: bool
    status: Dict[str, Any]


# ============================================================================
# API Server
# ============================================================================

def create_app(
    config: Optional[ReasonerConfig] = None,
    reasoner: Optional[Reasoner] = None,
) -> FastAPI:
    """
    Create the FastAPI application around a single reasoner.

    Args:
        config: Reasoner configuration (ignored when ``reasoner`` is given)
        reasoner: Pre-built reasoner, e.g. with custom collaborators
    """
    reasoner = reasoner or Reasoner(config)

    app = FastAPI(
        title="Help Reasoner API",
        description="Online RL controller deciding when to offer reading help",
        version=__version__,
    )
    app.state.reasoner = reasoner

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        """API health check."""
        return {
            "status": "ok",
            "version": __version__,
            "active": reasoner.active,
            "paused": reasoner.paused,
        }

    @app.get("/status")
    def status():
        return reasoner.status()

    @app.get("/metrics")
    def metrics():
        return reasoner.metrics.summary()

    @app.post("/telemetry", response_model=TelemetryResponse)
    def telemetry(request: TelemetryRequest):
        """Feed one sample; returns the action to take, if any."""
        action = reasoner.on_telemetry(request.sample)
        return TelemetryResponse(action=action.value if action else None)

    @app.post("/feedback", response_model=StepResponse)
    def feedback(request: FeedbackRequest):
        try:
            updated = reasoner.set_feedback(request.kind)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return StepResponse(updated=updated, status=reasoner.status())

    @app.post("/user-action")
    def user_action(request: UserActionRequest):
        reasoner.report_user_action(request.kind)
        return reasoner.status()

    @app.post("/help/triggered")
    def help_triggered():
        """A help tool opened; estimate feedback from how long it stays open."""
        reasoner.wait_to_estimate_feedback()
        return reasoner.status()

    @app.post("/help/canceled", response_model=StepResponse)
    def help_canceled():
        updated = reasoner.set_help_canceled()
        return StepResponse(updated=updated, status=reasoner.status())

    @app.post("/help/done", response_model=StepResponse)
    def help_done():
        updated = reasoner.set_help_done()
        return StepResponse(updated=updated, status=reasoner.status())

    @app.post("/enable")
    def enable(request: EnableRequest):
        active = reasoner.set_enabled(request.enabled)
        return {"active": active, "testing": reasoner.testing}

    @app.post("/freeze")
    def freeze():
        reasoner.freeze()
        return reasoner.status()

    @app.post("/unfreeze")
    def unfreeze():
        reasoner.unfreeze()
        return reasoner.status()

    @app.post("/reset")
    def reset():
        """Drop the in-flight step (learned values are kept)."""
        reasoner.reset_status()
        return reasoner.status()

    return app


def main():
    """Run the API server from command line."""
    parser = argparse.ArgumentParser(description="Help Reasoner API Server")
    parser.add_argument("--config", help="Path to a JSON/YAML reasoner config")
    parser.add_argument("--preset", default="q_learning", choices=list_presets(),
                        help="Built-in preset (used when --config is absent)")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--log-level", default="INFO", help="Log level")
    parser.add_argument("--log-dir", help="Directory for rotating log files")
    args = parser.parse_args()

    import uvicorn

    configure_logging(level=args.log_level, log_dir=args.log_dir)

    config = None
    if args.config:
        config = ReasonerConfig.load(args.config)
        if config is None:
            parser.error(f"Could not load config from {args.config}")
    else:
        config = get_preset(args.preset)

    app = create_app(config)
    logger.info(f"Help reasoner API starting on http://{args.host}:{args.port} ({config.model_type})")
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
