"""
FastAPI service - long-running HTTP front end for trade evaluation.

POST /evaluate takes a TradeProposal and returns a TradeDecision.
Evaluation failures come back as {"error": <tag>, "message": ...}.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .agents.orchestrator import Orchestrator
from .config import DEFAULT_CONFIG_PATH, TirdsSettings, load_config
from .errors import AllSpecialistsFailed, EvaluationAborted, EvaluationError, SynthesisFailed
from .schemas import TradeDecision, TradeProposal
from .service import build_orchestrator

logger = logging.getLogger("tirds.api")

ERROR_STATUS = {
    EvaluationAborted.tag: 503,
    AllSpecialistsFailed.tag: 502,
    SynthesisFailed.tag: 502,
}

_settings: Optional[TirdsSettings] = None
_orchestrator: Optional[Orchestrator] = None


def init_service(settings: TirdsSettings, orchestrator: Optional[Orchestrator] = None) -> None:
    global _settings, _orchestrator
    _settings = settings
    _orchestrator = orchestrator or build_orchestrator(settings)


def get_orchestrator() -> Orchestrator:
    if _orchestrator is None:
        raise HTTPException(status_code=503, detail="Evaluation service not initialized")
    return _orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _settings, _orchestrator
    if _orchestrator is None:
        logger.info("Starting TIRDS evaluation service...")
        init_service(load_config(os.getenv("TIRDS_CONFIG", DEFAULT_CONFIG_PATH), required=False))
    if _settings is not None:
        logger.info(f"Durable cache: {_settings.cache.sqlite_path}")
    yield
    if _orchestrator is not None:
        _orchestrator.cache.close()
    logger.info("Evaluation service stopped")
    _settings = None
    _orchestrator = None


app = FastAPI(
    title="TIRDS",
    description="Trade evaluation from cached market intelligence and parallel specialists",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Request logging middleware."""
    start_time = datetime.now(timezone.utc)
    response = await call_next(request)
    duration = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    logger.info(f"{request.method} {request.url.path} - {response.status_code} ({duration:.1f}ms)")
    return response


@app.get("/health")
async def health_check():
    body = {
        "status": "healthy" if _orchestrator is not None else "starting",
        "service": "tirds",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if _orchestrator is not None:
        body["hot_cache"] = _orchestrator.cache.hot_cache_stats()
    return body


@app.post("/evaluate", response_model=TradeDecision)
async def evaluate(proposal: TradeProposal):
    orchestrator = get_orchestrator()
    try:
        return await orchestrator.evaluate(proposal)
    except EvaluationError as e:
        return JSONResponse(status_code=ERROR_STATUS.get(e.tag, 500), content=e.to_dict())
