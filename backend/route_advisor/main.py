from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .engine_errors import EngineError, normalize_reason_code
from .logging_utils import log_context, log_event
from .metrics_store import metrics_snapshot
from .models import (
    CandidateListResponse,
    Preferences,
    PreferencesUpdate,
    RenderPayload,
    SelectCandidateRequest,
)
from .scheduler import SessionScheduler
from .session import NavigationSession


@asynccontextmanager
async def lifespan(app: FastAPI):
    session = NavigationSession()
    scheduler = SessionScheduler(session)
    app.state.session = session
    app.state.scheduler = scheduler
    scheduler.start()
    yield
    await scheduler.aclose()


app = FastAPI(title="Live Route Advisor", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    t0 = time.perf_counter()
    with log_context(http_method=request.method, http_path=request.url.path):
        response = await call_next(request)
        log_event(
            "http_request",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
    return response


def navigation_session(request: Request) -> NavigationSession:
    session: NavigationSession | None = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="navigation session not initialised")
    return session


def session_scheduler(request: Request) -> SessionScheduler:
    scheduler: SessionScheduler | None = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="scheduler not initialised")
    return scheduler


SessionDep = Annotated[NavigationSession, Depends(navigation_session)]
SchedulerDep = Annotated[SessionScheduler, Depends(session_scheduler)]


def _engine_http_error(e: EngineError) -> HTTPException:
    code = normalize_reason_code(e.reason_code)
    status = 404 if code == "unknown_candidate" else 400
    return HTTPException(status_code=status, detail={"reason_code": code, "message": e.message})


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/network")
async def network(session: SessionDep) -> dict[str, Any]:
    return {
        "streets": [
            {
                "id": street.id,
                "name": street.name,
                "segments": [
                    {
                        "id": seg.id,
                        "coords": [list(pt) for pt in seg.coords],
                        "base_speed_kmh": seg.base_speed_kmh,
                        "base_safety": seg.base_safety,
                        "lanes": seg.lanes,
                        "signals": [list(pt) for pt in seg.signals],
                    }
                    for seg in street.segments
                ],
            }
            for street in session.network.streets
        ],
        "intersections": [{"id": ix.id, "coord": list(ix.coord)} for ix in session.network.intersections],
    }


@app.get("/routes", response_model=CandidateListResponse)
async def routes(session: SessionDep) -> CandidateListResponse:
    return session.candidate_list()


@app.get("/state", response_model=RenderPayload)
async def state(session: SessionDep) -> RenderPayload:
    return session.render_payload()


@app.post("/preferences", response_model=Preferences)
async def update_preferences(req: PreferencesUpdate, session: SessionDep) -> Preferences:
    t0 = time.perf_counter()
    applied = session.set_preferences(req)
    log_event(
        "preferences_request",
        requested=req.model_dump(exclude_none=True),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
    )
    return applied


@app.post("/active", response_model=RenderPayload)
async def select_active(req: SelectCandidateRequest, session: SessionDep) -> RenderPayload:
    try:
        session.select_candidate(req.key)
    except EngineError as e:
        raise _engine_http_error(e) from e
    log_event("active_request", key=req.key)
    return session.render_payload()


@app.post("/suggestion/accept", response_model=RenderPayload)
async def accept_suggestion(session: SessionDep) -> RenderPayload:
    if session.suggestion is None:
        raise HTTPException(status_code=409, detail="no pending suggestion")
    accepted = session.accept_suggestion()
    log_event("suggestion_accept_request", key=accepted.key if accepted is not None else None)
    return session.render_payload()


@app.post("/simulation/start")
async def start_simulation(scheduler: SchedulerDep) -> dict[str, Any]:
    scheduler.start_simulation()
    return {"running": True, "active_key": scheduler.session.active_key.value}


@app.post("/simulation/stop")
async def stop_simulation(scheduler: SchedulerDep) -> dict[str, Any]:
    await scheduler.stop_simulation()
    return {"running": False, "active_key": scheduler.session.active_key.value}


@app.get("/metrics")
async def metrics() -> dict[str, object]:
    return metrics_snapshot()
