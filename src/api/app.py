"""
FastAPI application exposing one in-memory field analysis session.

Endpoints:
    GET  /health           — Health check
    POST /session/start    — Load map resources; optional ?Address= auto-navigation
    GET  /session          — Current selection, analysis, search and map state
    GET  /search           — Ranked address suggestions for ?q=
    POST /search/select    — Accept a suggestion and recentre the map
    POST /fields/click     — Click on the crop layer -> field selection + popup
    POST /fields/analyze   — Analyse the current selection (or the clicked field in the body)
    GET  /metrics          — Prometheus metrics (when prometheus_client is installed)
"""

import sys
import time
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

try:
    from prometheus_client import Counter, Histogram, generate_latest
    from fastapi.responses import Response as PrometheusResponse
    PROMETHEUS_AVAILABLE = True
except ImportError:
    PROMETHEUS_AVAILABLE = False

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.api.schemas import (
    HealthResponse, Suggestion, SearchResponse,
    SelectSuggestionRequest, SelectSuggestionResponse,
    FieldClickRequest, FieldClickResponse, AnalyzeResponse, SessionResponse,
)
from src.data.schema import AddressSuggestion
from src.location.session import SessionState, STATUS_FAILED, FAILURE_NOTICE

# ---- App setup ----
app = FastAPI(
    title="Field Analysis API",
    description="Soil texture, health score and fertilizer plan for clicked crop fields",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---- Prometheus metrics ----
if PROMETHEUS_AVAILABLE:
    ANALYSIS_COUNT = Counter("field_analysis_requests_total", "Total field analysis requests")
    ANALYSIS_FAILURES = Counter("field_analysis_failures_total", "Failed field analysis requests")
    ANALYSIS_LATENCY = Histogram(
        "field_analysis_latency_seconds", "Field analysis latency",
        buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
    )
    SEARCH_COUNT = Counter("address_search_requests_total", "Total address searches")

# ---- Global session ----
session: SessionState = None
api_version: str = "1.0.0"


def get_session() -> SessionState:
    """Return the process-wide session, creating it on first use."""
    global session
    if session is None:
        session = SessionState()
    return session


@app.on_event("startup")
async def startup_event():
    await get_session().resources.ensure_loaded()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    current = get_session()
    return HealthResponse(
        status="healthy" if current.map.attached else "degraded",
        map_attached=current.map.attached,
        version=api_version,
    )


@app.post("/session/start", response_model=SessionResponse)
async def start_session(address: Optional[str] = Query(None, alias="Address")):
    """
    Make the map ready; with ?Address=<text>, look the address up once and
    centre the map on it.
    """
    current = get_session()
    await current.start(initial_address=address)
    return SessionResponse(**current.snapshot())


@app.get("/session", response_model=SessionResponse)
async def get_session_state():
    return SessionResponse(**get_session().snapshot())


@app.get("/search", response_model=SearchResponse)
async def search_address(q: str = Query("", description="Free-text US address")):
    """Ranked suggestions for a query; fewer than 3 characters gives none."""
    if PROMETHEUS_AVAILABLE:
        SEARCH_COUNT.inc()
    ranked = await get_session().resolver.lookup(q)
    return SearchResponse(
        query=q,
        suggestions=[Suggestion(label=s.label, **asdict(s)) for s in ranked],
    )


@app.post("/search/select", response_model=SelectSuggestionResponse)
async def select_suggestion(request: SelectSuggestionRequest):
    current = get_session()
    address = current.resolver.select(AddressSuggestion(
        display_name=request.display_name,
        latitude=request.latitude,
        longitude=request.longitude,
    ))
    return SelectSuggestionResponse(address=address, map=current.map.view_state())


@app.post("/fields/click", response_model=FieldClickResponse)
async def click_field(request: FieldClickRequest):
    """Select the clicked field. A click that hit no field returns an empty response."""
    current = get_session()
    feature = {"properties": request.properties} if request.properties is not None else None
    try:
        selection = current.handle_click(feature, {"lat": request.lat, "lng": request.lon})
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if selection is None:
        return FieldClickResponse()
    popup = current.map.view_state()["popup"]
    return FieldClickResponse(
        selection=asdict(selection),
        acres=selection.acreage_display,
        popup=popup,
    )


@app.post("/fields/analyze", response_model=AnalyzeResponse)
async def analyze_field(request: Optional[FieldClickRequest] = None):
    """
    Run the field analysis for the current selection, or click the field
    given in the body first.
    """
    current = get_session()
    if request is not None and request.properties is not None:
        try:
            current.handle_click(
                {"properties": request.properties}, {"lat": request.lat, "lng": request.lon},
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
    if current.selection is None:
        raise HTTPException(status_code=422, detail="No field selected")

    start_time = time.time()
    outcome, result = await current.run_analysis()
    latency = time.time() - start_time

    if PROMETHEUS_AVAILABLE:
        ANALYSIS_COUNT.inc()
        ANALYSIS_LATENCY.observe(latency)
        if outcome == STATUS_FAILED:
            ANALYSIS_FAILURES.inc()

    if outcome == STATUS_FAILED:
        raise HTTPException(status_code=502, detail=FAILURE_NOTICE)

    # A superseded request answers with its outcome and no result
    return AnalyzeResponse(
        status=outcome,
        result=current.snapshot()["result"] if result is not None else None,
    )


# ---- Prometheus metrics endpoint ----
if PROMETHEUS_AVAILABLE:
    @app.get("/metrics")
    async def metrics():
        return PrometheusResponse(
            content=generate_latest(),
            media_type="text/plain",
        )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
