import argparse
import datetime
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_504_GATEWAY_TIMEOUT,
)

from . import commands, queries
from .database import create_session_factory, get_db, init_db
from .errors import ErrorKind, Result
from .hub import VisitHub
from .notifier import VisitorUpdateNotifier
from .schemas import (
    CheckInRequest,
    DashboardSnapshot,
    DayVisits,
    PlannedVisitOut,
    PlannedVisitRequest,
    VisitorOut,
    VisitorSearchResult,
)
from .seed import seed_demo_data
from .settings import Settings

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    ErrorKind.VALIDATION_FAILED: HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_PAYLOAD: HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE: HTTP_409_CONFLICT,
    ErrorKind.INVALID_TRANSITION: HTTP_409_CONFLICT,
    ErrorKind.CONFLICT: HTTP_409_CONFLICT,
    ErrorKind.TIMEOUT: HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.FAILURE: HTTP_500_INTERNAL_SERVER_ERROR,
}


def _unwrap(result: Result):
    """Returns the result value or raises the HTTPException matching its first error."""
    if not result.is_error:
        return result.value
    error = result.first_error
    body = result.to_error_message()
    body.pop("type", None)
    raise HTTPException(status_code=_STATUS_CODES[error.kind], detail=body)


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, session_factory=None) -> FastAPI:
    """
    Builds the API application.

    Args:
        settings: runtime settings, read from the environment when omitted.
        session_factory: SQLAlchemy sessionmaker, built from settings.database_url when omitted.
    """
    settings = settings or Settings.from_env()
    session_factory = session_factory or create_session_factory(
        settings.database_url, timeout=settings.db_timeout
    )
    notifier = VisitorUpdateNotifier()
    hub = VisitHub(
        session_factory,
        notifier,
        command_timeout=settings.command_timeout,
        send_timeout=settings.send_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.create_tables:
            init_db(session_factory.kw["bind"])
        if settings.seed_demo_data:
            with session_factory() as db:
                seed_demo_data(db)
        logger.info("Visitor check-in hub ready")
        yield
        hub.close()
        logger.info("Visitor check-in hub stopped")

    app = FastAPI(
        title="Visitor Check-in Hub",
        description="Visitor lifecycle commands, dashboard queries and the real-time kiosk/dashboard hub.",
        version="1.0.0",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "kiosk", "description": "Visitor check-in at the reception kiosk"},
            {"name": "visitor", "description": "Visitor lifecycle"},
            {"name": "planning", "description": "Planned visits"},
            {"name": "dashboard", "description": "Dashboard snapshots and overviews"},
            {"name": "admin", "description": "Health"},
        ],
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.notifier = notifier
    app.state.hub = hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],  # Restrict to frontend origin
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


router = APIRouter()


async def _mutate(request: Request, handler, **kwargs):
    result = await request.app.state.hub.execute(handler, **kwargs)
    value = _unwrap(result)
    request.app.state.notifier.notify()
    return value

# -------------------- Health Check --------------------

# PUBLIC_INTERFACE
@router.get("/", tags=["admin"])
def health_check():
    """Liveness check for load balancers and the kiosk start screen."""
    return {"message": "Healthy"}

# -------------------- Kiosk --------------------

# PUBLIC_INTERFACE
@router.post("/api/visitors/check-in", response_model=VisitorOut, tags=["kiosk"])
async def check_in(payload: CheckInRequest, request: Request):
    """
    Checks a visitor in. With planned_visitor_id the planned visit is marked
    as arrived; otherwise a walk-in visitor is registered.
    """
    visitor = await _mutate(
        request,
        commands.check_in_visitor,
        name=payload.name,
        company=payload.company,
        planned_visitor_id=payload.planned_visitor_id,
    )
    return VisitorOut.model_validate(visitor)

# PUBLIC_INTERFACE
@router.get("/api/visitors/search", response_model=List[VisitorSearchResult], tags=["kiosk"])
def search_visitors(term: str = "", db: Session = Depends(get_db)):
    """
    Planned visitors whose name contains `term` (at least 3 characters, max 10 hits).
    """
    return queries.search_planned_visitors(db, term)

# -------------------- Visitor lifecycle --------------------

# PUBLIC_INTERFACE
@router.get("/api/visitors/{visitor_id}", response_model=VisitorOut, tags=["visitor"])
def get_visitor(visitor_id: str, db: Session = Depends(get_db)):
    return _unwrap(queries.get_visitor(db, visitor_id))

# PUBLIC_INTERFACE
@router.post("/api/visitors/{visitor_id}/arrive", response_model=VisitorOut, tags=["visitor"])
async def mark_arrived(visitor_id: str, request: Request):
    """Marks a planned visitor as arrived (remote check-in from the dashboard)."""
    visitor = await _mutate(request, commands.mark_visitor_arrived, visitor_id=visitor_id)
    return VisitorOut.model_validate(visitor)

# PUBLIC_INTERFACE
@router.post("/api/visitors/{visitor_id}/leave", response_model=VisitorOut, tags=["visitor"])
async def mark_left(visitor_id: str, request: Request):
    visitor = await _mutate(request, commands.visitor_leaves, visitor_id=visitor_id)
    return VisitorOut.model_validate(visitor)

# -------------------- Planned visits --------------------

# PUBLIC_INTERFACE
@router.post("/api/visits/planned", response_model=VisitorOut, status_code=201, tags=["planning"])
async def plan_visit(payload: PlannedVisitRequest, request: Request):
    visitor = await _mutate(
        request,
        commands.create_planned_visit,
        name=payload.name,
        company=payload.company,
        visit_date=payload.visit_date,
    )
    return VisitorOut.model_validate(visitor)

# PUBLIC_INTERFACE
@router.put("/api/visits/planned/{visitor_id}", response_model=VisitorOut, tags=["planning"])
async def update_planned_visit(visitor_id: str, payload: PlannedVisitRequest, request: Request):
    visitor = await _mutate(
        request,
        commands.update_planned_visit,
        visitor_id=visitor_id,
        name=payload.name,
        company=payload.company,
        visit_date=payload.visit_date,
    )
    return VisitorOut.model_validate(visitor)

# PUBLIC_INTERFACE
@router.delete("/api/visits/planned/{visitor_id}", tags=["planning"])
async def delete_planned_visit(visitor_id: str, request: Request):
    """Deletes a visit that has not started yet. Arrived or departed visits are kept."""
    deleted = await _mutate(request, commands.delete_planned_visit, visitor_id=visitor_id)
    return {"deleted": deleted}

# -------------------- Dashboard --------------------

# PUBLIC_INTERFACE
@router.get("/api/dashboard", response_model=DashboardSnapshot, tags=["dashboard"])
def dashboard(date: Optional[datetime.date] = None, db: Session = Depends(get_db)):
    """
    Snapshot for one day (default today): planned, currently visiting, already left.
    Dashboards call this after every Broadcast signal from the hub.
    """
    return queries.get_visits_for_date(db, date)

# PUBLIC_INTERFACE
@router.get("/api/visits/next-workweek", response_model=List[PlannedVisitOut], tags=["dashboard"])
def next_workweek(db: Session = Depends(get_db)):
    return queries.get_next_workweek_visits(db)

# PUBLIC_INTERFACE
@router.get("/api/visits/week", response_model=List[DayVisits], tags=["dashboard"])
def week(start: Optional[datetime.date] = None, db: Session = Depends(get_db)):
    return queries.get_visits_for_week(db, start)

# PUBLIC_INTERFACE
@router.get("/api/visits/month", response_model=List[PlannedVisitOut], tags=["dashboard"])
def month(
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
):
    return queries.get_visits_for_month(db, year, month)

# -------------------- Real-time hub --------------------

@router.websocket("/visithub")
async def visit_hub(websocket: WebSocket):
    """Kiosks and dashboards connect here; see checkin_hub.hub for the frame format."""
    await websocket.app.state.hub.serve(websocket)


def main() -> None:
    import uvicorn

    parser = argparse.ArgumentParser(description="Visitor check-in hub (HTTP API + WebSocket hub)")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
