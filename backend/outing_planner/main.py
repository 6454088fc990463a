"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from outing_planner.config import settings
from outing_planner.database import Base, SessionLocal, engine
from outing_planner.errors import OrchestratorError

# Import routers
from outing_planner.routers import events, maintenance, recommendations, templates, votes, waitlist

# Import all models so Base.metadata knows about them
import outing_planner.models  # noqa: F401
from outing_planner.services import recurring_generator
from outing_planner.services.deadline_scheduler import DeadlineScheduler
from outing_planner.services.periodic import build_scheduler
from outing_planner.services.recommendation_coordinator import shutdown_coordinator

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Outing Planner",
    description="Event lifecycle orchestration for group outings: invitations, quorum, AI venue "
                "recommendations, voting, waitlists and recurring events",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(votes.router, prefix="/api/events", tags=["Votes"])
app.include_router(recommendations.router, prefix="/api/events", tags=["Recommendations"])
app.include_router(waitlist.router, prefix="/api/events", tags=["Waitlist"])
app.include_router(templates.router, prefix="/api/templates", tags=["RecurringTemplates"])
app.include_router(maintenance.router, prefix="/api/maintenance", tags=["Maintenance"])


@app.exception_handler(OrchestratorError)
def orchestrator_error_handler(request: Request, exc: OrchestratorError):
    logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _generate_recurring():
    db = SessionLocal()
    try:
        recurring_generator.generate_due(db)
    finally:
        db.close()


maintenance_jobs = build_scheduler(DeadlineScheduler(SessionLocal).sweep, _generate_recurring)


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode) and start the timers."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    if settings.SCHEDULER_ENABLED:
        maintenance_jobs.start()


@app.on_event("shutdown")
def on_shutdown():
    maintenance_jobs.stop()
    shutdown_coordinator()


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
