"""Manual triggers for the background jobs."""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, sessionmaker

from outing_planner.database import get_db, get_session_factory
from outing_planner.schemas.event import EventOut
from outing_planner.services import recurring_generator
from outing_planner.services.deadline_scheduler import DeadlineScheduler

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/sweep")
def run_sweep(session_factory: sessionmaker = Depends(get_session_factory)):
    """Run one deadline sweep now and report its decisions."""
    report = DeadlineScheduler(session_factory).sweep()
    return report.as_dict()


@router.post("/recurring", response_model=list[EventOut])
def run_recurring_generation(db: Session = Depends(get_db)):
    """Materialize every recurring occurrence that is due."""
    return recurring_generator.generate_due(db)
