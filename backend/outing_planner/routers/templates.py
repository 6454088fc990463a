"""Recurring event template API routes."""
import logging
from uuid import UUID
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from outing_planner.database import get_db
from outing_planner.models.recurring_template import RecurringEventTemplate
from outing_planner.schemas.template import TemplateActor, TemplateCreate, TemplateOut
from outing_planner.services import recurring_generator

logger = logging.getLogger(__name__)
router = APIRouter()


def _out(template: RecurringEventTemplate) -> TemplateOut:
    upcoming = recurring_generator.next_occurrence(template, template.last_generated_date)
    return TemplateOut.model_validate(template).model_copy(update={"next_occurrence": upcoming})


@router.post("/", response_model=TemplateOut, status_code=status.HTTP_201_CREATED)
def create_template(payload: TemplateCreate, db: Session = Depends(get_db)):
    fields = payload.model_dump(exclude={"organizer_id"}, exclude_none=True)
    return _out(recurring_generator.create_template(db, payload.organizer_id, **fields))


@router.get("/", response_model=list[TemplateOut])
def list_templates(organizer_id: Optional[UUID] = Query(None), db: Session = Depends(get_db)):
    return [_out(t) for t in recurring_generator.list_templates(db, organizer_id)]


@router.get("/{template_id}", response_model=TemplateOut)
def get_template(template_id: UUID, db: Session = Depends(get_db)):
    return _out(recurring_generator.get_template(db, template_id))


@router.post("/{template_id}/toggle", response_model=TemplateOut)
def toggle_template(template_id: UUID, payload: TemplateActor, db: Session = Depends(get_db)):
    """Pause an active template or resume a paused one."""
    return _out(recurring_generator.toggle_template(db, template_id, payload.actor_id))


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(template_id: UUID, actor_id: UUID = Query(...), db: Session = Depends(get_db)):
    recurring_generator.delete_template(db, template_id, actor_id)
