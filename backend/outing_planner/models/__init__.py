"""ORM models. Importing this package registers every table on Base.metadata."""
from outing_planner.models.event import Event, EventStatus, Privacy  # noqa: F401
from outing_planner.models.participant import EventParticipant, InvitationStatus  # noqa: F401
from outing_planner.models.venue_option import VenueOption, Vote, VerificationStatus, SuggestionSource  # noqa: F401
from outing_planner.models.waitlist import WaitlistEntry, WaitlistStatus  # noqa: F401
from outing_planner.models.recurring_template import (  # noqa: F401
    RecurringEventTemplate, RecurrencePattern, TemplateStatus,
)
from outing_planner.models.event_transition import EventTransition, TransitionTrigger  # noqa: F401
