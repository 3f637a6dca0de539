# services/event_service.py
import logging

from sqlalchemy.orm import Session

from app.core.errors import InvalidIdentityError, NotFoundError
from app.models.orm.event import EventORM
from app.models.schemas.assignment import Identity
from app.models.schemas.event import EventCreateModel
from app.repositories.assignment_repo import AssignmentRepository
from app.repositories.event_repo import EventRepository

logger = logging.getLogger(__name__)


class EventService:
    def __init__(self, db: Session):
        self.event_repo = EventRepository(db)
        # Events are attributed through the visitor's assignment
        self.assignment_repo = AssignmentRepository(db)

    def record_event(
        self, experiment_id: str, identity: Identity, event_data: EventCreateModel
    ) -> EventORM:
        """
        Records an event for a visitor already assigned to ``event_data.variant_id``.
        """
        if not identity.is_valid():
            raise InvalidIdentityError("Exactly one of user_id or anon_id is required")

        assignment = self.assignment_repo.get_assignment(experiment_id, identity)
        if assignment is None or assignment.variant_id != event_data.variant_id:
            raise NotFoundError("No assignment found for this visitor and variant")

        event = self.event_repo.create_event(
            assignment,
            event_type=event_data.event_type,
            value=event_data.event_value,
            properties=event_data.metadata,
        )
        logger.debug(
            "Recorded %s event", event.type,
            extra={"experiment_id": experiment_id, "variant_id": event.variant_id},
        )
        return event
