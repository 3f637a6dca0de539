import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.orm.assignment import AssignmentORM
from app.models.orm.event import EventORM


class EventRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def get_events_for_experiment(self, experiment_id: str, **kwargs) -> list[EventORM]:
        """
        Retrieves events for a specific experiment, applying optional filters
        for event type and time range.
        """
        stmt = select(EventORM).where(EventORM.experiment_id == experiment_id)

        if event_type := kwargs.get("event_type"):
            stmt = stmt.where(EventORM.type == event_type)

        if start_date := kwargs.get("start_date"):
            stmt = stmt.where(EventORM.timestamp >= start_date)

        if end_date := kwargs.get("end_date"):
            stmt = stmt.where(EventORM.timestamp <= end_date)

        return list(self.db.scalars(stmt).all())

    def create_event(
        self,
        assignment: AssignmentORM,
        event_type: str,
        value: Optional[float] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> EventORM:
        """Creates an event attributed to an existing assignment."""
        db_event = EventORM(
            event_id=str(uuid.uuid4()),
            experiment_id=assignment.experiment_id,
            variant_id=assignment.variant_id,
            assignment_id=assignment.assignment_id,
            type=event_type,
            value=value,
            properties=properties or {},
            timestamp=datetime.utcnow(),
        )

        try:
            self.db.add(db_event)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(db_event)
        return db_event
