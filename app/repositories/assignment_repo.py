# repositories/assignment_repo.py
import logging
import uuid
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.orm.assignment import AssignmentORM
from app.models.schemas.assignment import Identity

logger = logging.getLogger(__name__)


class AssignmentRepository:
    """SQL backed assignment store; relies on the (experiment, identity) unique constraints."""

    def __init__(self, db: Session):
        self.db = db

    def _identity_filter(self, identity: Identity):
        if identity.user_id is not None:
            return AssignmentORM.user_id == identity.user_id
        return AssignmentORM.anon_id == identity.anon_id

    def get_assignment(
        self, experiment_id: str, identity: Identity
    ) -> Optional[AssignmentORM]:
        """Retrieves the persistent assignment for a visitor in a specific experiment."""
        stmt = select(AssignmentORM).where(
            AssignmentORM.experiment_id == experiment_id,
            self._identity_filter(identity),
        )
        return self.db.scalars(stmt).one_or_none()

    def get_assignments_for_experiment(self, experiment_id: str) -> list[AssignmentORM]:
        stmt = select(AssignmentORM).where(AssignmentORM.experiment_id == experiment_id)

        return list(self.db.scalars(stmt).all())

    def insert_if_absent(
        self, experiment_id: str, variant_id: str, identity: Identity
    ) -> Tuple[AssignmentORM, bool]:
        """
        Inserts a new assignment unless one already exists for the identity.

        Returns ``(assignment, created)``. When a concurrent request wins the
        insert, the unique constraint fires, the session is rolled back and the
        winning row is returned with ``created=False``.
        """
        db_assignment = AssignmentORM(
            assignment_id=str(uuid.uuid4()),
            experiment_id=experiment_id,
            variant_id=variant_id,
            user_id=identity.user_id,
            anon_id=identity.anon_id,
            assignment_timestamp=datetime.utcnow(),
        )

        try:
            self.db.add(db_assignment)
            self.db.commit()
            self.db.refresh(db_assignment)
            return db_assignment, True

        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Assignment insert for %s hit an integrity error, checking for an existing row",
                identity.describe(),
                extra={"experiment_id": experiment_id},
            )
            existing = self.get_assignment(experiment_id, identity)
            if existing is None:
                # Not a lost race; surface the original database error
                raise
            return existing, False
