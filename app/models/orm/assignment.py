from sqlalchemy import Column, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from .base import Base


class AssignmentORM(Base):
    __tablename__ = "assignments"

    assignment_id = Column(String, primary_key=True)

    experiment_id = Column(
        String, ForeignKey("experiments.experiment_id"), nullable=False, index=True
    )
    variant_id = Column(String, ForeignKey("variants.variant_id"), nullable=False)

    # Exactly one of these is set
    user_id = Column(String, nullable=True, index=True)
    anon_id = Column(String, nullable=True, index=True)

    assignment_timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    # NULLs are distinct, so each constraint only binds rows of its own identity kind
    __table_args__ = (
        UniqueConstraint("experiment_id", "user_id", name="uq_assignment_user"),
        UniqueConstraint("experiment_id", "anon_id", name="uq_assignment_anon"),
    )

    variant = relationship("VariantORM")

    experiment = relationship("ExperimentORM", back_populates="assignments")
