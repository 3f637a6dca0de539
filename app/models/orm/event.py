from sqlalchemy import Column, String, Float, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime

from .base import Base, JSON_TYPE


class EventORM(Base):
    __tablename__ = "events"

    event_id = Column(String, primary_key=True, index=True)

    experiment_id = Column(
        String, ForeignKey("experiments.experiment_id"), index=True, nullable=False
    )
    variant_id = Column(String, ForeignKey("variants.variant_id"), nullable=False)
    assignment_id = Column(
        String, ForeignKey("assignments.assignment_id"), index=True, nullable=False
    )

    # 'view', 'click', 'add_to_cart', 'purchase', ...
    type = Column(String, nullable=False, index=True)

    # Revenue for purchase-like events
    value = Column(Float, nullable=True)

    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    properties = Column(JSON_TYPE, default=dict, nullable=False)

    experiment = relationship("ExperimentORM", back_populates="events")
    assignment = relationship("AssignmentORM")
