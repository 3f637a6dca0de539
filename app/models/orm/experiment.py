from sqlalchemy import Column, String, Float, Boolean, ForeignKey, DateTime, Integer, Text, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from .base import Base, JSON_TYPE


class ExperimentStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class ExperimentType(str, enum.Enum):
    PRICING = "pricing"
    LANDING_PAGE = "landing_page"
    CHECKOUT = "checkout"
    OFFER = "offer"
    EMAIL = "email"


# --- Experiment Model ---
class ExperimentORM(Base):
    __tablename__ = "experiments"

    # --- Core Identifiers ---
    experiment_id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    hypothesis = Column(Text)
    test_type = Column(
        Enum(ExperimentType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    # What is being tested, e.g. ("course", <course id>)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)

    # --- Lifecycle ---
    status = Column(
        Enum(ExperimentStatus, values_callable=lambda e: [m.value for m in e]),
        default=ExperimentStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Percent of all visitors considered for the experiment (0-100)
    traffic_allocation = Column(Float, nullable=False, default=100.0)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # --- Timing ---
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)

    # --- Analysis ---
    primary_metric_name = Column(String, nullable=False, default="purchase")
    winner_variant_id = Column(String, nullable=True)

    # Creation order is the order the assignment walk uses
    variants = relationship(
        "VariantORM",
        back_populates="experiment",
        order_by="VariantORM.position",
        cascade="all, delete-orphan",
    )

    assignments = relationship(
        "AssignmentORM", back_populates="experiment", cascade="all, delete-orphan"
    )

    events = relationship(
        "EventORM", back_populates="experiment", cascade="all, delete-orphan"
    )


# --- Variant Model ---
class VariantORM(Base):
    __tablename__ = "variants"

    variant_id = Column(String, primary_key=True)
    variant_name = Column(String, nullable=False)
    description = Column(Text)
    is_control = Column(Boolean, default=False, nullable=False)

    # Relative weight; the assignment walk normalizes by the sum
    traffic_weight = Column(Float, nullable=False)

    # Variant specific settings (price points, copy, feature flags...)
    configuration_json = Column(JSON_TYPE, nullable=False, default=dict)

    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    experiment_id = Column(
        String, ForeignKey("experiments.experiment_id"), nullable=False, index=True
    )

    experiment = relationship("ExperimentORM", back_populates="variants")
