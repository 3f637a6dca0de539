# services/experiment_service.py

import logging
import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, StateError, ValidationError
from app.models.orm.assignment import AssignmentORM
from app.models.orm.event import EventORM
from app.models.orm.experiment import ExperimentORM, ExperimentStatus, ExperimentType, VariantORM
from app.models.schemas.experiment import (
    ExperimentCreateModel,
    ExperimentResultsModel,
    ExperimentUpdateModel,
    VariantResult,
)
from app.repositories.assignment_repo import AssignmentRepository
from app.repositories.event_repo import EventRepository
from app.repositories.experiment_repo import ExperimentRepository

logger = logging.getLogger(__name__)

WEIGHT_SUM_TOLERANCE = 0.01

# Significance is only computed once both arms have this many impressions
MIN_SAMPLE_SIZE = 100

ALLOWED_TRANSITIONS: Dict[ExperimentStatus, set] = {
    ExperimentStatus.DRAFT: {ExperimentStatus.ACTIVE},
    ExperimentStatus.ACTIVE: {ExperimentStatus.PAUSED, ExperimentStatus.COMPLETED},
    ExperimentStatus.PAUSED: {ExperimentStatus.ACTIVE, ExperimentStatus.COMPLETED},
    ExperimentStatus.COMPLETED: set(),
}


def _normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))


def two_proportion_z_test(
    control_conversions: int,
    control_impressions: int,
    treatment_conversions: int,
    treatment_impressions: int,
) -> dict:
    """
    Two-tailed z-test for the difference between two conversion rates.

    Returns p_value, confidence_level (percent, capped at 99.99) and
    is_significant (p < 0.05).
    """
    if control_impressions < MIN_SAMPLE_SIZE or treatment_impressions < MIN_SAMPLE_SIZE:
        return {"p_value": 1.0, "confidence_level": 0.0, "is_significant": False}

    p1 = control_conversions / control_impressions
    p2 = treatment_conversions / treatment_impressions
    p_pool = (control_conversions + treatment_conversions) / (
        control_impressions + treatment_impressions
    )

    se = math.sqrt(
        p_pool * (1 - p_pool) * (1 / control_impressions + 1 / treatment_impressions)
    )
    if se == 0:
        # Both arms converted at 0% or 100%
        return {"p_value": 1.0, "confidence_level": 0.0, "is_significant": False}

    z = abs(p2 - p1) / se
    p_value = min(2 * (1 - _normal_cdf(z)), 1.0)

    return {
        "p_value": p_value,
        "confidence_level": min((1 - p_value) * 100, 99.99),
        "is_significant": p_value < 0.05,
    }


class ExperimentService:
    def __init__(self, db: Session):
        self.assignment_repo = AssignmentRepository(db)
        self.experiment_repo = ExperimentRepository(db)
        self.event_repo = EventRepository(db)
        self.db = db

    def _validate_variants(self, experiment_data: ExperimentCreateModel) -> None:
        total_weight = sum(v.traffic_weight for v in experiment_data.variants)
        if abs(total_weight - 100.0) > WEIGHT_SUM_TOLERANCE:
            raise ValidationError(
                f"Variant traffic weights must sum to 100. Got: {total_weight}"
            )

        control_count = sum(1 for v in experiment_data.variants if v.is_control)
        if control_count != 1:
            raise ValidationError("Exactly one variant must be marked as control")

        names = [v.variant_name for v in experiment_data.variants]
        if len(names) != len(set(names)):
            raise ValidationError("Variant names must be unique")

    def create_experiment(
        self, experiment_data: ExperimentCreateModel, created_by: Optional[str] = None
    ) -> ExperimentORM:
        """
        Validates the variant setup and creates the experiment as a draft.
        """
        self._validate_variants(experiment_data)

        experiment = self.experiment_repo.create_experiment(experiment_data, created_by)
        logger.info(
            "Created experiment %r", experiment.name,
            extra={"experiment_id": experiment.experiment_id},
        )
        return experiment

    def list_experiments(
        self,
        status: Optional[ExperimentStatus] = None,
        test_type: Optional[ExperimentType] = None,
    ) -> List[ExperimentORM]:
        return self.experiment_repo.list_experiments(status=status, test_type=test_type)

    def get_experiment(self, experiment_id: str) -> ExperimentORM:
        experiment = self.experiment_repo.get_experiment_with_variants(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment {experiment_id} not found.")
        return experiment

    def update_experiment(
        self, experiment_id: str, update_data: ExperimentUpdateModel
    ) -> ExperimentORM:
        experiment = self.get_experiment(experiment_id)
        changes = update_data.model_dump(exclude_unset=True)

        if changes.get("winner_variant_id") is not None:
            variant_ids = {v.variant_id for v in experiment.variants}
            if changes["winner_variant_id"] not in variant_ids:
                raise ValidationError("Winner must be one of the experiment's variants")

        new_status = changes.pop("status", None)
        if new_status is not None:
            self._transition(experiment, ExperimentStatus(new_status), changes)

        for field, value in changes.items():
            setattr(experiment, field, value)

        experiment = self.experiment_repo.save(experiment)
        logger.info(
            "Updated experiment fields %s", sorted(update_data.model_fields_set),
            extra={"experiment_id": experiment_id},
        )
        return experiment

    def _transition(
        self, experiment: ExperimentORM, new_status: ExperimentStatus, changes: dict
    ) -> None:
        current = ExperimentStatus(experiment.status)
        if new_status == current:
            return

        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise StateError(
                f"Cannot move experiment from {current.value} to {new_status.value}"
            )

        now = datetime.utcnow()
        if new_status == ExperimentStatus.ACTIVE and experiment.start_time is None:
            changes.setdefault("start_time", now)
        if new_status == ExperimentStatus.COMPLETED and experiment.end_time is None:
            changes.setdefault("end_time", now)

        experiment.status = new_status

    def delete_experiment(self, experiment_id: str) -> None:
        experiment = self.get_experiment(experiment_id)
        if ExperimentStatus(experiment.status) == ExperimentStatus.ACTIVE:
            raise StateError("Active experiments cannot be deleted; pause or complete it first")

        self.experiment_repo.delete(experiment)
        logger.info("Deleted experiment", extra={"experiment_id": experiment_id})

    def _generate_variant_agg_stats(
        self,
        variants: List[VariantORM],
        assignments: List[AssignmentORM],
        events: List[EventORM],
        primary_metric_name: str,
    ) -> List[VariantResult]:
        # handle variants that have no assignments yet
        variant_stats = {
            variant.variant_id: {
                "impressions": 0,
                "conversion_assignments": set(),
                "event_type_counts": defaultdict(int),
                "total_revenue": 0.0,
            }
            for variant in variants
        }

        for assignment in assignments:
            if assignment.variant_id in variant_stats:
                variant_stats[assignment.variant_id]["impressions"] += 1

        for event in events:
            stats = variant_stats.get(event.variant_id)
            if stats is None:
                continue

            stats["event_type_counts"][event.type] += 1

            if event.type == primary_metric_name:
                stats["conversion_assignments"].add(event.assignment_id)
                if event.value:
                    stats["total_revenue"] += event.value

        results: Dict[str, VariantResult] = {}
        for variant in variants:
            stats = variant_stats[variant.variant_id]
            impressions = stats["impressions"]
            conversions = len(stats["conversion_assignments"])

            results[variant.variant_id] = VariantResult(
                variant_id=variant.variant_id,
                variant_name=variant.variant_name,
                is_control=variant.is_control,
                traffic_weight=variant.traffic_weight,
                impressions=impressions,
                conversions=conversions,
                conversion_rate=(conversions / impressions * 100) if impressions else 0.0,
                total_revenue=stats["total_revenue"],
                average_order_value=(
                    stats["total_revenue"] / conversions if conversions else 0.0
                ),
                event_counts=dict(stats["event_type_counts"]),
            )

        control = next((v for v in variants if v.is_control), None)
        if control is not None:
            control_result = results[control.variant_id]
            for variant in variants:
                if variant.variant_id == control.variant_id:
                    continue
                treatment = results[variant.variant_id]
                significance = two_proportion_z_test(
                    control_result.conversions,
                    control_result.impressions,
                    treatment.conversions,
                    treatment.impressions,
                )
                results[variant.variant_id] = treatment.model_copy(update=significance)

        return [results[v.variant_id] for v in variants]

    def get_experiment_results(
        self, experiment_id: str, filter_params: Optional[dict] = None
    ) -> ExperimentResultsModel:
        """
        Experiment overview plus per-variant impressions, conversions,
        revenue and significance against the control.

        filter_params may hold event_type, start_date and end_date; they
        restrict which events are counted, not which assignments.
        """
        experiment = self.get_experiment(experiment_id)

        assignments = self.assignment_repo.get_assignments_for_experiment(experiment_id)
        events = self.event_repo.get_events_for_experiment(
            experiment_id, **(filter_params or {})
        )

        now = datetime.utcnow()
        if experiment.start_time is None:
            days_running = 0
        elif experiment.end_time and now > experiment.end_time:
            days_running = (experiment.end_time - experiment.start_time).days
        else:
            days_running = (now - experiment.start_time).days

        converted = {
            event.assignment_id
            for event in events
            if event.type == experiment.primary_metric_name
        }
        global_conversion_rate = (
            len(converted) / len(assignments) * 100 if assignments else 0.0
        )

        return ExperimentResultsModel(
            experiment_id=experiment.experiment_id,
            name=experiment.name,
            status=experiment.status,
            primary_metric_name=experiment.primary_metric_name,
            start_time=experiment.start_time,
            end_time=experiment.end_time,
            experiment_days_running=days_running,
            total_users_in_experiment=len(assignments),
            total_events=len(events),
            global_conversion_rate=global_conversion_rate,
            variants=self._generate_variant_agg_stats(
                list(experiment.variants),
                assignments,
                events,
                experiment.primary_metric_name,
            ),
        )
