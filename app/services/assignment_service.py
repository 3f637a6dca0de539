# services/assignment_service.py
"""
Experiment assignment engine.

A visitor (signed-in user or anonymous id) gets at most one variant per
experiment. The first request for an identity passes a traffic gate and then
a weighted draw over the experiment's variants; the result is persisted and
every later request returns the stored row without drawing again.

Visitors rejected by the traffic gate are not recorded, so a later request
(e.g. after traffic_allocation is raised) rolls the gate again.

Storage and randomness are injected: ``experiments`` only needs
``get_experiment_with_variants``, ``store`` needs ``get_assignment`` and an
atomic ``insert_if_absent``, and ``rng`` anything with ``random()``.
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence, Tuple

from sqlalchemy.orm import Session

from app.core.errors import InvalidIdentityError, NoVariantsError, NotActiveError, NotFoundError
from app.models.orm.experiment import ExperimentStatus
from app.models.schemas.assignment import Identity
from app.repositories.assignment_repo import AssignmentRepository
from app.repositories.experiment_repo import ExperimentRepository

logger = logging.getLogger(__name__)


class ExperimentSource(Protocol):
    def get_experiment_with_variants(self, experiment_id: str) -> Optional[Any]: ...


class AssignmentStore(Protocol):
    def get_assignment(self, experiment_id: str, identity: Identity) -> Optional[Any]: ...

    def insert_if_absent(
        self, experiment_id: str, variant_id: str, identity: Identity
    ) -> Tuple[Any, bool]: ...


@dataclass
class AssignmentResult:
    included: bool
    assignment: Optional[Any] = None
    variant: Optional[Any] = None
    created: bool = False


def select_weighted_variant(variants: Sequence[Any], rng) -> Any:
    """
    Picks a variant with probability ``traffic_weight / sum(weights)``.

    Variants are walked in the given order, subtracting each weight from a
    draw in ``[0, total)``; the first variant that brings the remainder to
    <= 0 wins. Zero-weight variants are never picked.
    """
    weighted = [v for v in variants if float(v.traffic_weight) > 0]
    total_weight = sum(float(v.traffic_weight) for v in weighted)
    if not weighted or total_weight <= 0:
        raise NoVariantsError("Experiment has no variants with traffic weight")

    remainder = rng.random() * total_weight
    for variant in weighted:
        remainder -= float(variant.traffic_weight)
        if remainder <= 0:
            return variant

    # Floating point drift can leave a tiny positive remainder
    return weighted[-1]


class AssignmentService:
    def __init__(
        self,
        experiments: ExperimentSource,
        store: AssignmentStore,
        rng: Optional[random.Random] = None,
    ):
        self.experiments = experiments
        self.store = store
        self.rng = rng if rng is not None else random.Random()

    @classmethod
    def from_session(cls, db: Session, rng: Optional[random.Random] = None) -> "AssignmentService":
        return cls(ExperimentRepository(db), AssignmentRepository(db), rng=rng)

    def assign_variant(self, experiment_id: str, identity: Identity) -> AssignmentResult:
        if not identity.is_valid():
            raise InvalidIdentityError("Exactly one of user_id or anon_id is required")

        experiment = self.experiments.get_experiment_with_variants(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment {experiment_id} not found.")

        if ExperimentStatus(experiment.status) != ExperimentStatus.ACTIVE:
            raise NotActiveError(f"Experiment {experiment_id} is not active.")

        variants = list(experiment.variants)
        variants_by_id = {v.variant_id: v for v in variants}

        existing = self.store.get_assignment(experiment_id, identity)
        if existing is not None:
            logger.debug(
                "%s already assigned to variant %s",
                identity.describe(),
                existing.variant_id,
                extra={"experiment_id": experiment_id},
            )
            return AssignmentResult(
                included=True,
                assignment=existing,
                variant=variants_by_id.get(existing.variant_id),
            )

        if self.rng.random() * 100 >= float(experiment.traffic_allocation):
            logger.debug(
                "%s excluded by traffic allocation %s",
                identity.describe(),
                experiment.traffic_allocation,
                extra={"experiment_id": experiment_id},
            )
            return AssignmentResult(included=False)

        chosen = select_weighted_variant(variants, self.rng)

        assignment, created = self.store.insert_if_absent(
            experiment_id, chosen.variant_id, identity
        )
        if created:
            logger.info(
                "Assigned %s to variant %s",
                identity.describe(),
                chosen.variant_id,
                extra={"experiment_id": experiment_id, "variant_id": chosen.variant_id},
            )

        return AssignmentResult(
            included=True,
            assignment=assignment,
            variant=variants_by_id.get(assignment.variant_id, chosen),
            created=created,
        )
