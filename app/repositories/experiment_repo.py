import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.errors import ValidationError
from app.models.orm.experiment import ExperimentORM, VariantORM, ExperimentStatus, ExperimentType
from app.models.schemas.experiment import ExperimentCreateModel


class ExperimentRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def create_experiment(
        self, experiment_data: ExperimentCreateModel, created_by: Optional[str] = None
    ) -> ExperimentORM:
        """
        Creates a draft experiment and its variants in one transaction.

        Variants keep the order they were submitted in (``position``); that is
        the order the weighted assignment walk uses.
        """
        experiment_id = str(uuid.uuid4())

        experiment_data_dict = experiment_data.model_dump(exclude={"variants"})
        experiment_data_dict["experiment_id"] = experiment_id
        experiment_data_dict["status"] = ExperimentStatus.DRAFT
        experiment_data_dict["created_by"] = created_by

        db_experiment = ExperimentORM(**experiment_data_dict)

        for position, variant_data in enumerate(experiment_data.variants):
            variant_dict = variant_data.model_dump()
            variant_dict["variant_id"] = str(uuid.uuid4())
            variant_dict["position"] = position
            db_experiment.variants.append(VariantORM(**variant_dict))

        try:
            self.db.add(db_experiment)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationError(
                f"Database integrity error: {str(e).splitlines()[0]}"
            ) from e

        self.db.refresh(db_experiment)
        return db_experiment

    def get_experiment_with_variants(self, experiment_id: str) -> ExperimentORM | None:
        """
        Fetches a single Experiment by experiment_id and eagerly loads its
        variants.
        """
        stmt = (
            select(ExperimentORM)
            .where(ExperimentORM.experiment_id == experiment_id)
            .options(selectinload(ExperimentORM.variants))
        )

        return self.db.scalars(stmt).one_or_none()

    def list_experiments(
        self,
        status: Optional[ExperimentStatus] = None,
        test_type: Optional[ExperimentType] = None,
    ) -> list[ExperimentORM]:
        stmt = (
            select(ExperimentORM)
            .options(selectinload(ExperimentORM.variants))
            .order_by(ExperimentORM.created_at.desc())
        )

        if status is not None:
            stmt = stmt.where(ExperimentORM.status == status)

        if test_type is not None:
            stmt = stmt.where(ExperimentORM.test_type == test_type)

        return list(self.db.scalars(stmt).all())

    def save(self, experiment: ExperimentORM) -> ExperimentORM:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(experiment)
        return experiment

    def delete(self, experiment: ExperimentORM) -> None:
        try:
            self.db.delete(experiment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
