import uuid
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from abtesting.core.clock import utcnow
from abtesting.core.errors import InvalidExperimentConfig
from abtesting.models.orm.experiment import ExperimentORM, ExperimentStatus, VariantORM
from abtesting.models.schemas.experiment import ExperimentCreateModel

from .base import BaseRepository


class ExperimentRepository(BaseRepository):
    def create_experiment(self, experiment_data: ExperimentCreateModel) -> ExperimentORM:
        """
        Persists an experiment and its variants in one transaction. Variants
        keep the order they were authored in; that order is the walk order for
        variant selection.

        Validation of splits and controls happens in the service before this
        is called.
        """
        experiment_id = str(uuid.uuid4())

        experiment_data_dict = experiment_data.model_dump(exclude={"variants"})
        experiment_data_dict["experiment_id"] = experiment_id
        experiment_data_dict["status"] = ExperimentStatus.DRAFT

        db_experiment = ExperimentORM(**experiment_data_dict)
        for position, variant_data in enumerate(experiment_data.variants):
            db_experiment.variants.append(
                VariantORM(
                    variant_id=str(uuid.uuid4()),
                    experiment_id=experiment_id,
                    position=position,
                    **variant_data.model_dump(),
                )
            )

        with self._unavailable_on_failure("create experiment"):
            try:
                self.db.add(db_experiment)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise InvalidExperimentConfig(
                    f"Experiment name '{experiment_data.name}' is already taken."
                ) from e

        self.db.refresh(db_experiment)
        return db_experiment

    def get_experiment_with_variants(self, experiment_id: str) -> Optional[ExperimentORM]:
        """
        Fetches a single Experiment by experiment_id and eagerly loads all
        associated VariantORM objects.
        """
        stmt = (
            select(ExperimentORM)
            .where(ExperimentORM.experiment_id == experiment_id)
            .options(selectinload(ExperimentORM.variants))
        )
        with self._unavailable_on_failure("load experiment"):
            return self.db.scalars(stmt).one_or_none()

    def get_running_for_feature(self, feature: str) -> Optional[ExperimentORM]:
        """Oldest running experiment on the feature, if any."""
        stmt = (
            select(ExperimentORM)
            .where(
                ExperimentORM.feature == feature,
                ExperimentORM.status == ExperimentStatus.RUNNING,
            )
            .order_by(ExperimentORM.start_time, ExperimentORM.experiment_id)
            .options(selectinload(ExperimentORM.variants))
            .limit(1)
        )
        with self._unavailable_on_failure("load running experiment"):
            return self.db.scalars(stmt).first()

    def get_running_experiments(self) -> List[ExperimentORM]:
        stmt = (
            select(ExperimentORM)
            .where(ExperimentORM.status == ExperimentStatus.RUNNING)
            .order_by(ExperimentORM.start_time, ExperimentORM.experiment_id)
            .options(selectinload(ExperimentORM.variants))
        )
        with self._unavailable_on_failure("list running experiments"):
            return list(self.db.scalars(stmt).all())

    def update_status(self, experiment_id: str, status: ExperimentStatus) -> None:
        stmt = (
            update(ExperimentORM)
            .where(ExperimentORM.experiment_id == experiment_id)
            .values(status=status, updated_at=utcnow())
        )
        with self._unavailable_on_failure("update experiment status"):
            self.db.execute(stmt)
            self.db.commit()
