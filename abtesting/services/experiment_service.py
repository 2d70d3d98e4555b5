import logging
from typing import Dict, FrozenSet, Optional

from pydantic import ValidationError

from abtesting.core.errors import (
    ExperimentConflict,
    ExperimentNotFound,
    InvalidExperimentConfig,
    InvalidStatusTransition,
)
from abtesting.models.orm.experiment import ExperimentStatus
from abtesting.models.schemas.experiment import Experiment, ExperimentCreateModel
from abtesting.models.schemas.variant_config import validate_variant_config
from abtesting.services.definitions import ExperimentDefinitions
from abtesting.services.templates import get_template
from abtesting.store.base import ExperimentStore

logger = logging.getLogger(__name__)

SPLIT_TOLERANCE = 0.001

ALLOWED_TRANSITIONS: Dict[ExperimentStatus, FrozenSet[ExperimentStatus]] = {
    ExperimentStatus.DRAFT: frozenset({ExperimentStatus.RUNNING, ExperimentStatus.CANCELLED}),
    ExperimentStatus.RUNNING: frozenset(
        {ExperimentStatus.PAUSED, ExperimentStatus.COMPLETED, ExperimentStatus.CANCELLED}
    ),
    ExperimentStatus.PAUSED: frozenset(
        {ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED, ExperimentStatus.CANCELLED}
    ),
    ExperimentStatus.COMPLETED: frozenset(),
    ExperimentStatus.CANCELLED: frozenset(),
}


def validate_experiment(experiment_data: ExperimentCreateModel) -> ExperimentCreateModel:
    """
    Authoring-time checks. Returns a copy with variant payloads normalised
    for the experiment's feature; raises InvalidExperimentConfig otherwise.
    """
    variants = experiment_data.variants
    if len(variants) < 2:
        raise InvalidExperimentConfig("Experiment must have at least 2 variants.")

    total_split = sum(v.traffic_split for v in variants)
    if abs(total_split - 100.0) > SPLIT_TOLERANCE:
        raise InvalidExperimentConfig(
            f"Total traffic split must be 100%. Got: {total_split}%"
        )

    controls = [v for v in variants if v.is_control]
    if len(controls) != 1:
        raise InvalidExperimentConfig(
            f"Experiment must have exactly one control variant. Got: {len(controls)}"
        )

    names = [v.variant_name for v in variants]
    if len(names) != len(set(names)):
        raise InvalidExperimentConfig("Variant names must be unique.")

    normalised = []
    for variant in variants:
        try:
            config = validate_variant_config(experiment_data.feature, variant.configuration_json)
        except ValidationError as e:
            raise InvalidExperimentConfig(
                f"Invalid {experiment_data.feature} config for variant "
                f"'{variant.variant_name}': {e}"
            ) from e
        normalised.append(variant.model_copy(update={"configuration_json": config}))

    return experiment_data.model_copy(update={"variants": normalised})


class ExperimentService:
    def __init__(self, store: ExperimentStore, definitions: Optional[ExperimentDefinitions] = None):
        self.store = store
        self.definitions = definitions or ExperimentDefinitions(store)

    def create_experiment(self, experiment_data: ExperimentCreateModel) -> Experiment:
        """
        Validates and persists a new experiment in draft. Variants cannot be
        edited afterwards: once traffic flows, changing splits would
        invalidate the existing assignments.
        """
        experiment = self.store.save_experiment(validate_experiment(experiment_data))
        logger.info(
            "Created experiment %s (%s) on feature %s",
            experiment.experiment_id,
            experiment.name,
            experiment.feature,
        )
        return experiment

    def create_from_template(self, template_key: str, **overrides) -> Experiment:
        """
        Creates a draft from a preset. Overrides replace template fields, e.g.
        a different name when the same preset is run twice.
        """
        template = get_template(template_key)
        experiment_data = template.to_create_model(
            **{k: v for k, v in overrides.items() if v is not None}
        )
        logger.info("Creating experiment from template %s", template_key)
        return self.create_experiment(experiment_data)

    def get_experiment(self, experiment_id: str) -> Experiment:
        experiment = self.store.get_experiment(experiment_id)
        if experiment is None:
            raise ExperimentNotFound(experiment_id)
        return experiment

    def transition(self, experiment_id: str, status: ExperimentStatus) -> Experiment:
        """
        Moves an experiment through its lifecycle. Only one experiment per
        feature may be running; activation refuses when another one is.
        Stopping an experiment leaves its assignments in place for analysis.
        """
        experiment = self.get_experiment(experiment_id)
        if experiment.status == status:
            return experiment

        if status not in ALLOWED_TRANSITIONS[experiment.status]:
            raise InvalidStatusTransition(experiment.status.value, status.value)

        if status == ExperimentStatus.RUNNING:
            running = self.store.get_running_experiment(experiment.feature)
            if running is not None and running.experiment_id != experiment_id:
                raise ExperimentConflict(
                    f"Experiment {running.experiment_id} is already running on "
                    f"feature '{experiment.feature}'."
                )

        self.store.update_experiment_status(experiment_id, status)
        self.definitions.invalidate(experiment)
        logger.info(
            "Experiment %s moved from %s to %s",
            experiment_id,
            experiment.status.value,
            status.value,
        )
        return self.get_experiment(experiment_id)
