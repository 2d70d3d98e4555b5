class ExperimentError(Exception):
    """Base class for errors raised by the experimentation engine."""


class StoreUnavailable(ExperimentError):
    """The experiment store timed out or could not be reached."""


class ExperimentNotFound(ExperimentError):
    def __init__(self, experiment_id: str):
        super().__init__(f"Experiment {experiment_id} not found.")
        self.experiment_id = experiment_id


class InvalidExperimentConfig(ExperimentError):
    """Rejected at authoring time: bad splits, missing control, bad payloads."""


class InvalidStatusTransition(ExperimentError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move experiment from {current} to {requested}.")
        self.current = current
        self.requested = requested


class ExperimentConflict(ExperimentError):
    """Another experiment on the same feature is already running."""
