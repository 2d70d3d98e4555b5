"""
Shared fixtures. Engine tests run against the in-memory store; SQL tests
use an in-memory SQLite database shared across threads.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from abtesting.models.orm.base import Base
from abtesting.models.orm.experiment import ExperimentStatus
from abtesting.models.schemas.assignment import Assignment
from abtesting.models.schemas.experiment import Experiment, TargetAudience, Variant
from abtesting.models.schemas.profile import UserProfile
from abtesting.services.engine import ExperimentEngine
from abtesting.store.memory import InMemoryExperimentStore
from abtesting.store.sql import SqlExperimentStore  # registers every ORM table

NOW = datetime(2024, 6, 1, 12, 0, 0)
EXPERIMENT_START = datetime(2024, 5, 1)


def build_experiment(
    experiment_id="exp_watermark",
    feature="watermark",
    status=ExperimentStatus.RUNNING,
    splits=(50.0, 50.0),
    traffic_allocation=100.0,
    conversion_goal="upgrade_to_premium",
    secondary_metrics=(),
    confidence_level=95.0,
    minimum_effect=10.0,
    configs=None,
    **audience,
) -> Experiment:
    """A running two-arm (by default) experiment; the first variant is control."""
    configs = configs or [{} for _ in splits]
    variants = [
        Variant(
            variant_id="control" if i == 0 else f"variant_{i}",
            variant_name="Control" if i == 0 else f"Treatment {i}",
            is_control=i == 0,
            traffic_split=split,
            position=i,
            configuration_json=configs[i],
        )
        for i, split in enumerate(splits)
    ]
    return Experiment(
        experiment_id=experiment_id,
        name=f"{experiment_id} test",
        feature=feature,
        status=status,
        traffic_allocation=traffic_allocation,
        variants=variants,
        target_audience=TargetAudience(**audience),
        start_time=EXPERIMENT_START,
        conversion_goal=conversion_goal,
        secondary_metrics=list(secondary_metrics),
        confidence_level=confidence_level,
        minimum_effect=minimum_effect,
    )


def build_assignment(user_id, experiment_id, variant_id, converted=False, assigned_at=NOW):
    return Assignment(
        assignment_id=f"{experiment_id}:{user_id}",
        experiment_id=experiment_id,
        user_id=user_id,
        variant_id=variant_id,
        assigned_at=assigned_at,
        first_seen=assigned_at,
        last_seen=assigned_at,
        converted=converted,
        converted_at=assigned_at if converted else None,
    )


def add_profile(store, user_id, tier="free", age_days=30):
    store.put_profile(UserProfile(user_id=user_id, tier=tier, created_at=NOW - timedelta(days=age_days)))


def add_cohort(store, experiment_id, variant_id, participants, conversions, prefix=None):
    """Seed `participants` assignments of which the first `conversions` converted."""
    prefix = prefix or variant_id
    for i in range(participants):
        store.create_assignment_if_absent(
            build_assignment(f"{prefix}_user_{i}", experiment_id, variant_id, converted=i < conversions)
        )


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def store():
    return InMemoryExperimentStore()


@pytest.fixture
def experiment(store):
    exp = build_experiment()
    store.put_experiment(exp)
    return exp


@pytest.fixture
def engine(store, clock):
    return ExperimentEngine(store, clock=clock)


# --- SQL ---


@pytest.fixture
def sql_engine():
    db_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    Base.metadata.drop_all(bind=db_engine)
    db_engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=sql_engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def sql_store(db_session):
    return SqlExperimentStore(db_session)
