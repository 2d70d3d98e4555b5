"""Tests for event recording and the one-way conversion flip."""

from datetime import timedelta

import pytest

from abtesting.models.orm.experiment import ExperimentStatus
from abtesting.services.conversion_service import ConversionService

from conftest import NOW, build_assignment, build_experiment


@pytest.fixture
def conversions(store, clock):
    return ConversionService(store, clock=clock)


@pytest.fixture
def assigned(store, experiment):
    store.create_assignment_if_absent(build_assignment("user_1", experiment.experiment_id, "variant_1"))
    return store.get_assignment("user_1", experiment.experiment_id)


class TestRecordEvent:
    def test_goal_event_converts(self, store, experiment, assigned, conversions):
        event = conversions.record_event("user_1", experiment.experiment_id, "upgrade_to_premium", value=9.99)

        assert event.variant_id == "variant_1"
        converted = store.get_assignment("user_1", experiment.experiment_id)
        assert converted.converted
        assert converted.converted_at == NOW
        assert converted.conversion_value == pytest.approx(9.99)

    def test_second_goal_event_is_recorded_but_does_not_reconvert(self, store, experiment, assigned):
        first_at = NOW
        ConversionService(store, clock=lambda: first_at).record_event(
            "user_1", experiment.experiment_id, "upgrade_to_premium", value=5.0
        )
        ConversionService(store, clock=lambda: first_at + timedelta(hours=1)).record_event(
            "user_1", experiment.experiment_id, "upgrade_to_premium", value=5.0
        )

        assignment = store.get_assignment("user_1", experiment.experiment_id)
        assert assignment.converted
        assert assignment.converted_at == first_at
        assert assignment.conversion_value == pytest.approx(5.0)
        assert len(store.list_events(experiment.experiment_id, "upgrade_to_premium")) == 2

    def test_non_goal_event_does_not_convert(self, store, experiment, assigned, conversions):
        event = conversions.record_event(
            "user_1", experiment.experiment_id, "document_exported", {"format": "pdf"}
        )

        assert event.event_data == {"format": "pdf"}
        assert not store.get_assignment("user_1", experiment.experiment_id).converted
        assert len(store.list_events(experiment.experiment_id)) == 1

    def test_no_assignment_is_a_no_op(self, store, experiment, conversions):
        assert conversions.record_event("stranger", experiment.experiment_id, "upgrade_to_premium") is None
        assert store.list_events(experiment.experiment_id) == []

    def test_events_after_stop_still_recorded(self, store, assigned, conversions):
        """Stopping an experiment does not stop attribution for already assigned users."""
        store.update_experiment_status("exp_watermark", ExperimentStatus.COMPLETED)

        conversions.record_event("user_1", "exp_watermark", "upgrade_to_premium")

        assert store.get_assignment("user_1", "exp_watermark").converted


class TestTrackEvent:
    def test_fans_out_to_running_experiments(self, store, conversions):
        pricing = build_experiment(experiment_id="exp_pricing", feature="pricing")
        editor = build_experiment(
            experiment_id="exp_editor", feature="editor", conversion_goal="document_exported"
        )
        stopped = build_experiment(
            experiment_id="exp_old", feature="themes", status=ExperimentStatus.COMPLETED
        )
        for exp in (pricing, editor, stopped):
            store.put_experiment(exp)
            store.create_assignment_if_absent(build_assignment("user_1", exp.experiment_id, "control"))

        recorded = conversions.track_event("user_1", "upgrade_to_premium", value=20.0)

        assert sorted(recorded) == ["exp_editor", "exp_pricing"]
        assert store.get_assignment("user_1", "exp_pricing").converted
        assert not store.get_assignment("user_1", "exp_editor").converted
        assert store.list_events("exp_old") == []

    def test_unassigned_user_records_nothing(self, store, experiment, conversions):
        assert conversions.track_event("stranger", "upgrade_to_premium") == []


class TestTrackUserAction:
    def test_event_data_carries_feature_and_timestamp(self, store, assigned, conversions):
        recorded = conversions.track_user_action(
            "user_1", "document_exported", "export_options", {"format": "pdf"}
        )

        assert recorded == ["exp_watermark"]
        (event,) = store.list_events("exp_watermark")
        assert event.event_type == "document_exported"
        assert event.event_data == {
            "feature": "export_options",
            "timestamp": NOW.isoformat(),
            "format": "pdf",
        }

    def test_metadata_cannot_replace_feature(self, store, assigned, conversions):
        conversions.track_user_action("user_1", "document_created", "editor_layout", {"feature": "other"})

        (event,) = store.list_events("exp_watermark")
        assert event.event_data["feature"] == "editor_layout"

    def test_upgrade_converts(self, store, assigned, conversions):
        conversions.track_upgrade("user_1", "free", "premium", value=9.99)

        assignment = store.get_assignment("user_1", "exp_watermark")
        assert assignment.converted
        assert assignment.conversion_value == pytest.approx(9.99)
        (event,) = store.list_events("exp_watermark")
        assert event.event_data["feature"] == "pricing_display"
        assert event.event_data["from_tier"] == "free"
        assert event.event_data["to_tier"] == "premium"

    @pytest.mark.parametrize(
        "track, args, event_type, feature, extra",
        [
            ("track_signup", ("google",), "document_created", "signup_flow", {"method": "google"}),
            (
                "track_document_created",
                ("novel",),
                "document_created",
                "editor_layout",
                {"document_type": "novel"},
            ),
            (
                "track_ai_feature_used",
                ("rewrite",),
                "ai_feature_used",
                "ai_suggestions",
                {"feature_type": "rewrite"},
            ),
            (
                "track_export",
                ("pdf", True),
                "document_exported",
                "export_options",
                {"format": "pdf", "has_watermark": True},
            ),
        ],
    )
    def test_helpers(self, store, assigned, conversions, track, args, event_type, feature, extra):
        getattr(conversions, track)("user_1", *args)

        (event,) = store.list_events("exp_watermark")
        assert event.event_type == event_type
        assert event.event_data == {"feature": feature, "timestamp": NOW.isoformat(), **extra}
        assert not store.get_assignment("user_1", "exp_watermark").converted

    def test_unassigned_user(self, store, experiment, conversions):
        assert conversions.track_user_action("stranger", "document_exported", "export_options") == []
        assert store.list_events("exp_watermark") == []


class TestListEventsWindow:
    def test_bounds_are_inclusive_and_ordered(self, store, assigned):
        for hours in (3, 0, 1, 2):
            ConversionService(store, clock=lambda: NOW + timedelta(hours=hours)).record_event(
                "user_1", "exp_watermark", "document_exported", {"hour": hours}
            )

        window = store.list_events(
            "exp_watermark", start=NOW + timedelta(hours=1), end=NOW + timedelta(hours=2)
        )
        assert [e.event_data["hour"] for e in window] == [1, 2]
        assert [e.event_data["hour"] for e in store.list_events("exp_watermark")] == [0, 1, 2, 3]
        assert store.list_events("exp_watermark", start=NOW + timedelta(hours=4)) == []
