"""Tests for the preset experiment catalogue."""

import pytest

from abtesting.core.catalogue import ConversionGoal, PlatformFeature
from abtesting.core.errors import InvalidExperimentConfig
from abtesting.models.orm.experiment import ExperimentStatus
from abtesting.services.experiment_service import ExperimentService, validate_experiment
from abtesting.services.templates import EXPERIMENT_TEMPLATES, even_splits, get_template


@pytest.fixture
def service(store):
    return ExperimentService(store)


class TestEvenSplits:
    @pytest.mark.parametrize("count", [2, 3, 4, 6, 7])
    def test_sums_to_100(self, count):
        splits = even_splits(count)
        assert len(splits) == count
        assert sum(splits) == pytest.approx(100.0, abs=0.001)

    def test_three_way(self):
        assert even_splits(3) == [33.33, 33.33, 33.34]


class TestCatalogue:
    @pytest.mark.parametrize("key", sorted(EXPERIMENT_TEMPLATES))
    def test_every_template_is_a_valid_experiment(self, key):
        validate_experiment(get_template(key).to_create_model())

    def test_platform_tests_use_platform_features(self):
        platform_keys = [
            "navbar_style",
            "pricing_strategy",
            "ai_writing_assistant",
            "signup_experience",
            "watermark_strategy",
            "gamification",
        ]
        features = {PlatformFeature(EXPERIMENT_TEMPLATES[key].feature) for key in platform_keys}
        assert PlatformFeature.GAMIFICATION in features
        assert len(features) == len(platform_keys)

    def test_platform_test_defaults(self):
        template = get_template("navbar_style")

        assert template.traffic_allocation == 50
        assert template.target_audience.user_tiers == ["free", "premium"]
        assert template.conversion_goal == ConversionGoal.UPGRADE_TO_PREMIUM.value
        assert [v.is_control for v in template.variants] == [True, False]
        assert [v.traffic_split for v in template.variants] == [50, 50]

    def test_watermark_message_targets_free_users(self):
        template = get_template("watermark_message")

        assert template.target_audience.user_tiers == ["free"]
        assert template.duration_days == 14
        urgency = template.variants[1].configuration_json["custom_config"]
        assert urgency["text"] == "Limited Time: Upgrade Now"
        assert urgency["style"]["color"] == "#DC2626"

    def test_unknown_template(self):
        with pytest.raises(InvalidExperimentConfig, match="Unknown experiment template 'nope'"):
            get_template("nope")


class TestCreateFromTemplate:
    def test_creates_draft(self, service):
        experiment = service.create_from_template("watermark_position")

        assert experiment.status == ExperimentStatus.DRAFT
        assert experiment.name == "Watermark Position Test"
        assert experiment.traffic_allocation == 30
        assert experiment.minimum_sample_size == 2000
        assert experiment.control_variant.variant_name == "Bottom Right (Control)"
        assert experiment.variants[1].configuration_json["custom_config"]["position"] == "bottom-center"

    def test_three_variant_template(self, service):
        experiment = service.create_from_template("gamification")

        assert [v.variant_name for v in experiment.variants] == [
            "No Gamification",
            "Achievement System",
            "Full Gamification",
        ]
        assert experiment.variants[0].is_control

    def test_overrides_replace_fields(self, service):
        first = service.create_from_template("pricing_strategy")
        second = service.create_from_template(
            "pricing_strategy", name="Pricing Strategy Test (EU)", traffic_allocation=20, created_by=None
        )

        assert first.name == "Pricing Strategy Test"
        assert second.name == "Pricing Strategy Test (EU)"
        assert second.traffic_allocation == 20
        assert second.feature == PlatformFeature.PRICING_DISPLAY.value

    def test_same_template_twice_needs_a_new_name(self, service):
        service.create_from_template("signup_experience")
        with pytest.raises(InvalidExperimentConfig, match="already taken"):
            service.create_from_template("signup_experience")

    def test_templates_are_not_mutated(self, service):
        service.create_from_template("watermark_message", name="Renamed")
        assert get_template("watermark_message").name == "Watermark Message A/B Test"
