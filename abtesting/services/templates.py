"""
Preset experiments the admin side can start from.

Two families live here: the hand-tuned watermark experiments, and the
platform tests that only name their variants and payloads. Platform tests
are filled in with the dashboard defaults: the first variant is the control,
traffic is split evenly and half of free and premium users are enrolled.
"""

from typing import Any, Dict, List, Mapping, Sequence, Tuple

from abtesting.core.catalogue import ConversionGoal, PlatformFeature
from abtesting.core.errors import InvalidExperimentConfig
from abtesting.models.schemas.experiment import TargetAudience, VariantConfig
from abtesting.models.schemas.template import ExperimentTemplate


def even_splits(count: int) -> List[float]:
    """Percentages that sum to exactly 100; the last variant takes the remainder."""
    share = round(100.0 / count, 2)
    return [share] * (count - 1) + [round(100.0 - share * (count - 1), 2)]


def _platform_test(
    name: str,
    description: str,
    feature: PlatformFeature,
    variants: Sequence[Tuple[str, Mapping[str, Any]]],
) -> ExperimentTemplate:
    splits = even_splits(len(variants))
    return ExperimentTemplate(
        name=name,
        description=description,
        hypothesis=f"Testing {name.lower()} to improve user experience and conversions",
        feature=feature.value,
        traffic_allocation=50,
        variants=[
            VariantConfig(
                variant_name=variant_name,
                description=f"Variant testing {variant_name.lower()}",
                traffic_split=split,
                is_control=position == 0,
                configuration_json=dict(config),
            )
            for position, ((variant_name, config), split) in enumerate(zip(variants, splits))
        ],
        target_audience=TargetAudience(user_tiers=["free", "premium"]),
        duration_days=14,
        secondary_metrics=[
            "user_engagement",
            ConversionGoal.FEATURE_ADOPTION.value,
        ],
        conversion_goal=ConversionGoal.UPGRADE_TO_PREMIUM.value,
    )


_URGENCY_STYLE = {
    "font_size": 11,
    "color": "#DC2626",
    "opacity": 0.9,
    "font_family": "Inter, sans-serif",
    "background_color": "#FEF2F2",
    "border_color": "#FECACA",
    "border_width": 1,
    "padding": 10,
    "border_radius": 6,
}


EXPERIMENT_TEMPLATES: Dict[str, ExperimentTemplate] = {
    "watermark_message": ExperimentTemplate(
        name="Watermark Message A/B Test",
        description="Test different watermark messages to optimize conversion rates",
        hypothesis="More compelling watermark messaging will increase premium upgrades",
        feature="watermark",
        traffic_allocation=50,
        variants=[
            VariantConfig(
                variant_name="Current Watermark",
                description="Existing watermark configuration",
                traffic_split=50,
                is_control=True,
                configuration_json={"enabled": True, "config_id": "default"},
            ),
            VariantConfig(
                variant_name="Urgency Message",
                description="Watermark with urgency messaging",
                traffic_split=50,
                configuration_json={
                    "enabled": True,
                    "custom_config": {
                        "text": "Limited Time: Upgrade Now",
                        "sub_text": "Remove watermarks + unlock AI features",
                        "position": "bottom-right",
                        "style": _URGENCY_STYLE,
                    },
                },
            ),
        ],
        target_audience=TargetAudience(user_tiers=["free"]),
        duration_days=14,
        secondary_metrics=["document_exports", "time_to_conversion", "user_engagement"],
        conversion_goal=ConversionGoal.UPGRADE_TO_PREMIUM.value,
        minimum_sample_size=1000,
        minimum_effect=10,
    ),
    "watermark_position": ExperimentTemplate(
        name="Watermark Position Test",
        description="Test different watermark positions for optimal visibility and conversion",
        hypothesis="Bottom-center watermarks will be more noticeable and drive more conversions",
        feature="watermark",
        traffic_allocation=30,
        variants=[
            VariantConfig(
                variant_name="Bottom Right (Control)",
                description="Current bottom-right positioning",
                traffic_split=50,
                is_control=True,
                configuration_json={
                    "enabled": True,
                    "custom_config": {
                        "text": "Created with OttoWrite AI",
                        "sub_text": "Upgrade for watermark-free exports",
                        "position": "bottom-right",
                    },
                },
            ),
            VariantConfig(
                variant_name="Bottom Center",
                description="More prominent bottom-center positioning",
                traffic_split=50,
                configuration_json={
                    "enabled": True,
                    "custom_config": {
                        "text": "Created with OttoWrite AI",
                        "sub_text": "Upgrade for watermark-free exports",
                        "position": "bottom-center",
                    },
                },
            ),
        ],
        target_audience=TargetAudience(user_tiers=["free"]),
        duration_days=21,
        secondary_metrics=["watermark_visibility", "user_satisfaction"],
        conversion_goal=ConversionGoal.UPGRADE_TO_PREMIUM.value,
        minimum_sample_size=2000,
        minimum_effect=15,
    ),
    "navbar_style": _platform_test(
        "Navbar Design Test",
        "Test modern vs. classic navbar design",
        PlatformFeature.NAVBAR_DESIGN,
        [
            ("Classic Navbar", {
                "style": "classic",
                "logo": "text",
                "menu_style": "horizontal",
                "search_position": "right",
            }),
            ("Modern Navbar", {
                "style": "modern",
                "logo": "icon",
                "menu_style": "compact",
                "search_position": "center",
            }),
        ],
    ),
    "pricing_strategy": _platform_test(
        "Pricing Strategy Test",
        "Test different pricing displays and strategies",
        PlatformFeature.PRICING_DISPLAY,
        [
            ("Monthly Pricing", {
                "primary_display": "monthly",
                "show_annual_discount": True,
                "highlighted_plan": "premium",
                "show_feature_comparison": True,
            }),
            ("Annual Pricing", {
                "primary_display": "annual",
                "show_monthly_equivalent": True,
                "highlighted_plan": "premium",
                "show_savings": True,
            }),
        ],
    ),
    "ai_writing_assistant": _platform_test(
        "AI Writing Assistant Test",
        "Test different AI suggestion interfaces",
        PlatformFeature.AI_SUGGESTIONS,
        [
            ("Sidebar Assistant", {
                "placement": "sidebar",
                "trigger_mode": "automatic",
                "suggestion_count": 3,
                "show_confidence": True,
            }),
            ("Inline Assistant", {
                "placement": "inline",
                "trigger_mode": "manual",
                "suggestion_count": 5,
                "show_alternatives": True,
            }),
        ],
    ),
    "signup_experience": _platform_test(
        "Signup Flow Test",
        "Test different signup processes",
        PlatformFeature.SIGNUP_FLOW,
        [
            ("Simple Signup", {
                "steps": ["email", "password"],
                "require_email_verification": False,
                "show_social_signup": True,
                "welcome_flow": "skip",
            }),
            ("Detailed Signup", {
                "steps": ["email", "password", "profile", "preferences"],
                "require_email_verification": True,
                "show_social_signup": False,
                "welcome_flow": "guided",
            }),
        ],
    ),
    "watermark_strategy": _platform_test(
        "Watermark Strategy Test",
        "Test different watermark approaches",
        PlatformFeature.WATERMARKS,
        [
            ("Subtle Watermark", {
                "watermark": {
                    "enabled": True,
                    "style": "subtle",
                    "message": "Created with OttoWrite",
                    "position": "bottom-right",
                    "opacity": 0.6,
                },
            }),
            ("Prominent Watermark", {
                "watermark": {
                    "enabled": True,
                    "style": "prominent",
                    "message": "Upgrade to Premium - Remove Watermarks",
                    "position": "bottom-center",
                    "opacity": 0.9,
                },
            }),
        ],
    ),
    "gamification": _platform_test(
        "Gamification Test",
        "Test gamification elements",
        PlatformFeature.GAMIFICATION,
        [
            ("No Gamification", {"enabled": False}),
            ("Achievement System", {
                "enabled": True,
                "show_progress": True,
                "show_badges": True,
                "show_leaderboard": False,
                "achievements": ["first_document", "power_user", "premium_upgrade"],
            }),
            ("Full Gamification", {
                "enabled": True,
                "show_progress": True,
                "show_badges": True,
                "show_leaderboard": True,
                "show_streaks": True,
                "show_points": True,
                "achievements": [
                    "first_document",
                    "power_user",
                    "premium_upgrade",
                    "collaboration_master",
                ],
            }),
        ],
    ),
}


def get_template(key: str) -> ExperimentTemplate:
    try:
        return EXPERIMENT_TEMPLATES[key]
    except KeyError:
        raise InvalidExperimentConfig(
            f"Unknown experiment template '{key}'. "
            f"Known templates: {', '.join(sorted(EXPERIMENT_TEMPLATES))}"
        ) from None
