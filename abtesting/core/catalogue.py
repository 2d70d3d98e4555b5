import enum


class ConversionGoal(str, enum.Enum):
    """Event types the product reports and experiments convert on."""

    UPGRADE_TO_PREMIUM = "upgrade_to_premium"
    UPGRADE_TO_ENTERPRISE = "upgrade_to_enterprise"
    SUBSCRIPTION_RENEWAL = "subscription_renewal"
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_EXPORTED = "document_exported"
    AI_FEATURE_USED = "ai_feature_used"
    COLLABORATION_STARTED = "collaboration_started"
    DAILY_ACTIVE_USER = "daily_active_user"
    WEEKLY_RETURN = "weekly_return"
    FEATURE_ADOPTION = "feature_adoption"
    TEMPLATE_USED = "template_used"
    TUTORIAL_COMPLETED = "tutorial_completed"
    REFERRAL_SENT = "referral_sent"
    SUPPORT_CONTACTED = "support_contacted"


class PlatformFeature(str, enum.Enum):
    """Feature tags the platform experiments on."""

    # Layout
    NAVBAR_DESIGN = "navbar_design"
    SIDEBAR_LAYOUT = "sidebar_layout"
    THEME_COLORS = "theme_colors"
    BUTTON_STYLES = "button_styles"
    EDITOR_LAYOUT = "editor_layout"
    # Pricing
    PRICING_DISPLAY = "pricing_display"
    FREE_TRIAL_LENGTH = "free_trial_length"
    UPGRADE_PROMPTS = "upgrade_prompts"
    PAYMENT_FLOW = "payment_flow"
    # AI
    AI_SUGGESTIONS = "ai_suggestions"
    AI_WRITING_TOOLS = "ai_writing_tools"
    AI_ANALYSIS = "ai_analysis"
    AI_PROMPTS = "ai_prompts"
    # Onboarding
    SIGNUP_FLOW = "signup_flow"
    TUTORIAL_STEPS = "tutorial_steps"
    WELCOME_EXPERIENCE = "welcome_experience"
    # Content
    WATERMARKS = "watermarks"
    EXPORT_OPTIONS = "export_options"
    COLLABORATION = "collaboration"
    TEMPLATES = "templates"
    # Engagement
    NOTIFICATIONS = "notifications"
    GAMIFICATION = "gamification"
    SOCIAL_FEATURES = "social_features"
    ACHIEVEMENT_SYSTEM = "achievement_system"
