"""
Plan manager - single place for plan validation, limit enforcement and
upgrade messaging.

Pure functions over (action, plan, usage count); no I/O. The plan is always
resolved security-first: a missing profile or an unknown plan value is
treated as the free tier.

Usage:
    result = PlanManager.validate_action('create_flipbook', context)
    if not result.allowed:
        prompt = PlanManager.get_upgrade_prompt(PlanType.FREE, 'create_flipbook')
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from flipflow.plans import (
    PlanType, can_create_flipbook, get_plan_config, get_remaining_flipbooks, normalize_plan,
)

logger = logging.getLogger(__name__)


class PlanAction(str, Enum):
    CREATE_FLIPBOOK = 'create_flipbook'
    UPDATE_FLIPBOOK = 'update_flipbook'
    DELETE_FLIPBOOK = 'delete_flipbook'
    ACCESS_ANALYTICS = 'access_analytics'
    EXPORT_FLIPBOOK = 'export_flipbook'
    CUSTOM_BRANDING = 'custom_branding'
    SHARE_FLIPBOOK = 'share_flipbook'
    PUBLISH_FLIPBOOK = 'publish_flipbook'
    ADVANCED_FEATURES = 'advanced_features'


PREMIUM_ACTIONS = frozenset({
    PlanAction.ACCESS_ANALYTICS,
    PlanAction.EXPORT_FLIPBOOK,
    PlanAction.CUSTOM_BRANDING,
    PlanAction.ADVANCED_FEATURES,
})

ALWAYS_ALLOWED = frozenset({
    PlanAction.UPDATE_FLIPBOOK,
    PlanAction.DELETE_FLIPBOOK,
    PlanAction.SHARE_FLIPBOOK,
    PlanAction.PUBLISH_FLIPBOOK,
})


@dataclass
class ValidationResult:
    allowed: bool
    upgrade_required: bool = False
    reason: Optional[str] = None
    current_usage: Optional[int] = None
    limit: Optional[int] = None
    remaining: Optional[int] = None


@dataclass
class UpgradePrompt:
    title: str
    message: str
    action_text: str
    variant: str  # info | warning | destructive
    show_usage: bool


@dataclass
class PlanContext:
    current_flipbook_count: int = 0
    user_id: Optional[str] = None
    # Anything with a ``plan`` attribute or key (Profile, row dict) or None
    profile: Any = None


_PREMIUM_MESSAGES = {
    PlanAction.ACCESS_ANALYTICS: (
        'Advanced analytics are available with Premium. Get detailed insights into '
        'your flipbook performance and reader engagement.'),
    PlanAction.EXPORT_FLIPBOOK: (
        'Export your flipbooks in multiple formats with Premium. Download as PDF, '
        'images, or share with custom branding.'),
    PlanAction.CUSTOM_BRANDING: (
        'Remove FlipFlow branding and add your own logo with Premium. Create a '
        'professional, branded experience for your readers.'),
    PlanAction.ADVANCED_FEATURES: (
        'Advanced features like fullscreen mode and enhanced controls are available '
        'with Premium. Upgrade for the complete flipbook experience.'),
}


class PlanManager:
    """Validates actions against the user's plan."""

    @staticmethod
    def resolve_plan(profile: Any) -> PlanType:
        """Get the user's plan, falling back to free when unavailable or invalid."""
        if profile is None:
            return PlanType.FREE
        if isinstance(profile, dict):
            value = profile.get('plan')
        else:
            value = getattr(profile, 'plan', None)
        plan = normalize_plan(value)
        if value and plan.value != value:
            logger.warning(f"PlanManager: Unknown plan value '{value}', using free plan")
        return plan

    @staticmethod
    def validate_action(action: Union[PlanAction, str], context: PlanContext) -> ValidationResult:
        """
        Validate whether the user may perform an action on their plan.

        Args:
            action: A PlanAction or its string value
            context: Current user and usage context

        Returns:
            ValidationResult; unknown actions are denied
        """
        plan = PlanManager.resolve_plan(context.profile)

        try:
            action = PlanAction(action)
        except ValueError:
            logger.warning(f"PlanManager: Unknown action '{action}' denied")
            return ValidationResult(allowed=False, reason='Unknown action type', upgrade_required=True)

        if action is PlanAction.CREATE_FLIPBOOK:
            return PlanManager._validate_flipbook_creation(plan, context.current_flipbook_count)
        if action in PREMIUM_ACTIONS:
            return PlanManager._validate_premium_feature(plan, action)
        return ValidationResult(allowed=True)

    @staticmethod
    def enforce_limit(action: Union[PlanAction, str], context: PlanContext) -> bool:
        return PlanManager.validate_action(action, context).allowed

    @staticmethod
    def get_upgrade_prompt(plan: Union[PlanType, str], action: Union[PlanAction, str]) -> UpgradePrompt:
        config = get_plan_config(plan)
        try:
            action = PlanAction(action)
        except ValueError:
            action = None

        if action is PlanAction.CREATE_FLIPBOOK:
            return UpgradePrompt(
                title='Flipbook Limit Reached',
                message=(f"You've reached the maximum of {_format_limit(config.max_flipbooks)} flipbooks "
                         f"for the {config.display_name}. Upgrade to Premium for unlimited flipbooks "
                         f"and advanced features."),
                action_text='Upgrade to Premium',
                variant='warning',
                show_usage=True,
            )
        if action in _PREMIUM_MESSAGES:
            return UpgradePrompt(
                title='Premium Feature',
                message=_PREMIUM_MESSAGES[action],
                action_text='Upgrade to Premium',
                variant='info',
                show_usage=False,
            )
        return UpgradePrompt(
            title='Upgrade Required',
            message='This feature requires a Premium subscription. Upgrade now to unlock all features.',
            action_text='Upgrade to Premium',
            variant='info',
            show_usage=False,
        )

    @staticmethod
    def get_usage_summary(context: PlanContext) -> Dict[str, Any]:
        plan = PlanManager.resolve_plan(context.profile)
        config = get_plan_config(plan)
        remaining = get_remaining_flipbooks(plan, context.current_flipbook_count)

        return {
            'plan': plan.value,
            'plan_display_name': config.display_name,
            'current_flipbooks': context.current_flipbook_count,
            'max_flipbooks': _format_limit(config.max_flipbooks),
            'remaining_flipbooks': _format_limit(remaining),
            'is_at_limit': not can_create_flipbook(plan, context.current_flipbook_count),
            'is_premium': plan is PlanType.PREMIUM,
        }

    @staticmethod
    def _validate_flipbook_creation(plan: PlanType, current_count: int) -> ValidationResult:
        config = get_plan_config(plan)
        allowed = can_create_flipbook(plan, current_count)
        remaining = get_remaining_flipbooks(plan, current_count)
        unlimited = config.max_flipbooks == math.inf

        return ValidationResult(
            allowed=allowed,
            reason=None if allowed else (
                f"Maximum of {int(config.max_flipbooks)} flipbooks reached for {config.display_name}"),
            upgrade_required=not allowed and plan is PlanType.FREE,
            current_usage=current_count,
            limit=None if unlimited else int(config.max_flipbooks),
            remaining=None if unlimited else int(remaining),
        )

    @staticmethod
    def _validate_premium_feature(plan: PlanType, action: PlanAction) -> ValidationResult:
        is_premium = plan is PlanType.PREMIUM
        return ValidationResult(
            allowed=is_premium,
            reason=None if is_premium else f"{action.value.replace('_', ' ')} requires Premium subscription",
            upgrade_required=not is_premium,
        )


def _format_limit(value):
    return 'Unlimited' if value == math.inf else int(value)
