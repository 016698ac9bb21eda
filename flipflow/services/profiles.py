"""Profile lookups and plan changes."""

import logging
from typing import Optional

from flipflow.errors import NotFoundError
from flipflow.models import Profile
from flipflow.plans import PlanType, normalize_plan
from flipflow.services import query_keys
from flipflow.services.query_client import QUERY_OPTIONS

logger = logging.getLogger(__name__)


class ProfileService:

    def __init__(self, platform, queries):
        self.platform = platform
        self.queries = queries

    def get_profile(self, user_id: str, token: Optional[str] = None) -> Optional[Profile]:
        """Cached profile row, or None when the user has no profile yet."""
        def _load():
            try:
                return Profile.from_row(self.platform.select_one('profiles', {'id': user_id}, token=token))
            except NotFoundError:
                logger.info(f"ProfileService: No profile for {user_id}")
                return None

        return self.queries.fetch_query(query_keys.user_profile(user_id), _load, QUERY_OPTIONS['profile'])

    def get_plan(self, user_id: str, token: Optional[str] = None) -> PlanType:
        profile = self.get_profile(user_id, token=token)
        return profile.effective_plan if profile else PlanType.FREE

    def set_plan(self, user_id: str, plan, token: Optional[str] = None) -> Optional[Profile]:
        plan = normalize_plan(plan)
        rows = self.platform.update('profiles', {'id': user_id}, {'plan': plan.value}, token=token)
        for key in query_keys.profile_invalidation_keys(user_id):
            self.queries.invalidate_queries(key)
        logger.info(f"ProfileService: Plan for {user_id} set to {plan.value}")
        return Profile.from_row(rows[0]) if rows else None
