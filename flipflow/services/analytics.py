"""View tracking and per-flipbook / per-user statistics."""

import logging
from typing import Any, Dict, Optional

from flipflow.models import FlipbookView
from flipflow.services import query_keys
from flipflow.services.query_client import QUERY_OPTIONS

logger = logging.getLogger(__name__)

RECENT_VIEWS = 10


class AnalyticsService:

    def __init__(self, platform, queries):
        self.platform = platform
        self.queries = queries

    def track_view(self, flipbook_id: str, user_agent: Optional[str] = None,
                   token: Optional[str] = None) -> bool:
        """
        Record a view. Never raises: a failed view must not break the viewer.

        Returns:
            True if the view was recorded
        """
        try:
            self.platform.rpc('record_flipbook_view',
                              {'p_flipbook_id': flipbook_id, 'p_user_agent': user_agent}, token=token)
        except Exception as e:
            logger.debug(f"AnalyticsService: record_flipbook_view unavailable ({e}), using fallback")
            try:
                self.platform.insert('flipbook_views', {
                    'flipbook_id': flipbook_id,
                    'ip_address': None,
                    'user_agent': user_agent,
                }, token=token)
                self.platform.rpc('increment_view_count', {'flipbook_id': flipbook_id}, token=token)
            except Exception as fallback_error:
                logger.warning(f"AnalyticsService: Error tracking view for {flipbook_id}: {fallback_error}")
                return False

        self.queries.invalidate_queries(query_keys.flipbook_stats(flipbook_id))
        return True

    def get_flipbook_stats(self, flipbook_id: str, token: Optional[str] = None) -> Dict[str, Any]:
        def _load():
            rows = self.platform.select('flipbook_views', {'flipbook_id': flipbook_id}, token=token,
                                        order='viewed_at.desc')
            return [FlipbookView.from_row(row) for row in rows]

        try:
            views = self.queries.fetch_query(query_keys.flipbook_stats(flipbook_id), _load,
                                             QUERY_OPTIONS['realtime'])
        except Exception as e:
            logger.error(f"AnalyticsService: Error fetching flipbook stats: {e}")
            views = []

        return {
            'total_views': len(views),
            'recent_views': views[:RECENT_VIEWS],
            'views': views,
        }

    def get_user_stats(self, user_id: str, token: Optional[str] = None) -> Dict[str, Any]:
        def _load():
            return self.platform.select('flipbooks', {'user_id': user_id}, token=token,
                                        columns='id,title,view_count,created_at,is_public',
                                        order='created_at.desc')

        try:
            rows = self.queries.fetch_query(query_keys.user_stats(user_id), _load, QUERY_OPTIONS['realtime'])
        except Exception as e:
            logger.error(f"AnalyticsService: Error fetching user stats: {e}")
            rows = []

        return {
            'total_views': sum(row.get('view_count') or 0 for row in rows),
            'total_flipbooks': len(rows),
            'public_flipbooks': len([row for row in rows if row.get('is_public')]),
            'flipbooks': rows,
        }
