"""
Flipbook service.

Reads go through the query cache; writes run as optimistic mutations that
update the cached list and detail entries immediately and restore the
pre-mutation snapshot when the platform rejects the change.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from flask import url_for

from flipflow.errors import PermissionDeniedError, PlanLimitError, ValidationError
from flipflow.models import Flipbook
from flipflow.policies import PDF_BUCKET
from flipflow.services import query_keys
from flipflow.services.permissions import (
    PermissionContext, PermissionValidator, ResourceType,
)
from flipflow.services.plan_manager import PlanAction, PlanContext, PlanManager
from flipflow.services.query_client import QUERY_OPTIONS

logger = logging.getLogger(__name__)

TABLE = 'flipbooks'
CREATE_FIELDS = ('id',) + Flipbook.EDITABLE + ('pdf_url',)


def _token(user) -> Optional[str]:
    return getattr(user, 'access_token', None)


def _clean(values: Dict[str, Any], allowed) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if k in allowed}


class FlipbookService:

    def __init__(self, platform, queries, storage, profiles=None):
        self.platform = platform
        self.queries = queries
        self.storage = storage
        self.profiles = profiles

    # Reads

    def list_for_user(self, user_id: str, token: Optional[str] = None) -> List[Flipbook]:
        def _load():
            rows = self.platform.select(TABLE, {'user_id': user_id}, token=token, order='created_at.desc')
            return [Flipbook.from_row(row) for row in rows]

        return self.queries.fetch_query(query_keys.flipbooks_by_user(user_id), _load,
                                        QUERY_OPTIONS['user_flipbooks'])

    def get(self, flipbook_id: str, token: Optional[str] = None) -> Flipbook:
        """Fetch one flipbook; raises NotFoundError when missing or not visible."""
        return self.queries.fetch_query(
            query_keys.flipbook_detail(flipbook_id),
            lambda: Flipbook.from_row(self.platform.select_one(TABLE, {'id': flipbook_id}, token=token)),
            QUERY_OPTIONS['flipbooks'])

    def list_public(self) -> List[Flipbook]:
        def _load():
            rows = self.platform.select(TABLE, {'is_public': True}, order='created_at.desc')
            return [Flipbook.from_row(row) for row in rows]

        return self.queries.fetch_query(query_keys.public_flipbooks(), _load, QUERY_OPTIONS['flipbooks'])

    # Guards

    def plan_context(self, user) -> PlanContext:
        profile = self.profiles.get_profile(user.id, token=_token(user)) if self.profiles else None
        count = len([f for f in self.list_for_user(user.id, token=_token(user)) if not f.pending])
        return PlanContext(current_flipbook_count=count, user_id=user.id, profile=profile)

    def check_can_create(self, user, plan_context: Optional[PlanContext] = None) -> PlanContext:
        plan_context = plan_context or self.plan_context(user)
        validation = PlanManager.validate_action(PlanAction.CREATE_FLIPBOOK, plan_context)
        if not validation.allowed:
            logger.info(f"FlipbookService: create refused for {user.id}: {validation.reason}")
            raise PlanLimitError(validation.reason, validation=validation)

        permission = PermissionValidator.validate_permission(
            ResourceType.FLIPBOOK, 'create', PermissionContext(user=user))
        if not permission.allowed:
            raise PermissionDeniedError(permission.reason, result=permission)
        return plan_context

    @staticmethod
    def _require(action: str, flipbook: Flipbook, user):
        permission = PermissionValidator.validate_permission(
            ResourceType.FLIPBOOK, action, PermissionContext(user=user, flipbook=flipbook))
        if not permission.allowed:
            raise PermissionDeniedError(permission.reason, result=permission)

    # Writes

    def create(self, user, draft: Dict[str, Any], plan_context: Optional[PlanContext] = None) -> Flipbook:
        """
        Create a flipbook for ``user``.

        A pending placeholder is put at the head of the user's cached list
        while the insert runs and is replaced by the stored row on success.

        Raises:
            PlanLimitError: plan does not allow another flipbook
            PermissionDeniedError: user may not create flipbooks
        """
        self.check_can_create(user, plan_context)

        list_key = query_keys.flipbooks_by_user(user.id)
        options = QUERY_OPTIONS['user_flipbooks']
        row = _clean(draft, CREATE_FIELDS)
        row['user_id'] = user.id

        def on_mutate(_):
            snapshot = self.queries.get_query_data(list_key)
            placeholder = Flipbook.pending_draft(user.id, row)
            self.queries.set_query_data(list_key, [placeholder] + list(snapshot or []), options)
            return {'snapshot': snapshot, 'temp_id': placeholder.id}

        def on_error(error, _, context):
            if context['snapshot'] is None:
                self.queries.remove_queries(list_key)
            else:
                self.queries.set_query_data(list_key, context['snapshot'], options)

        def on_success(created, _, context):
            self.queries.set_query_data(
                list_key,
                lambda current: [created if f.id == context['temp_id'] else f for f in (current or [])],
                options)
            self.queries.set_query_data(query_keys.flipbook_detail(created.id), created,
                                        QUERY_OPTIONS['flipbooks'])

        created = self.queries.mutate(
            lambda _: Flipbook.from_row(self.platform.insert(TABLE, row, token=_token(user))),
            on_mutate=on_mutate, on_error=on_error, on_success=on_success,
            on_settled=lambda *args: self._invalidate_lists(user.id))
        logger.info(f"FlipbookService: Created flipbook {created.id} for {user.id}")
        return created

    def create_from_upload(self, user, upload, draft: Dict[str, Any]) -> Flipbook:
        """Validate and store the PDF, then create the flipbook row for it."""
        validation = self.storage.validate_pdf_file(upload)
        if not validation.is_valid:
            raise ValidationError(validation.error)

        plan_context = self.check_can_create(user)

        flipbook_id = str(uuid.uuid4())
        pdf_url = self.storage.upload_pdf(upload, user.id, flipbook_id, token=_token(user))
        try:
            return self.create(user, dict(draft, id=flipbook_id, pdf_url=pdf_url), plan_context)
        except Exception:
            self._remove_pdf(pdf_url, user)
            raise

    def update(self, user, flipbook_id: str, updates: Dict[str, Any]) -> Flipbook:
        updates = _clean(updates, Flipbook.EDITABLE)
        current = self.get(flipbook_id, token=_token(user))
        self._require('edit', current, user)

        detail_key = query_keys.flipbook_detail(flipbook_id)
        list_key = query_keys.flipbooks_by_user(current.user_id)

        def on_mutate(_):
            snapshot = {'detail': self.queries.get_query_data(detail_key),
                        'list': self.queries.get_query_data(list_key)}
            if snapshot['detail'] is not None:
                self.queries.set_query_data(detail_key, snapshot['detail'].merged(updates),
                                            QUERY_OPTIONS['flipbooks'])
            if snapshot['list'] is not None:
                self.queries.set_query_data(
                    list_key,
                    [f.merged(updates) if f.id == flipbook_id else f for f in snapshot['list']],
                    QUERY_OPTIONS['user_flipbooks'])
            return snapshot

        def on_error(error, _, snapshot):
            self._restore(detail_key, snapshot['detail'], QUERY_OPTIONS['flipbooks'])
            self._restore(list_key, snapshot['list'], QUERY_OPTIONS['user_flipbooks'])

        def on_success(updated, _, snapshot):
            self.queries.set_query_data(detail_key, updated, QUERY_OPTIONS['flipbooks'])

        def on_settled(*args):
            self.queries.invalidate_queries(detail_key)
            self._invalidate_lists(current.user_id)

        def _update(_):
            rows = self.platform.update(TABLE, {'id': flipbook_id}, updates, token=_token(user))
            return Flipbook.from_row(rows[0]) if rows else current.merged(updates)

        updated = self.queries.mutate(_update, on_mutate=on_mutate, on_error=on_error,
                                      on_success=on_success, on_settled=on_settled)
        logger.info(f"FlipbookService: Updated flipbook {flipbook_id}")
        return updated

    def delete(self, user, flipbook_id: str) -> None:
        current = self.get(flipbook_id, token=_token(user))
        self._require('delete', current, user)

        detail_key = query_keys.flipbook_detail(flipbook_id)
        list_key = query_keys.flipbooks_by_user(current.user_id)

        def on_mutate(_):
            snapshot = {'detail': self.queries.get_query_data(detail_key),
                        'list': self.queries.get_query_data(list_key)}
            if snapshot['list'] is not None:
                self.queries.set_query_data(list_key, [f for f in snapshot['list'] if f.id != flipbook_id],
                                            QUERY_OPTIONS['user_flipbooks'])
            self.queries.remove_queries(detail_key)
            return snapshot

        def on_error(error, _, snapshot):
            self._restore(detail_key, snapshot['detail'], QUERY_OPTIONS['flipbooks'])
            self._restore(list_key, snapshot['list'], QUERY_OPTIONS['user_flipbooks'])

        self.queries.mutate(
            lambda _: self.platform.delete(TABLE, {'id': flipbook_id}, token=_token(user)),
            on_mutate=on_mutate, on_error=on_error,
            on_settled=lambda *args: self._invalidate_lists(current.user_id))
        self.queries.remove_queries(query_keys.flipbook_pages(flipbook_id))
        logger.info(f"FlipbookService: Deleted flipbook {flipbook_id}")

        self._remove_pdf(current.pdf_url, user)

    def share_url(self, flipbook_id: str, base_url: Optional[str] = None) -> str:
        if base_url:
            return f"{base_url.rstrip('/')}/flipbook/{flipbook_id}"
        return url_for('flipbooks.view', flipbook_id=flipbook_id, _external=True)

    # Helpers

    def _restore(self, key, snapshot, options):
        if snapshot is None:
            self.queries.remove_queries(key)
        else:
            self.queries.set_query_data(key, snapshot, options)

    def _invalidate_lists(self, user_id: str):
        for key in query_keys.flipbook_invalidation_keys(user_id):
            self.queries.invalidate_queries(key)

    def _remove_pdf(self, pdf_url: str, user):
        path = self.storage.path_from_url(pdf_url, PDF_BUCKET)
        if not path:
            return
        try:
            self.storage.delete_file(PDF_BUCKET, path, token=_token(user))
        except Exception as e:
            logger.warning(f"FlipbookService: Could not remove stored PDF {path}: {e}")
