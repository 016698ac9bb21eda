"""
Permission validation.

Mirrors the server's row-level security so that pages only offer actions the
platform will accept. Decisions are made by evaluating ``flipflow.policies``;
this module adds the user-facing reasons and suggested actions.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flipflow.models import Flipbook
from flipflow.policies import PDF_BUCKET, evaluate, policies_for
from flipflow.utils.messages import (
    PERMISSION_DENIED, PERMISSION_NOT_OWNER, PERMISSION_ROLE, PERMISSION_SIGN_IN,
)

logger = logging.getLogger(__name__)


class ResourceType(str, Enum):
    FLIPBOOK = 'flipbook'
    PROFILE = 'profile'
    FLIPBOOK_VIEW = 'flipbook_view'
    USER_ROLE = 'user_role'
    STORAGE_OBJECT = 'storage_object'


TABLES = {
    ResourceType.FLIPBOOK: 'flipbooks',
    ResourceType.PROFILE: 'profiles',
    ResourceType.FLIPBOOK_VIEW: 'flipbook_views',
    ResourceType.USER_ROLE: 'user_roles',
    ResourceType.STORAGE_OBJECT: 'objects',
}

# action alias -> policy command
ACTION_COMMANDS = {
    'select': 'SELECT', 'view': 'SELECT', 'download': 'SELECT',
    'insert': 'INSERT', 'create': 'INSERT', 'upload': 'INSERT',
    'update': 'UPDATE', 'edit': 'UPDATE',
    'delete': 'DELETE', 'remove': 'DELETE',
}

ResourceAction = str


@dataclass
class PermissionContext:
    user: Any = None
    flipbook: Any = None
    target_user_id: Optional[str] = None
    roles: Tuple[str, ...] = ()
    storage_path: Optional[str] = None
    bucket: Optional[str] = None


@dataclass
class PermissionResult:
    allowed: bool
    reason: Optional[str] = None
    requires_auth: bool = False
    requires_ownership: bool = False
    requires_role: Optional[str] = None
    suggested_action: Optional[str] = None


_SIGN_IN_HINTS = {
    ResourceType.FLIPBOOK: 'Please sign in to access this flipbook',
    ResourceType.PROFILE: 'Please sign in to access profiles',
    ResourceType.USER_ROLE: 'Please sign in to access role information',
    ResourceType.STORAGE_OBJECT: 'Please sign in to upload or modify files',
}

# (resource, command) -> (reason, suggested action) when a signed-in user is refused
_OWNERSHIP_DENIALS = {
    (ResourceType.FLIPBOOK, 'SELECT'): (
        'Flipbook is private and you are not the owner', 'Contact the flipbook owner for access'),
    (ResourceType.FLIPBOOK, 'INSERT'): (
        'You can only create flipbooks for your own account', 'Create the flipbook while signed in as its owner'),
    (ResourceType.FLIPBOOK, 'UPDATE'): (
        'Only the flipbook owner can edit this flipbook', 'You can only edit flipbooks you created'),
    (ResourceType.FLIPBOOK, 'DELETE'): (
        'Only the flipbook owner can delete this flipbook', 'You can only delete flipbooks you created'),
    (ResourceType.PROFILE, 'SELECT'): (
        'You can only view your own profile', 'You can only access your own profile data'),
    (ResourceType.PROFILE, 'INSERT'): (
        'You can only create your own profile', 'Profile creation is automatic during sign-up'),
    (ResourceType.PROFILE, 'UPDATE'): (
        'You can only update your own profile', 'You can only edit your own profile'),
    (ResourceType.FLIPBOOK_VIEW, 'SELECT'): (
        'Only flipbook owners can view analytics', 'You can only view analytics for your own flipbooks'),
    (ResourceType.FLIPBOOK_VIEW, 'INSERT'): (
        'Cannot record view for private flipbook', 'Flipbook must be public or you must be the owner'),
    (ResourceType.USER_ROLE, 'SELECT'): (
        'You can only view your own roles', 'Contact an administrator for role information'),
}

# Commands with no policy at all
_FORBIDDEN = {
    ResourceType.PROFILE: ('Profile deletion is not allowed', 'Contact support to delete your account'),
    ResourceType.FLIPBOOK_VIEW: ('Only view creation and reading are allowed',
                                 'View records cannot be modified or deleted'),
}


def _user_id(user) -> Optional[str]:
    if user is None:
        return None
    if isinstance(user, str):
        return user
    if getattr(user, 'is_authenticated', True) is False:
        return None
    return getattr(user, 'id', None)


def _as_flipbook(flipbook) -> Optional[Flipbook]:
    if flipbook is None or isinstance(flipbook, Flipbook):
        return flipbook
    return Flipbook.from_row(flipbook)


class PermissionValidator:
    """Evaluates the row-level security table for a user and resource."""

    @staticmethod
    def validate_permission(resource, action: ResourceAction,
                            context: Optional[PermissionContext] = None) -> PermissionResult:
        """
        Check whether ``context.user`` may perform ``action`` on ``resource``.

        Args:
            resource: ResourceType or its string value
            action: select/insert/update/delete or an alias (view, edit, upload, ...)
            context: User, flipbook row and target ids for the check

        Returns:
            PermissionResult with denial flags and a suggested action
        """
        context = context or PermissionContext()
        try:
            resource = ResourceType(resource)
        except ValueError:
            return PermissionResult(allowed=False, reason='Unknown resource type',
                                    suggested_action='Contact support if this error persists')

        command = ACTION_COMMANDS.get(str(action).lower())
        if command is None:
            return PermissionResult(allowed=False, reason=f'Unknown {resource.value} action',
                                    suggested_action='Contact support if this error persists')

        uid = _user_id(context.user)
        role = 'authenticated' if uid else 'anon'
        subject = PermissionValidator._subject(resource, uid, context)

        candidates = policies_for(TABLES[resource], command)
        if any(evaluate(p, uid, subject, command) for p in candidates if role in p.roles):
            return PermissionResult(allowed=True)

        result = PermissionValidator._denial(resource, command, uid, subject, candidates)
        logger.debug(f"PermissionValidator: {resource.value}.{command} denied for {uid or 'anon'}: {result.reason}")
        return result

    @staticmethod
    def _subject(resource: ResourceType, uid: Optional[str], context: PermissionContext) -> PermissionContext:
        subject = PermissionContext(
            user=context.user,
            flipbook=_as_flipbook(context.flipbook),
            target_user_id=context.target_user_id,
            roles=tuple(context.roles or getattr(context.user, 'roles', None) or ()),
            storage_path=context.storage_path,
            bucket=context.bucket,
        )
        if resource is ResourceType.STORAGE_OBJECT:
            subject.bucket = subject.bucket or PDF_BUCKET
            if subject.storage_path is None and uid:
                subject.storage_path = f"{uid}/"
        return subject

    @staticmethod
    def _denial(resource, command, uid, subject, candidates) -> PermissionResult:
        if not uid:
            return PermissionResult(
                allowed=False,
                reason='Authentication required',
                requires_auth=True,
                suggested_action=_SIGN_IN_HINTS.get(resource, 'Please sign in to perform this action'),
            )

        needs_row = resource in (ResourceType.FLIPBOOK, ResourceType.FLIPBOOK_VIEW)
        if needs_row and subject.flipbook is None and not (
                resource is ResourceType.FLIPBOOK and command == 'INSERT'):
            return PermissionResult(allowed=False, reason='Flipbook not found',
                                    suggested_action='Check the link and try again')

        if not candidates:
            reason, suggestion = _FORBIDDEN.get(
                resource, ('Action not allowed', 'Contact support if this error persists'))
            return PermissionResult(allowed=False, reason=reason, suggested_action=suggestion)

        if all(p.predicate == 'admin' for p in candidates):
            return PermissionResult(
                allowed=False,
                reason='Role management requires admin privileges',
                requires_role='admin',
                suggested_action='Contact an administrator to modify roles',
            )

        reason, suggestion = _OWNERSHIP_DENIALS.get(
            (resource, command),
            ('You can only modify files in your own folder', 'Upload files to your own folder'))
        return PermissionResult(allowed=False, reason=reason, requires_ownership=True,
                                suggested_action=suggestion)

    @staticmethod
    def is_flipbook_owner(flipbook, user) -> bool:
        flipbook = _as_flipbook(flipbook)
        uid = _user_id(user)
        return bool(flipbook and uid and flipbook.user_id == uid)

    @staticmethod
    def is_flipbook_public(flipbook) -> bool:
        flipbook = _as_flipbook(flipbook)
        return bool(flipbook and flipbook.is_public)

    @staticmethod
    def has_admin_role(roles: Iterable[str]) -> bool:
        return 'admin' in (roles or ())

    @staticmethod
    def get_permission_error_message(result: PermissionResult):
        if result.allowed:
            return ''
        if result.requires_auth:
            return PERMISSION_SIGN_IN
        if result.requires_ownership:
            return PERMISSION_NOT_OWNER
        if result.requires_role:
            return PERMISSION_ROLE % {'role': result.requires_role}
        return result.reason or PERMISSION_DENIED

    @staticmethod
    def validate_multiple_permissions(checks: List[Dict[str, Any]]) -> Dict[str, PermissionResult]:
        results = {}
        for index, check in enumerate(checks):
            resource = ResourceType(check['resource']).value
            key = f"{resource}_{check['action']}_{index}"
            results[key] = PermissionValidator.validate_permission(
                resource, check['action'], check.get('context'))
        return results


def can_view_flipbook(flipbook, user) -> bool:
    return PermissionValidator.validate_permission(
        ResourceType.FLIPBOOK, 'view', PermissionContext(user=user, flipbook=flipbook)).allowed


def can_edit_flipbook(flipbook, user) -> bool:
    return PermissionValidator.validate_permission(
        ResourceType.FLIPBOOK, 'edit', PermissionContext(user=user, flipbook=flipbook)).allowed


def can_delete_flipbook(flipbook, user) -> bool:
    return PermissionValidator.validate_permission(
        ResourceType.FLIPBOOK, 'delete', PermissionContext(user=user, flipbook=flipbook)).allowed


def can_view_analytics(flipbook, user) -> bool:
    return PermissionValidator.validate_permission(
        ResourceType.FLIPBOOK_VIEW, 'view', PermissionContext(user=user, flipbook=flipbook)).allowed


def can_upload_files(user, bucket: str = PDF_BUCKET) -> bool:
    return PermissionValidator.validate_permission(
        ResourceType.STORAGE_OBJECT, 'upload', PermissionContext(user=user, bucket=bucket)).allowed


def flipbook_permissions(flipbook, user) -> Dict[str, bool]:
    """Summary of what ``user`` may do with ``flipbook``, for templates."""
    return {
        'can_view': can_view_flipbook(flipbook, user),
        'can_edit': can_edit_flipbook(flipbook, user),
        'can_delete': can_delete_flipbook(flipbook, user),
        'can_view_analytics': can_view_analytics(flipbook, user),
        'is_owner': PermissionValidator.is_flipbook_owner(flipbook, user),
        'is_public': PermissionValidator.is_flipbook_public(flipbook),
    }
