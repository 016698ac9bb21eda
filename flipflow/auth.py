"""
Session user backed by the platform's auth API.

There is no local user table: after sign-in the access token and the user's
id/email are kept in the signed session cookie and turned back into a
``SessionUser`` on each request.
"""

from typing import Any, Dict, Optional, Tuple

from flask import session
from flask_login import UserMixin

SESSION_KEY = 'auth'


class SessionUser(UserMixin):

    def __init__(self, id: str, email: str, access_token: Optional[str] = None,
                 refresh_token: Optional[str] = None, roles: Tuple[str, ...] = ()):
        self.id = id
        self.email = email
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.roles = tuple(roles)

    @classmethod
    def from_auth_response(cls, data: Dict[str, Any]) -> 'SessionUser':
        """Build from a token/sign-up response: ``{access_token, user: {id, email, ...}}``."""
        user = data.get('user') or data
        roles = (user.get('app_metadata') or {}).get('roles') or ()
        return cls(id=user['id'], email=user.get('email', ''),
                   access_token=data.get('access_token'),
                   refresh_token=data.get('refresh_token'),
                   roles=tuple(roles))

    def to_session(self) -> Dict[str, Any]:
        return {'id': self.id, 'email': self.email, 'access_token': self.access_token,
                'refresh_token': self.refresh_token, 'roles': list(self.roles)}

    def get_id(self):
        return self.id

    def __repr__(self):
        return f'<SessionUser {self.email}>'


def remember_user(user: SessionUser):
    session[SESSION_KEY] = user.to_session()


def forget_user():
    session.pop(SESSION_KEY, None)


def load_session_user(user_id) -> Optional[SessionUser]:
    data = session.get(SESSION_KEY)
    if not data or data.get('id') != user_id:
        return None
    return SessionUser(id=data['id'], email=data.get('email', ''),
                       access_token=data.get('access_token'),
                       refresh_token=data.get('refresh_token'),
                       roles=tuple(data.get('roles') or ()))
