import uuid
from datetime import datetime, timedelta, timezone

import fitz
import pytest

from flipflow import create_app
from flipflow.auth import SessionUser
from flipflow.config import Config
from flipflow.errors import AuthError, NotFoundError, ValidationError

PLATFORM_URL = 'http://platform.test'


def make_config(**overrides):
    values = dict(
        SECRET_KEY='test-secret',
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SUPABASE_URL=PLATFORM_URL,
        SUPABASE_ANON_KEY='anon-key',
        RAZORPAY_KEY_ID='rzp_test_key',
        RAZORPAY_KEY_SECRET='rzp_test_secret',
        RETRY_BASE_DELAY=0.0,
        RETRY_JITTER=0.0,
        LOG_LEVEL='WARNING',
    )
    values.update(overrides)
    return Config(**values)


def make_pdf(pages=2, width=200, height=300, title=None, **save_options):
    """Build a small PDF in memory with PyMuPDF."""
    doc = fitz.open()
    for number in range(pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text((20, 50), f'Page {number + 1}')
    if title:
        doc.set_metadata({'title': title})
    data = doc.tobytes(**save_options)
    doc.close()
    return data


def _matches(row, filters):
    return all(row.get(column) == value for column, value in (filters or {}).items())


class FakePlatform:
    """In-memory stand-in for PlatformClient: tables, users and storage objects."""

    base_url = PLATFORM_URL

    def __init__(self):
        self.tables = {'flipbooks': [], 'profiles': [], 'flipbook_views': [], 'user_roles': []}
        self.objects = {}
        self.users = {}
        self.calls = []
        self.failures = {}
        self.hooks = {}
        self._seq = 0

    def fail(self, method, *errors):
        """Raise ``errors`` from the next calls to ``method``, one per call."""
        self.failures.setdefault(method, []).extend(errors)

    def _call(self, method, *args):
        self.calls.append((method,) + args)
        if method in self.hooks:
            self.hooks[method]()
        pending = self.failures.get(method)
        if pending:
            raise pending.pop(0)

    def called(self, method):
        return [call for call in self.calls if call[0] == method]

    def _timestamp(self):
        self._seq += 1
        return (datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=self._seq)).isoformat()

    # Seeding helpers

    def create_user(self, email, password='password123', plan='free', roles=()):
        user_id = str(uuid.uuid4())
        self.users[email] = {'id': user_id, 'email': email, 'password': password, 'roles': list(roles)}
        self.tables['profiles'].append({'id': user_id, 'email': email, 'full_name': None, 'plan': plan})
        return SessionUser(id=user_id, email=email, access_token=f'token-{user_id}', roles=roles)

    def add_flipbook(self, user, **values):
        flipbook_id = values.pop('id', None) or str(uuid.uuid4())
        path = f'{user.id}/{flipbook_id}.pdf'
        self.objects[('flipbook-pdfs', path)] = b'%PDF-1.4'
        row = {
            'id': flipbook_id,
            'user_id': user.id,
            'title': 'Annual Report',
            'description': None,
            'pdf_url': self.public_url('flipbook-pdfs', path),
            'is_public': True,
            'view_count': 0,
            'created_at': self._timestamp(),
        }
        row.update(values)
        self.tables['flipbooks'].append(row)
        return dict(row)

    # Database

    def select(self, table, filters=None, token=None, columns='*', order=None, limit=None):
        self._call('select', table, filters)
        rows = [dict(row) for row in self.tables[table] if _matches(row, filters)]
        if order:
            column, _, direction = order.partition('.')
            rows.sort(key=lambda row: row.get(column) or '', reverse=direction == 'desc')
        return rows[:limit] if limit is not None else rows

    def select_one(self, table, filters, token=None, columns='*'):
        self._call('select_one', table, filters)
        rows = [dict(row) for row in self.tables[table] if _matches(row, filters)]
        if len(rows) != 1:
            raise NotFoundError('JSON object requested, multiple (or no) rows returned',
                                details={'status': 406, 'code': 'PGRST116'})
        return rows[0]

    def insert(self, table, row, token=None):
        self._call('insert', table, row)
        row = dict(row)
        row.setdefault('id', str(uuid.uuid4()))
        row.setdefault('created_at', self._timestamp())
        if table == 'flipbook_views':
            row.setdefault('viewed_at', row['created_at'])
        self.tables[table].append(row)
        return dict(row)

    def update(self, table, filters, values, token=None):
        self._call('update', table, filters, values)
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(values)
                updated.append(dict(row))
        return updated

    def delete(self, table, filters, token=None):
        self._call('delete', table, filters)
        self.tables[table] = [row for row in self.tables[table] if not _matches(row, filters)]

    def rpc(self, function, params=None, token=None):
        self._call('rpc', function, params)
        params = params or {}
        if function == 'record_flipbook_view':
            self.tables['flipbook_views'].append({
                'id': str(uuid.uuid4()),
                'flipbook_id': params['p_flipbook_id'],
                'user_agent': params.get('p_user_agent'),
                'viewed_at': self._timestamp(),
            })
            self._increment(params['p_flipbook_id'])
        elif function == 'increment_view_count':
            self._increment(params['flipbook_id'])
        return None

    def _increment(self, flipbook_id):
        for row in self.tables['flipbooks']:
            if row['id'] == flipbook_id:
                row['view_count'] = (row.get('view_count') or 0) + 1

    # Auth

    def _session(self, user):
        return {
            'access_token': f"token-{user['id']}",
            'refresh_token': f"refresh-{user['id']}",
            'user': {'id': user['id'], 'email': user['email'], 'app_metadata': {'roles': user['roles']}},
        }

    def sign_in(self, email, password):
        self._call('sign_in', email)
        user = self.users.get(email)
        if user is None or user['password'] != password:
            raise AuthError('Invalid login credentials', details={'status': 400})
        return self._session(user)

    def sign_up(self, email, password, metadata=None):
        self._call('sign_up', email)
        if email in self.users:
            raise ValidationError('User already registered')
        self.create_user(email, password)
        return self._session(self.users[email])

    def sign_out(self, token):
        self._call('sign_out', token)

    def get_user(self, token):
        self._call('get_user', token)
        for user in self.users.values():
            if token == f"token-{user['id']}":
                return {'id': user['id'], 'email': user['email']}
        raise AuthError('invalid JWT')

    # Storage

    def upload(self, bucket, path, data, content_type, token=None, upsert=False):
        self._call('upload', bucket, path)
        self.objects[(bucket, path)] = data
        return {'Key': f'{bucket}/{path}'}

    def remove(self, bucket, paths, token=None):
        paths = list(paths)
        self._call('remove', bucket, paths)
        for path in paths:
            self.objects.pop((bucket, path), None)
        return []

    def create_signed_url(self, bucket, path, expires_in, token=None):
        self._call('create_signed_url', bucket, path, expires_in)
        return f'{self.base_url}/storage/v1/object/sign/{bucket}/{path}?token=signed'

    def public_url(self, bucket, path):
        return f'{self.base_url}/storage/v1/object/public/{bucket}/{path}'


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def app(platform):
    """Create and configure a test app backed by the in-memory platform."""
    app = create_app(make_config(), platform_client=platform)
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands."""
    return app.test_cli_runner()


@pytest.fixture
def services(app):
    return app.extensions['flipflow']


def sign_in(client, user):
    """Put ``user`` in the session the way the login view does."""
    with client.session_transaction() as sess:
        sess['auth'] = user.to_session()
        sess['_user_id'] = user.id
        sess['_fresh'] = True


@pytest.fixture
def owner(platform):
    return platform.create_user('owner@flipflow.io')


@pytest.fixture
def other_user(platform):
    return platform.create_user('reader@flipflow.io')


@pytest.fixture
def premium_user(platform):
    return platform.create_user('premium@flipflow.io', plan='premium')
