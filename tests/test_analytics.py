import pytest

from conftest import FakePlatform
from flipflow.auth import SessionUser
from flipflow.errors import ServerError
from flipflow.services import query_keys
from flipflow.services.analytics import AnalyticsService
from flipflow.services.profiles import ProfileService
from flipflow.services.query_client import QueryClient


@pytest.fixture
def fake():
    return FakePlatform()


@pytest.fixture
def queries():
    return QueryClient(sleep=lambda s: None)


@pytest.fixture
def analytics(fake, queries):
    return AnalyticsService(fake, queries)


@pytest.fixture
def owner(fake):
    return fake.create_user('owner@flipflow.io')


def test_track_view_uses_record_function(analytics, fake, owner):
    flipbook = fake.add_flipbook(owner)
    assert analytics.track_view(flipbook['id'], 'Mozilla/5.0')
    assert fake.called('rpc')[0][1] == 'record_flipbook_view'
    assert fake.tables['flipbooks'][0]['view_count'] == 1
    assert fake.tables['flipbook_views'][0]['user_agent'] == 'Mozilla/5.0'


def test_track_view_falls_back_to_insert_and_increment(analytics, fake, owner):
    flipbook = fake.add_flipbook(owner)
    fake.fail('rpc', ServerError('function record_flipbook_view does not exist'))

    assert analytics.track_view(flipbook['id'], 'curl/8')
    assert [call[1] for call in fake.called('rpc')] == ['record_flipbook_view', 'increment_view_count']
    assert len(fake.tables['flipbook_views']) == 1
    assert fake.tables['flipbooks'][0]['view_count'] == 1


def test_track_view_never_raises(analytics, fake, owner):
    flipbook = fake.add_flipbook(owner)
    fake.fail('rpc', ServerError('down'))
    fake.fail('insert', ServerError('down'))
    assert analytics.track_view(flipbook['id']) is False


def test_track_view_invalidates_stats(analytics, queries, fake, owner):
    flipbook = fake.add_flipbook(owner)
    analytics.get_flipbook_stats(flipbook['id'])
    analytics.track_view(flipbook['id'])
    assert queries.is_stale(query_keys.flipbook_stats(flipbook['id']))
    assert analytics.get_flipbook_stats(flipbook['id'])['total_views'] == 1


def test_flipbook_stats(analytics, fake, owner):
    flipbook = fake.add_flipbook(owner)
    for n in range(12):
        fake.rpc('record_flipbook_view', {'p_flipbook_id': flipbook['id'], 'p_user_agent': f'agent {n}'})

    stats = analytics.get_flipbook_stats(flipbook['id'])
    assert stats['total_views'] == 12
    assert len(stats['recent_views']) == 10
    assert stats['recent_views'][0].user_agent == 'agent 11'


def test_stats_errors_return_zeros(analytics, fake):
    fake.fail('select', *[ServerError('down')] * 3)
    assert analytics.get_flipbook_stats('fb-x')['total_views'] == 0
    fake.fail('select', *[ServerError('down')] * 3)
    assert analytics.get_user_stats('u-x') == {'total_views': 0, 'total_flipbooks': 0,
                                               'public_flipbooks': 0, 'flipbooks': []}


def test_user_stats(analytics, fake, owner):
    fake.add_flipbook(owner, view_count=5)
    fake.add_flipbook(owner, view_count=7, is_public=False)
    stats = analytics.get_user_stats(owner.id)
    assert stats['total_views'] == 12
    assert stats['total_flipbooks'] == 2
    assert stats['public_flipbooks'] == 1


def test_profile_plan_lookup_and_upgrade(fake, queries, owner):
    profiles = ProfileService(fake, queries)
    assert profiles.get_plan(owner.id).value == 'free'

    updated = profiles.set_plan(owner.id, 'premium')
    assert updated.plan == 'premium'
    assert queries.is_stale(query_keys.user_profile(owner.id))
    assert profiles.get_plan(owner.id).value == 'premium'


def test_missing_profile_is_free(fake, queries):
    profiles = ProfileService(fake, queries)
    stranger = SessionUser(id='no-profile', email='x@flipflow.io')
    assert profiles.get_profile(stranger.id) is None
    assert profiles.get_plan(stranger.id).value == 'free'
