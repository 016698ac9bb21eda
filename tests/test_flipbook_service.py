import io

import pytest
from werkzeug.datastructures import FileStorage

from conftest import FakePlatform
from flipflow.errors import PermissionDeniedError, PlanLimitError, ServerError, ValidationError
from flipflow.policies import PDF_BUCKET
from flipflow.services import query_keys
from flipflow.services.flipbooks import FlipbookService
from flipflow.services.profiles import ProfileService
from flipflow.services.query_client import QueryClient, QueryOptions
from flipflow.services.storage import StorageService


@pytest.fixture
def fake():
    return FakePlatform()


@pytest.fixture
def queries():
    return QueryClient(sleep=lambda s: None)


@pytest.fixture
def flipbooks(fake, queries):
    storage = StorageService(fake, sleep=lambda s: None)
    return FlipbookService(fake, queries, storage, ProfileService(fake, queries))


@pytest.fixture
def owner(fake):
    return fake.create_user('owner@flipflow.io')


@pytest.fixture
def reader(fake):
    return fake.create_user('reader@flipflow.io')


def pdf_upload(data=b'%PDF-1.4\n', content_type='application/pdf'):
    return FileStorage(stream=io.BytesIO(data), filename='brochure.pdf', content_type=content_type)


def cached_list(queries, user):
    return queries.get_query_data(query_keys.flipbooks_by_user(user.id))


def test_reads_are_cached(flipbooks, fake, owner):
    row = fake.add_flipbook(owner)
    assert [f.id for f in flipbooks.list_for_user(owner.id)] == [row['id']]
    assert flipbooks.get(row['id']).title == 'Annual Report'

    flipbooks.list_for_user(owner.id)
    flipbooks.get(row['id'])
    assert len(fake.called('select')) == 1
    assert len(fake.called('select_one')) == 1


def test_list_public(flipbooks, fake, owner):
    public = fake.add_flipbook(owner, title='Public')
    fake.add_flipbook(owner, title='Private', is_public=False)
    assert [f.id for f in flipbooks.list_public()] == [public['id']]


def test_plan_context_counts_flipbooks(flipbooks, fake, owner):
    fake.add_flipbook(owner)
    fake.add_flipbook(owner)
    context = flipbooks.plan_context(owner)
    assert context.current_flipbook_count == 2
    assert context.profile.plan == 'free'


def test_create_replaces_placeholder_with_stored_row(flipbooks, queries, fake, owner):
    existing = fake.add_flipbook(owner)
    flipbooks.list_for_user(owner.id)

    created = flipbooks.create(owner, {'title': 'Menu', 'pdf_url': 'http://x/a.pdf', 'user_id': 'someone-else'})

    assert created.user_id == owner.id
    assert not created.pending
    assert [f.id for f in cached_list(queries, owner)] == [created.id, existing['id']]
    assert queries.get_query_data(query_keys.flipbook_detail(created.id)) == created
    assert queries.is_stale(query_keys.flipbooks_by_user(owner.id))
    assert fake.tables['flipbooks'][-1]['title'] == 'Menu'


def test_create_shows_pending_placeholder_while_inserting(flipbooks, queries, fake, owner):
    flipbooks.list_for_user(owner.id)
    seen = []
    fake.hooks['insert'] = lambda: seen.extend(cached_list(queries, owner))

    flipbooks.create(owner, {'title': 'Menu', 'pdf_url': 'http://x/a.pdf'})

    assert len(seen) == 1
    assert seen[0].pending
    assert seen[0].id.startswith('temp-')
    assert seen[0].title == 'Menu'


def test_failed_create_restores_list_snapshot(flipbooks, queries, fake, owner):
    fake.add_flipbook(owner)
    snapshot = flipbooks.list_for_user(owner.id)
    fake.fail('insert', ValidationError('null value in column "title"'))

    with pytest.raises(ValidationError):
        flipbooks.create(owner, {'title': '', 'pdf_url': 'http://x/a.pdf'})

    assert cached_list(queries, owner) == snapshot
    assert not any(f.is_temporary for f in cached_list(queries, owner))


def test_failed_create_without_cached_list_leaves_nothing_behind(flipbooks, queries, fake, owner):
    context = flipbooks.plan_context(owner)
    queries.remove_queries(query_keys.flipbooks_by_user(owner.id))
    fake.fail('insert', ValidationError('rejected'))

    with pytest.raises(ValidationError):
        flipbooks.create(owner, {'title': 'Menu', 'pdf_url': 'http://x/a.pdf'}, plan_context=context)
    assert cached_list(queries, owner) is None


def test_create_refused_at_plan_limit(flipbooks, fake, owner):
    for _ in range(3):
        fake.add_flipbook(owner)

    with pytest.raises(PlanLimitError) as excinfo:
        flipbooks.create(owner, {'title': 'Fourth', 'pdf_url': 'http://x/a.pdf'})
    assert excinfo.value.validation.upgrade_required
    assert fake.called('insert') == []


def test_premium_user_is_not_limited(flipbooks, fake):
    premium = fake.create_user('premium@flipflow.io', plan='premium')
    for _ in range(5):
        fake.add_flipbook(premium)
    assert flipbooks.create(premium, {'title': 'Sixth', 'pdf_url': 'http://x/a.pdf'}).title == 'Sixth'


def test_create_from_upload(flipbooks, fake, owner):
    created = flipbooks.create_from_upload(owner, pdf_upload(), {'title': 'Brochure', 'is_public': False})

    path = f'{owner.id}/{created.id}.pdf'
    assert (PDF_BUCKET, path) in fake.objects
    assert created.pdf_url.endswith(f'/object/public/flipbook-pdfs/{path}')
    assert created.is_public is False


def test_create_from_upload_rejects_invalid_file_before_any_request(flipbooks, fake, owner):
    fake.calls.clear()
    with pytest.raises(ValidationError, match='valid PDF'):
        flipbooks.create_from_upload(owner, pdf_upload(b'hello', 'text/plain'), {'title': 'Notes'})
    assert fake.calls == []


def test_create_from_upload_rejects_oversize_file_before_any_request(fake, queries, owner):
    storage = StorageService(fake, max_pdf_size=16, sleep=lambda s: None)
    flipbooks = FlipbookService(fake, queries, storage, ProfileService(fake, queries))
    fake.calls.clear()
    with pytest.raises(ValidationError, match='less than'):
        flipbooks.create_from_upload(owner, pdf_upload(b'%PDF-1.4\n' + b'0' * 64), {'title': 'Big'})
    assert fake.calls == []


def test_create_from_upload_removes_pdf_when_insert_fails(flipbooks, fake, owner):
    fake.fail('insert', ValidationError('rejected'))
    with pytest.raises(ValidationError):
        flipbooks.create_from_upload(owner, pdf_upload(), {'title': 'Brochure'})

    assert len(fake.called('upload')) == 1
    assert len(fake.called('remove')) == 1
    assert not [key for key in fake.objects if key[1].startswith(owner.id)]


def test_update_is_applied_to_detail_and_list(flipbooks, queries, fake, owner):
    row = fake.add_flipbook(owner)
    flipbooks.list_for_user(owner.id)

    updated = flipbooks.update(owner, row['id'], {'title': 'Renamed', 'user_id': 'hijack'})

    assert updated.title == 'Renamed'
    assert fake.called('update')[0][3] == {'title': 'Renamed'}
    assert queries.get_query_data(query_keys.flipbook_detail(row['id'])).title == 'Renamed'
    assert cached_list(queries, owner)[0].title == 'Renamed'


def test_failed_update_rolls_back(flipbooks, queries, fake, owner):
    row = fake.add_flipbook(owner)
    before_list = flipbooks.list_for_user(owner.id)
    before_detail = flipbooks.get(row['id'])
    fake.fail('update', PermissionDeniedError('new row violates row-level security policy'))

    with pytest.raises(PermissionDeniedError):
        flipbooks.update(owner, row['id'], {'title': 'Renamed'})

    assert queries.get_query_data(query_keys.flipbook_detail(row['id'])) == before_detail
    assert cached_list(queries, owner) == before_list


def test_only_owner_can_update_or_delete(flipbooks, fake, owner, reader):
    row = fake.add_flipbook(owner)
    with pytest.raises(PermissionDeniedError) as excinfo:
        flipbooks.update(reader, row['id'], {'title': 'Mine now'})
    assert excinfo.value.result.requires_ownership
    with pytest.raises(PermissionDeniedError):
        flipbooks.delete(reader, row['id'])
    assert fake.called('update') == []
    assert fake.called('delete') == []


def test_delete_removes_row_cache_entries_and_pdf(flipbooks, queries, fake, owner):
    row = fake.add_flipbook(owner)
    keep = fake.add_flipbook(owner)
    flipbooks.list_for_user(owner.id)

    flipbooks.delete(owner, row['id'])

    assert [r['id'] for r in fake.tables['flipbooks']] == [keep['id']]
    assert [f.id for f in cached_list(queries, owner)] == [keep['id']]
    assert queries.get_query_data(query_keys.flipbook_detail(row['id'])) is None
    assert (PDF_BUCKET, f"{owner.id}/{row['id']}.pdf") not in fake.objects


def test_failed_delete_rolls_back(flipbooks, queries, fake, owner):
    row = fake.add_flipbook(owner)
    before_list = flipbooks.list_for_user(owner.id)
    before_detail = flipbooks.get(row['id'])
    fake.fail('delete', *[ServerError('unavailable')] * 3)

    with pytest.raises(ServerError):
        flipbooks.delete(owner, row['id'])

    assert len(fake.called('delete')) == 3
    assert cached_list(queries, owner) == before_list
    assert queries.get_query_data(query_keys.flipbook_detail(row['id'])) == before_detail
    assert (PDF_BUCKET, f"{owner.id}/{row['id']}.pdf") in fake.objects


def test_delete_survives_storage_failure(flipbooks, fake, owner):
    row = fake.add_flipbook(owner)
    fake.fail('remove', ServerError('storage down'))
    flipbooks.delete(owner, row['id'])
    assert fake.tables['flipbooks'] == []


def test_share_url_with_base(flipbooks):
    assert flipbooks.share_url('fb-1', base_url='https://flipflow.io/') == 'https://flipflow.io/flipbook/fb-1'


def test_writes_leave_other_flipbooks_pages_cached(flipbooks, queries, fake, owner, reader):
    other = fake.add_flipbook(reader)
    pages_key = query_keys.flipbook_pages(other['id'])
    pages_options = QueryOptions(stale_time=3600, gc_time=3600, retry=0)
    queries.set_query_data(pages_key, {'total_pages': 2}, pages_options)

    created = flipbooks.create(owner, {'title': 'Menu', 'pdf_url': 'http://x/a.pdf'})
    flipbooks.update(owner, created.id, {'title': 'Lunch Menu'})
    flipbooks.delete(owner, created.id)

    assert not queries.is_stale(pages_key, pages_options)
    assert queries.is_stale(query_keys.flipbooks_by_user(owner.id))
