import io

import pytest
from werkzeug.datastructures import FileStorage

from conftest import FakePlatform
from flipflow.errors import ServerError, ValidationError
from flipflow.policies import ASSET_BUCKET, PDF_BUCKET
from flipflow.services.storage import MB, StorageService, format_file_size

PDF_BYTES = b'%PDF-1.4\n%fake\n'


def upload(data=PDF_BYTES, filename='report.pdf', content_type='application/pdf'):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


@pytest.fixture
def fake():
    return FakePlatform()


@pytest.fixture
def storage(fake):
    return StorageService(fake, max_pdf_size=1 * MB, max_asset_size=64, sleep=lambda s: None,
                          clock=lambda: 1700000000.5)


@pytest.mark.parametrize('size, expected', [
    (0, '0 Bytes'),
    (512, '512 Bytes'),
    (1024, '1 KB'),
    (1536, '1.5 KB'),
    (5 * MB, '5 MB'),
    (100 * MB, '100 MB'),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected
    assert StorageService.format_file_size(size) == expected


def test_valid_pdf(storage):
    assert storage.validate_pdf_file(upload()).is_valid


def test_rejects_non_pdf_before_any_request(storage, fake):
    result = storage.validate_pdf_file(upload(b'hello', 'notes.txt', 'text/plain'))
    assert not result.is_valid
    assert result.error == 'Please upload a valid PDF file'

    with pytest.raises(ValidationError):
        storage.upload_pdf(upload(b'hello', 'notes.txt', 'text/plain'), 'u1', 'fb-1')
    assert fake.calls == []


def test_rejects_oversize_and_empty_pdf(storage, fake):
    too_big = storage.validate_pdf_file(upload(b'0' * (MB + 1)))
    assert too_big.error == 'File size must be less than 1 MB'
    assert storage.validate_pdf_file(upload(b'')).error == 'File cannot be empty'

    with pytest.raises(ValidationError):
        storage.upload_pdf(upload(b'0' * (MB + 1)), 'u1', 'fb-1')
    assert fake.calls == []


def test_upload_pdf_stores_under_user_folder(storage, fake):
    url = storage.upload_pdf(upload(), 'u1', 'fb-1', token='jwt')
    assert fake.objects[(PDF_BUCKET, 'u1/fb-1.pdf')] == PDF_BYTES
    assert url == 'http://platform.test/storage/v1/object/public/flipbook-pdfs/u1/fb-1.pdf'


def test_upload_retries_transient_failures(storage, fake):
    fake.fail('upload', ServerError('storage busy'), ServerError('storage busy'))
    storage.upload_pdf(upload(), 'u1', 'fb-1')
    assert len(fake.called('upload')) == 3
    assert (PDF_BUCKET, 'u1/fb-1.pdf') in fake.objects


def test_upload_asset(storage, fake):
    logo = upload(b'\x89PNG....', 'Logo.PNG', 'image/png')
    url = storage.upload_asset(logo, 'u1', 'logo')
    assert url.endswith('/flipbook-assets/u1/logo_1700000000500.png')
    assert (ASSET_BUCKET, 'u1/logo_1700000000500.png') in fake.objects


def test_asset_validation(storage):
    assert storage.validate_asset_file(upload(b'GIF89a', 'a.gif', 'image/gif')).is_valid
    assert not storage.validate_asset_file(upload(b'%PDF', 'a.pdf', 'application/pdf')).is_valid
    too_big = storage.validate_asset_file(upload(b'x' * 65, 'a.png', 'image/png'))
    assert too_big.error == 'Image size must be less than 64 Bytes'


def test_signed_and_public_urls(storage, fake):
    assert storage.get_pdf_url('u1/fb-1.pdf', token='jwt').endswith('/sign/flipbook-pdfs/u1/fb-1.pdf?token=signed')
    assert fake.called('create_signed_url')[0] == ('create_signed_url', PDF_BUCKET, 'u1/fb-1.pdf', 86400)
    assert storage.get_public_url(ASSET_BUCKET, 'u1/a.png').endswith('/object/public/flipbook-assets/u1/a.png')


def test_delete_file(storage, fake):
    storage.upload_pdf(upload(), 'u1', 'fb-1')
    storage.delete_file(PDF_BUCKET, 'u1/fb-1.pdf')
    assert (PDF_BUCKET, 'u1/fb-1.pdf') not in fake.objects


@pytest.mark.parametrize('url, expected', [
    ('http://platform.test/storage/v1/object/public/flipbook-pdfs/u1/fb-1.pdf', 'u1/fb-1.pdf'),
    ('http://platform.test/storage/v1/object/sign/flipbook-pdfs/u1/a%20b.pdf?token=t', 'u1/a b.pdf'),
    ('http://platform.test/storage/v1/object/public/flipbook-assets/u1/logo.png', None),
    ('', None),
])
def test_path_from_url(url, expected):
    assert StorageService.path_from_url(url, PDF_BUCKET) == expected
