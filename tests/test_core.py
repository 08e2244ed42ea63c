import threading

import pytest
from django.core.files.base import ContentFile
from django.db import connection
from django.utils import timezone

from apps.core.exceptions import build_error_body
from apps.core.models import NumberSequence, next_document_number
from apps.core.storage import LocalStorageBackend


def test_document_numbers_are_sequential_per_prefix_and_year(db):
    year = timezone.now().year

    assert next_document_number('LOAD') == f"LOAD-{year}-0001"
    assert next_document_number('LOAD') == f"LOAD-{year}-0002"
    assert next_document_number('INV') == f"INV-{year}-0001"
    assert next_document_number('LOAD', year=2020) == 'LOAD-2020-0001'
    assert NumberSequence.objects.get(prefix='LOAD', year=year).last_value == 2


def test_document_numbers_never_repeat_across_years(db):
    issued = [
        next_document_number(prefix, year=year)
        for year in (2025, 2026, 2027)
        for prefix in ('LOAD', 'INV', 'SETTLE')
        for _ in range(25)
    ]

    assert len(set(issued)) == len(issued)
    assert issued[24] == 'LOAD-2025-0025'
    assert issued[25] == 'INV-2025-0001'
    assert 'SETTLE-2027-0025' in issued
    assert NumberSequence.objects.count() == 9


@pytest.mark.django_db(transaction=True)
def test_concurrent_numbering_never_repeats():
    if not connection.features.has_select_for_update:
        pytest.skip('database has no row locks')

    numbers, errors = [], []

    def worker():
        try:
            for _ in range(5):
                numbers.append(next_document_number('SETTLE'))
        except Exception as e:
            errors.append(e)
        finally:
            connection.close()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(numbers) == 40
    assert len(set(numbers)) == 40


def test_first_load_gets_first_number(draft_load):
    assert draft_load.load_number == f"LOAD-{timezone.now().year}-0001"


def test_health_check_reports_database(api_client, db):
    response = api_client.get('/health/')

    assert response.status_code == 200
    body = response.json()
    assert body['success'] is True
    assert body['data']['database'] is True
    assert body['data']['status'] == 'healthy'


def test_error_body_flattens_field_errors():
    body = build_error_body({'email': ['Enter a valid email address.'], 'address': {'city': ['Required']}})

    assert body['success'] is False
    assert body['message'] == 'Validation failed'
    assert {'field': 'email', 'message': 'Enter a valid email address.'} in body['errors']
    assert {'field': 'address.city', 'message': 'Required'} in body['errors']


def test_error_body_for_single_detail():
    assert build_error_body({'detail': 'Not found.'}) == {'success': False, 'message': 'Not found.'}


def test_unauthenticated_request_uses_envelope(api_client, db):
    response = api_client.get('/api/v1/loads/')

    assert response.status_code == 401
    assert response.json()['success'] is False
    assert 'message' in response.json()


def test_local_storage_round_trip_and_signed_url(api_client, db):

    storage = LocalStorageBackend()
    key = storage.put(ContentFile(b'hello'), 'LOAD_DOCUMENT', 'note.pdf')

    assert key.startswith('documents/')
    assert key.endswith('.pdf')
    with storage.get(key) as handle:
        assert handle.read() == b'hello'

    url = storage.signed_url(key)
    assert url.startswith('/files/')
    response = api_client.get(url)
    assert response.status_code == 200
    assert b''.join(response.streaming_content) == b'hello'

    storage.delete(key)
    assert not storage.exists(key)


def test_signed_url_with_tampered_token_is_rejected(api_client, db):
    response = api_client.get('/files/not-a-valid-token/')

    assert response.status_code == 403
