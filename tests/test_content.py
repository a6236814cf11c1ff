"""
Tests for public content reads, form submission, diagnostics and the
server-rendered admin page.
"""

import json

import pytest

from portal_engine.notify import LoggingNotifier, Notifier, _set_notifier


class RecordingNotifier(Notifier):
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def notify(self, form_id, data):
        self.calls.append((form_id, data))
        if self.fail:
            raise RuntimeError('mail relay unavailable')


@pytest.fixture
def notifier():
    notifier = RecordingNotifier()
    _set_notifier(notifier)
    yield notifier
    _set_notifier(LoggingNotifier())


# ═══════════════════════════════════════════════════════════════════════
# Public lists
# ═══════════════════════════════════════════════════════════════════════

def test_news_newest_first(client):
    resp = client.get('/api/news')
    assert resp.status_code == 200
    assert [n['slug'] for n in resp.json()] == ['new-board', 'annual-meeting']


def test_blog_list(client):
    assert [b['slug'] for b in client.get('/api/blog').json()] == ['why-we-sponsor']


def test_events_soonest_first(client):
    assert [e['slug'] for e in client.get('/api/events').json()] == ['spring-workshop', 'summer-forum']


def test_sponsors_active_in_display_order(client):
    assert [s['name'] for s in client.get('/api/sponsors').json()] == ['Beta Seguros', 'Banco Alpha']


def test_banners_active_only(client):
    assert [b['title'] for b in client.get('/api/banners').json()] == ['Welcome']


def test_public_list_degrades_to_empty(client, pool):
    """A database failure on a public read yields [] rather than an error."""
    with pool.connection() as conn:
        conn.execute('DROP TABLE news')
    resp = client.get('/api/news')
    assert resp.status_code == 200
    assert resp.json() == []


# ═══════════════════════════════════════════════════════════════════════
# Public details
# ═══════════════════════════════════════════════════════════════════════

def test_detail_by_slug(client):
    resp = client.get('/api/news/annual-meeting')
    assert resp.status_code == 200
    assert resp.json()['title'] == 'Annual meeting announced'
    assert client.get('/api/events/summer-forum').json()['location'] == 'Lisbon'
    assert client.get('/api/blog/why-we-sponsor').json()['id'] == 1


def test_detail_not_found(client):
    resp = client.get('/api/blog/missing')
    assert resp.status_code == 404
    assert resp.json() == {'error': 'Blog post not found'}


def test_detail_store_error_is_500(client, pool):
    with pool.connection() as conn:
        conn.execute('DROP TABLE events')
    assert client.get('/api/events/summer-forum').status_code == 500


# ═══════════════════════════════════════════════════════════════════════
# Form submission
# ═══════════════════════════════════════════════════════════════════════

def test_contact_form_is_stored(client, admin_client, notifier):
    resp = client.post('/api/forms/submit', json={
        'formId': 'contact_form', 'nome': 'Ana', 'email': 'ana@example.com', 'mensagem': 'Olá',
    })
    assert resp.status_code == 200
    assert resp.json() == {'success': True, 'message': 'Form submitted successfully'}

    rows = admin_client.get('/api/tables/contact_submissions').json()['data']
    assert len(rows) == 1
    assert rows[0]['uniqueness_check'] == 'ana@example.com'
    assert json.loads(rows[0]['form_data']) == {'nome': 'Ana', 'email': 'ana@example.com', 'mensagem': 'Olá'}
    assert rows[0]['notification_email_sent'] == 0
    assert notifier.calls == [('contact_form', {'nome': 'Ana', 'email': 'ana@example.com',
                                                'mensagem': 'Olá'})]


def test_event_booking_keeps_event_id(client, admin_client, notifier):
    resp = client.post('/api/forms/submit', json={
        'formId': 'event_booking', 'event_id': 2, 'telefone': '+351 900 000 000'})
    assert resp.status_code == 200
    row = admin_client.get('/api/tables/eventbookings').json()['data'][0]
    assert row['event_id'] == 2
    assert row['uniqueness_check'] == '+351 900 000 000'


def test_form_id_required(client, notifier):
    resp = client.post('/api/forms/submit', json={'email': 'x@example.com'})
    assert resp.status_code == 400
    assert resp.json() == {'error': 'Form ID is required'}
    assert notifier.calls == []


def test_unknown_form_only_notifies(client, admin_client, notifier):
    resp = client.post('/api/forms/submit', json={'formId': 'newsletter', 'email': 'x@example.com'})
    assert resp.status_code == 200
    assert notifier.calls == [('newsletter', {'email': 'x@example.com'})]
    assert admin_client.get('/api/tables/contact_submissions').json()['total'] == 0


def test_notifier_failure_does_not_affect_response(client):
    _set_notifier(RecordingNotifier(fail=True))
    try:
        resp = client.post('/api/forms/submit', json={'formId': 'contact_form', 'email': 'a@b.c'})
    finally:
        _set_notifier(LoggingNotifier())
    assert resp.status_code == 200
    assert resp.json()['success'] is True


# ═══════════════════════════════════════════════════════════════════════
# Diagnostics and admin page
# ═══════════════════════════════════════════════════════════════════════

def test_health(client):
    assert client.get('/health').json() == {'status': 'ok'}


def test_server_info(admin_client, user_client, portal_db):
    resp = admin_client.get('/api/admin/server-info')
    assert resp.status_code == 200
    info = resp.json()
    assert info['database_path'] == portal_db
    assert info['pool_size'] == 2
    assert info['database_connection_status'] == 'Connected'
    assert 'sponsors' in info['tables']
    assert user_client.get('/api/admin/server-info').status_code == 403


def test_admin_table_page(admin_client):
    resp = admin_client.get('/admin/tables/sponsors')
    assert resp.status_code == 200
    html = resp.text
    assert '<h1>Sponsors</h1>' in html
    assert 'Beta Seguros' in html
    assert 'Showing 1 to 3 of 3 results' in html
    assert 'name="website_url" type="url"' in html
    assert 'accept="image/*,video/*"' in html


def test_admin_table_page_requires_admin(user_client):
    assert user_client.get('/admin/tables/sponsors').status_code == 403
