"""
Tests for CSV export (renderer and /api/tables/{table}/export).
"""

from portal_engine.export import csv_value, strip_tags, to_csv


def test_quoting_doubles_internal_quotes():
    rows = [{'name': 'Banco, S.A. "Premium"'}]
    assert to_csv(rows) == 'name\n"Banco, S.A. ""Premium"""\n'


def test_newlines_are_quoted():
    assert to_csv([{'a': 'line1\nline2', 'b': 'plain'}]) == 'a,b\n"line1\nline2",plain\n'


def test_html_is_stripped_and_none_is_empty():
    assert csv_value('<p>Hello <b>world</b></p>') == 'Hello world'
    assert csv_value(None) == ''
    assert csv_value(0) == '0'
    assert strip_tags('a < b') == 'a < b'


def test_header_from_first_row():
    rows = [{'id': 2, 'title': 'B'}, {'id': 1, 'title': 'A', 'extra': 'x'}]
    assert to_csv(rows) == 'id,title\n2,B\n1,A\n'


def test_empty_rows():
    assert to_csv([]) == ''


def test_export_endpoint(admin_client):
    resp = admin_client.get('/api/tables/sponsors/export', params={'sort': 'display_order:asc'})
    assert resp.status_code == 200
    assert resp.headers['content-type'].startswith('text/csv')
    assert resp.headers['content-disposition'] == 'attachment; filename="sponsors.csv"'
    lines = resp.text.splitlines()
    assert lines[0] == 'id,name,logo_url,website_url,description,display_order,is_active,created_at,updated_at'
    assert lines[1].startswith('2,Beta Seguros,')
    assert '"Insurance, pensions"' in lines[1]


def test_export_strips_html(admin_client):
    resp = admin_client.get('/api/tables/news/export')
    assert '<p>' not in resp.text
    assert 'The annual meeting' in resp.text


def test_export_is_idempotent(admin_client):
    first = admin_client.get('/api/tables/sponsors/export').content
    second = admin_client.get('/api/tables/sponsors/export').content
    assert first == second


def test_export_with_filter(admin_client):
    resp = admin_client.get('/api/tables/sponsors/export', params={'name_like': 'beta'})
    assert len(resp.text.splitlines()) == 2


def test_export_empty_table_is_404(admin_client):
    resp = admin_client.get('/api/tables/users/export')
    assert resp.status_code == 404
    assert resp.json() == {'error': 'No data to export'}


def test_export_requires_admin(user_client):
    assert user_client.get('/api/tables/sponsors/export').status_code == 403
