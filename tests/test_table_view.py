"""
Tests for the admin table view state machine, driven through AdminApi
against the in-process app.
"""

import pytest

from portal_engine.client import AdminApi, ApiError
from portal_engine.table_view import TableView, ViewState


@pytest.fixture
def view(api):
    view = TableView(api)
    view.select_table('sponsors')
    return view


def test_initial_state_is_idle(api):
    assert TableView(api).state is ViewState.IDLE


def test_select_table_loads_first_page(view):
    assert view.state is ViewState.LOADED
    assert view.schema.title == 'Sponsors'
    assert [r['id'] for r in view.rows] == [3, 2, 1]
    assert view.total == 3
    assert view.total_pages == 1
    assert view.showing == (1, 3)


def test_select_unknown_table_errors(api):
    view = TableView(api)
    view.select_table('payments')
    assert view.state is ViewState.ERRORED
    assert view.error == 'Schema not found: payments'


def test_field_lists(view):
    assert 'id' not in view.visible_fields
    assert view.visible_fields[0] == 'name'
    assert view.filterable_fields == ['name', 'logo_url', 'website_url', 'description',
                                      'display_order', 'is_active']
    assert 'created_at' in view.sortable_fields


def test_toggle_sort(view):
    view.toggle_sort('display_order')
    assert view.sort == 'display_order:asc'
    assert [r['id'] for r in view.rows] == [2, 1, 3]

    view.toggle_sort('display_order')
    assert view.sort == 'display_order:desc'
    assert [r['id'] for r in view.rows] == [3, 1, 2]

    view.toggle_sort('name')
    assert view.sort == 'name:asc'


def test_search_resets_page_and_ors_fields(view):
    view.page = 2
    view.set_search('pensions')
    assert view.page == 1
    assert [r['id'] for r in view.rows] == [2]

    view.set_search('example')
    assert view.total == 3


def test_create_reloads(view):
    view.open_create()
    assert view.form.values == {'display_order': 0, 'is_active': 1}
    for name, value in [('name', 'Banco X'), ('logo_url', 'https://x/y.png'),
                        ('website_url', 'https://x')]:
        view.change_field(name, value)

    assert view.submit()
    assert view.form is None
    assert view.total == 4
    assert view.rows[0]['name'] == 'Banco X'


def test_invalid_create_stays_open(view):
    view.open_create()
    view.change_field('name', 'Banco X')
    assert not view.submit()
    assert view.form is not None
    assert set(view.form.errors) == {'logo_url', 'website_url'}
    assert view.total == 3


def test_edit_submits_update(view):
    row = next(r for r in view.rows if r['id'] == 1)
    view.open_edit(row)
    assert view.editing == 1
    view.change_field('name', 'Alpha Renamed')
    assert view.submit()
    assert next(r for r in view.rows if r['id'] == 1)['name'] == 'Alpha Renamed'


def test_delete_requires_confirmation(view):
    row = next(r for r in view.rows if r['id'] == 3)
    view.request_delete(row)
    assert view.total == 3

    view.cancel_delete()
    assert not view.confirm_delete()
    assert view.total == 3

    view.request_delete(row)
    assert view.confirm_delete()
    assert view.pending_delete is None
    assert [r['id'] for r in view.rows] == [2, 1]


def test_failed_reload_keeps_rows(view, pool):
    with pool.connection() as conn:
        conn.execute('DROP TABLE sponsors')
    view.reload()
    assert view.state is ViewState.ERRORED
    assert view.error == 'no such table: sponsors'
    assert len(view.rows) == 3


def test_stale_response_is_discarded(view):
    old_key = view.begin_fetch()
    view.page = 2
    new_key = view.begin_fetch()

    assert not view.finish_fetch(old_key, {'data': [{'id': 99}], 'total': 1})
    assert view.state is ViewState.LOADING
    assert view.finish_fetch(new_key, {'data': [], 'total': 3})
    assert view.state is ViewState.LOADED
    assert view.rows == []


def test_export_uses_title_and_search(view):
    view.set_search('alpha')
    filename, content = view.export_csv()
    assert filename == 'Sponsors.csv'
    lines = content.decode('utf-8').splitlines()
    assert lines[0].startswith('id,name,logo_url')
    assert len(lines) == 2


def test_export_without_matches_sets_error(view):
    view.set_search('zzzz-no-match')
    assert view.export_csv() is None
    assert view.error == 'No data to export'
    assert view.state is ViewState.LOADED


def test_failed_export_keeps_rows(view, pool):
    with pool.connection() as conn:
        conn.execute('DROP TABLE sponsors')
    assert view.export_csv() is None
    assert view.error == 'no such table: sponsors'
    assert len(view.rows) == 3


def test_display_rows(view):
    rows = view.display_rows()
    inactive = next(r for r in rows if r['name'] == 'Gamma Capital')
    assert inactive['is_active'] == 'No'
    assert inactive['logo_url'] == 'View File'
    assert inactive['description'] == '-'


def test_pagination_bounds(api, pool):
    with pool.connection() as conn:
        conn.executemany(
            "INSERT INTO contact_submissions (uniqueness_check, form_data) VALUES (?, ?)",
            [(f'p{i}@example.com', '{}') for i in range(137)])
    view = TableView(api)
    view.select_table('contact_submissions')
    assert view.total_pages == 3
    view.set_page(3)
    assert len(view.rows) == 37
    assert view.showing == (101, 137)
    view.set_page(10)
    assert view.page == 3


def test_api_error_message_prefers_details(user_client):
    with pytest.raises(ApiError) as exc:
        AdminApi(user_client).list_schemas()
    assert exc.value.status_code == 403
    assert exc.value.message == 'Admin access required'
