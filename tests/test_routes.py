"""
tests/test_routes.py — HTTP tests for the plant and record routes.

JSON callers get JSON back; form posts flash and redirect.
"""

import io

import treatment_advisor
from layout_store import find_plant, get_layout_version

XHR = {'X-Requested-With': 'XMLHttpRequest'}
PNG_BYTES = b'\x89PNG\r\n\x1a\n' + b'\x00' * 16


# ========================================
# Layout reads
# ========================================

class TestLayoutRoutes:

    def test_layout(self, client):
        data = client.get('/plants/layout').get_json()
        assert data['success'] is True
        assert data['changed'] is True
        assert data['version'] == 0
        assert 'bamboo' in data['layout']['categories']

    def test_layout_unchanged_since(self, client):
        data = client.get('/plants/layout?since=0').get_json()
        assert data == {'success': True, 'changed': False, 'version': 0}

    def test_plant_detail_json(self, client):
        data = client.get('/plants/trp-a').get_json()
        assert data['plant']['type'] == 'Pygmy Palm'
        assert data['category']['key'] == 'tropicals'

    def test_missing_plant_json(self, client):
        assert client.get('/plants/nope').status_code == 404

    def test_missing_plant_page(self, client):
        rv = client.get('/plant/nope', follow_redirects=True)
        assert b'Plant not found.' in rv.data


# ========================================
# Plants
# ========================================

class TestPlantRoutes:

    def test_add_plant_json(self, client):
        rv = client.post('/plants/add', json={
            'category_key': 'fruit', 'plant_type': 'Avocado', 'position': {'x': 10, 'y': 20}
        })
        assert rv.status_code == 201
        data = rv.get_json()
        assert data['plant']['label'] == 'B'
        assert data['plant']['position'] == {'x': 10.0, 'y': 20.0}
        assert data['version'] == 1

    def test_add_plant_form(self, client):
        rv = client.post('/plants/add', data={'category_key': 'fruit', 'plant_type': 'Avocado'})
        assert rv.status_code == 302
        assert '?plant=fru-' in rv.headers['Location']

    def test_add_plant_invalid(self, client):
        rv = client.post('/plants/add', json={'category_key': 'fruit', 'plant_type': 'A'})
        assert rv.status_code == 400
        assert rv.get_json()['error'] == "Plant type must be at least 2 characters."

    def test_move_plant(self, client):
        rv = client.post('/plants/bmb-a/position', json={'x': 150, 'y': 42.5})
        assert rv.status_code == 200
        assert rv.get_json()['position'] == {'x': 100.0, 'y': 42.5}

    def test_move_conflict_returns_layout(self, client):
        client.post('/plants/bmb-a/position', json={'x': 1, 'y': 1, 'expected_version': 0})
        rv = client.post('/plants/bmb-b/position', json={'x': 2, 'y': 2, 'expected_version': 0})
        assert rv.status_code == 409
        data = rv.get_json()
        assert data['conflict'] is True
        assert data['layout']['version'] == 1

    def test_bad_expected_version(self, client):
        rv = client.post('/plants/bmb-a/position', json={'x': 1, 'y': 1, 'expected_version': 'x'})
        assert rv.status_code == 400

    def test_edit_plant(self, client):
        rv = client.post('/plants/qkp-a/edit', json={'type': 'Foxtail Palm', 'label': 'Z'})
        assert rv.status_code == 200
        assert rv.get_json()['plant']['label'] == 'Z'
        assert rv.get_json()['plant']['type'] == 'Foxtail Palm'

    def test_edit_missing_plant(self, client):
        rv = client.post('/plants/nope/edit', json={'type': 'Foxtail Palm'})
        assert rv.status_code == 404

    def test_delete_plant_form(self, client):
        rv = client.post('/plants/shb-a/delete', data={}, follow_redirects=True)
        assert b'Plant deleted.' in rv.data
        with client.application.app_context():
            assert find_plant('shb-a') == (None, None)


# ========================================
# Records
# ========================================

class TestRecordRoutes:

    def test_add_record_json(self, client):
        rv = client.post('/plants/frt-a/records/add', json={
            'date': '2025-04-01', 'treatment': 'Citrus food', 'ph_level': '6.5'
        })
        assert rv.status_code == 201
        assert isinstance(rv.get_json()['record_id'], int)

    def test_add_record_with_photo_upload(self, client):
        rv = client.post('/plants/frt-a/records/add', data={
            'date': '2025-04-01', 'treatment': 'Citrus food',
            'photo': (io.BytesIO(PNG_BYTES), 'leaf.png', 'image/png'),
        }, content_type='multipart/form-data')
        assert rv.status_code == 302
        with client.application.app_context():
            plant, _ = find_plant('frt-a')
        assert plant['records'][0]['photo_data_uri'].startswith('data:image/png;base64,')

    def test_non_image_upload_rejected(self, client):
        rv = client.post('/plants/frt-a/records/add', data={
            'date': '2025-04-01', 'treatment': 'Citrus food',
            'photo': (io.BytesIO(b'hello'), 'notes.txt', 'text/plain'),
        }, content_type='multipart/form-data', headers=XHR)
        assert rv.status_code == 400
        assert rv.get_json()['error'] == "Photo must be an image file."

    def test_add_record_missing_plant(self, client):
        rv = client.post('/plants/nope/records/add', json={'date': '2025-04-01', 'treatment': 'x'})
        assert rv.status_code == 404

    def test_edit_and_delete_record(self, client):
        record_id = client.post('/plants/frt-a/records/add', json={
            'date': '2025-04-01', 'treatment': 'Citrus food'
        }).get_json()['record_id']

        rv = client.post(f'/plants/frt-a/records/{record_id}/edit', json={
            'date': '2025-04-02', 'treatment': 'Citrus food 2'
        })
        assert rv.status_code == 200
        plant = client.get('/plants/frt-a').get_json()['plant']
        assert plant['records'][0]['treatment'] == 'Citrus food 2'

        rv = client.post(f'/plants/frt-a/records/{record_id}/delete', json={})
        assert rv.status_code == 200
        rv = client.post(f'/plants/frt-a/records/{record_id}/delete', json={})
        assert rv.status_code == 404

    def test_bulk_record_json(self, client):
        rv = client.post('/plants/bulk-record', json={
            'plant_ids': ['bmb-a', 'bmb-b'], 'date': '2025-04-01', 'treatment': 'Bamboo food'
        })
        assert rv.status_code == 201
        assert len(rv.get_json()['record_ids']) == 2

    def test_bulk_record_form(self, client):
        rv = client.post('/plants/bulk-record', data={
            'plant_ids': ['bmb-a', 'frt-a'], 'date': '2025-04-01', 'treatment': 'Compost'
        }, follow_redirects=True)
        assert b'Record added to 2 plants.' in rv.data
        with client.application.app_context():
            assert get_layout_version() == 1

    def test_bulk_record_needs_selection(self, client):
        rv = client.post('/plants/bulk-record', json={
            'plant_ids': [], 'date': '2025-04-01', 'treatment': 'Compost'
        })
        assert rv.status_code == 400
        assert rv.get_json()['error'] == "Select at least one plant."

    def test_bulk_record_plant_ids_must_be_list(self, client):
        rv = client.post('/plants/bulk-record', json={
            'plant_ids': 'bmb-a', 'date': '2025-04-01', 'treatment': 'Compost'
        })
        assert rv.status_code == 400


# ========================================
# Table view
# ========================================

class TestTableView:

    def test_filter_by_category(self, client):
        rv = client.get('/table?category=bamboo')
        assert b'bmb-a' in rv.data
        assert b'qkp-a' not in rv.data

    def test_search_without_results(self, client):
        rv = client.get('/table?q=cactus')
        assert b'No results.' in rv.data

    def test_sort_link_toggles_order(self, client):
        rv = client.get('/table?sort=type&order=asc')
        assert rv.status_code == 200
        assert b'order=desc' in rv.data


# ========================================
# AI suggestion
# ========================================

class TestSuggestionRoute:

    def test_needs_measurements(self, client):
        rv = client.post('/plants/qkp-a/suggestion', headers=XHR)
        assert rv.status_code == 400
        assert 'pH or moisture' in rv.get_json()['error']

    def test_suggestion_json(self, client, monkeypatch):
        class Answer:
            status_code = 200

            def raise_for_status(self):
                pass

            def json(self):
                return {'choices': [{'message': {'content': 'Add lime.'}}]}

        monkeypatch.setattr(treatment_advisor.requests, 'post', lambda *a, **k: Answer())
        client.post('/plants/qkp-a/records/add', json={
            'date': '2030-01-01', 'treatment': 'Sulfur', 'moisture_level': '30'
        })
        rv = client.post('/plants/qkp-a/suggestion', headers=XHR)
        assert rv.status_code == 200
        assert rv.get_json()['data']['suggested_treatment_plan'] == 'Add lime.'

        rv = client.post('/plants/qkp-a/suggestion')
        assert rv.status_code == 200
        assert b'Add lime.' in rv.data


# ========================================
# Malformed JSON bodies
# ========================================

class TestMalformedJson:

    def test_array_body(self, client):
        rv = client.post('/plants/add', json=['fruit', 'Avocado'])
        assert rv.status_code == 400
        assert rv.get_json()['error'] == "Request body must be a JSON object."

    def test_array_body_on_bulk_record(self, client):
        rv = client.post('/plants/bulk-record', json=['bmb-a'])
        assert rv.status_code == 400

    def test_numeric_plant_type(self, client):
        rv = client.post('/plants/add', json={'category_key': 'fruit', 'plant_type': 42})
        assert rv.status_code == 201
        assert rv.get_json()['plant']['type'] == '42'

    def test_numeric_category(self, client):
        rv = client.post('/plants/add', json={'category_key': 7, 'plant_type': 'Avocado'})
        assert rv.status_code == 400
        assert rv.get_json()['error'] == "Please select a category."

    def test_numeric_label(self, client):
        rv = client.post('/plants/qkp-a/edit', json={'label': 7})
        assert rv.status_code == 200
        assert rv.get_json()['plant']['label'] == '7'

    def test_numeric_type_on_edit(self, client):
        rv = client.post('/plants/qkp-a/edit', json={'type': 5})
        assert rv.status_code == 400
        assert rv.get_json()['error'] == "Plant type must be at least 2 characters."

    def test_position_must_be_numbers(self, client):
        rv = client.post('/plants/bmb-a/position', json={'x': [1], 'y': {'a': 2}})
        assert rv.status_code == 400


# ========================================
# Photo size limit
# ========================================

class TestPhotoLimit:

    def test_oversized_photo_rejected(self, client):
        client.application.config['MAX_PHOTO_BYTES'] = 8
        rv = client.post('/plants/frt-a/records/add', data={
            'date': '2025-04-01', 'treatment': 'Citrus food',
            'photo': (io.BytesIO(PNG_BYTES), 'leaf.png', 'image/png'),
        }, content_type='multipart/form-data', headers=XHR)
        assert rv.status_code == 400
        assert rv.get_json()['error'] == "Photo is too large (limit is 8 bytes)."
        plant = client.get('/plants/frt-a').get_json()['plant']
        assert plant['records'] == []

    def test_photo_at_limit_accepted(self, client):
        client.application.config['MAX_PHOTO_BYTES'] = len(PNG_BYTES)
        rv = client.post('/plants/frt-a/records/add', data={
            'date': '2025-04-01', 'treatment': 'Citrus food',
            'photo': (io.BytesIO(PNG_BYTES), 'leaf.png', 'image/png'),
        }, content_type='multipart/form-data', headers=XHR)
        assert rv.status_code == 201
