"""
HTTP tests for /members: permission checks, JSON and multipart bodies and
the response envelopes.
"""
import io
import os

import pytest

from extensions import db
from models.members import Member, MALE, FEMALE, SON, WIFE, FAMILY_BRANCHES

BRANCH = FAMILY_BRANCHES[0]


def _body(fname, gender=MALE, relationship=SON, **extra):
    data = {
        'fname': fname,
        'lname': 'الأحمد',
        'gender': gender,
        'familyBranch': BRANCH,
        'familyRelationship': relationship,
    }
    data.update(extra)
    return data


@pytest.fixture
def uploads(app, tmp_path, monkeypatch):
    monkeypatch.setitem(app.config, 'UPLOAD_FOLDER', str(tmp_path))
    return tmp_path


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

class TestAccess:
    def test_anonymous_gets_401(self, client):
        response = client.get('/members')

        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_view_only_user_cannot_create(self, client, make_user, login):
        make_user(email='viewer@example.com', permissions={'member': {'view': True}})
        login(client, 'viewer@example.com')

        assert client.get('/members').status_code == 200
        response = client.post('/members', json=_body('علي'))

        assert response.status_code == 403
        assert 'permission' in response.get_json()['message']

    def test_user_without_rows_is_forbidden(self, client, make_user, login):
        make_user(email='nobody@example.com')
        login(client, 'nobody@example.com')

        assert client.get('/members').status_code == 403


# ---------------------------------------------------------------------------
# CRUD over JSON
# ---------------------------------------------------------------------------

class TestMemberCrud:
    def test_create_returns_populated_member(self, admin_client):
        wife = admin_client.post('/members', json=_body('فاطمة', FEMALE, WIFE)).get_json()['data']

        response = admin_client.post('/members', json=_body('علي', wives=[wife['id']]))

        assert response.status_code == 201
        payload = response.get_json()
        assert payload['success'] is True
        assert payload['message'] == 'Member created successfully'
        assert payload['data']['fullName'] == 'علي الأحمد'
        assert payload['data']['wives'][0]['id'] == wife['id']

    def test_validation_error_envelope(self, admin_client):
        response = admin_client.post('/members', json={'fname': 'علي'})

        assert response.status_code == 400
        assert response.get_json() == {
            'success': False,
            'message': 'First name, last name, gender, familyRelationship and family branch are required.',
            'data': None,
        }

    def test_non_object_body(self, admin_client):
        response = admin_client.post('/members', json=[1, 2])
        assert response.status_code == 400

    def test_duplicate_name_is_400(self, admin_client):
        admin_client.post('/members', json=_body('علي'))
        response = admin_client.post('/members', json=_body('علي'))

        assert response.status_code == 400
        assert 'يوجد بالفعل عضو باسم' in response.get_json()['message']

    def test_list_with_pagination(self, admin_client):
        for name in ('علي', 'عمر', 'عثمان'):
            admin_client.post('/members', json=_body(name))

        response = admin_client.get('/members?page=1&limit=2')
        payload = response.get_json()

        assert response.status_code == 200
        assert payload['message'] == 'Members retrieved successfully'
        assert len(payload['data']) == 2
        assert payload['pagination'] == {
            'totalMembers': 3, 'totalPages': 2, 'currentPage': 1, 'pageSize': 2,
        }

    def test_get_one_and_404(self, admin_client):
        created = admin_client.post('/members', json=_body('علي')).get_json()['data']

        assert admin_client.get(f"/members/{created['id']}").get_json()['data']['fname'] == 'علي'
        missing = admin_client.get('/members/9999')
        assert missing.status_code == 404
        assert missing.get_json()['message'] == 'Member not found'

    def test_update_reconciles_children(self, admin_client):
        c1 = admin_client.post('/members', json=_body('حسن')).get_json()['data']
        c2 = admin_client.post('/members', json=_body('حسين')).get_json()['data']
        father = admin_client.post('/members', json=_body('علي', children=[c1['id']])).get_json()['data']

        response = admin_client.put(f"/members/{father['id']}",
                                    json=_body('علي', children=[c2['id']]))

        assert response.status_code == 200
        assert [c['id'] for c in response.get_json()['data']['children']] == [c2['id']]
        db.session.expire_all()
        assert db.session.get(Member, c1['id']).father_id is None

    def test_delete_messages(self, admin_client, make_user):
        plain = admin_client.post('/members', json=_body('علي')).get_json()['data']
        linked = admin_client.post('/members', json=_body('عمر')).get_json()['data']
        u = make_user(email='omar@example.com')
        u.member_id = linked['id']
        db.session.commit()

        first = admin_client.delete(f"/members/{plain['id']}").get_json()
        second = admin_client.delete(f"/members/{linked['id']}").get_json()

        assert first['message'] == 'Member deleted successfully'
        assert second['message'] == 'Member and user deleted successfully'


# ---------------------------------------------------------------------------
# Multipart bodies and image uploads
# ---------------------------------------------------------------------------

class TestMultipart:
    def test_create_with_image_and_relations(self, admin_client, uploads):
        father = admin_client.post('/members', json=_body('علي')).get_json()['data']
        w1 = admin_client.post('/members', json=_body('فاطمة', FEMALE, WIFE)).get_json()['data']

        form = _body('حسن', **{'parents[father]': str(father['id'])})
        form['image'] = (io.BytesIO(b'\x89PNG fake'), 'portrait.png')
        response = admin_client.post('/members', data=form, content_type='multipart/form-data')

        assert response.status_code == 201, response.get_json()
        data = response.get_json()['data']
        assert data['parents']['father']['id'] == father['id']
        assert data['image'].endswith('_portrait.png')
        assert os.path.isfile(data['image'])

        husband = _body('عمر', wives=[str(w1['id'])])
        response = admin_client.post('/members', data=husband, content_type='multipart/form-data')
        assert [w['id'] for w in response.get_json()['data']['wives']] == [w1['id']]

    def test_rejected_extension(self, admin_client, uploads):
        form = _body('حسن')
        form['image'] = (io.BytesIO(b'MZ'), 'virus.exe')

        response = admin_client.post('/members', data=form, content_type='multipart/form-data')

        assert response.status_code == 400
        assert response.get_json()['message'] == 'Unsupported image type'

    def test_failed_create_discards_upload(self, admin_client, uploads):
        form = {'fname': 'حسن', 'image': (io.BytesIO(b'\x89PNG'), 'a.png')}

        response = admin_client.post('/members', data=form, content_type='multipart/form-data')

        assert response.status_code == 400
        assert list(uploads.iterdir()) == []
