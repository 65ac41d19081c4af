"""
Tests for /auth: registration, login gating by account status, lockout and
the password-reset flow.
"""
import pytest

from extensions import db
from models.members import FAMILY_BRANCHES
from models.users import User, STATUS_PENDING, STATUS_REJECTED


def _html_body(message):
    for part in message.walk():
        if part.get_content_type() == 'text/html':
            return part.get_payload(decode=True).decode('utf-8')
    return ''


def _registration(**changes):
    data = {
        'email': 'new@example.com',
        'password': 'NewPass1!x',
        'phone': 966500000000,
        'address': 'الرياض',
        'familyBranch': FAMILY_BRANCHES[0],
        'familyRelationship': 'ابن',
    }
    data.update(changes)
    return data


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class TestRegister:
    def test_register_creates_pending_user(self, client, sent_emails):
        response = client.post('/auth/register', json=_registration())

        assert response.status_code == 201
        user = User.query.filter_by(email='new@example.com').one()
        assert user.status == STATUS_PENDING
        assert user.get_roles() == ['user']
        assert user.phone == '966500000000'
        assert [m['to'] for m in sent_emails] == [['new@example.com']]

    def test_register_links_member(self, client, sent_emails, make_member):
        member = make_member('علي')

        response = client.post('/auth/register', json=_registration(memberId=member.id))

        assert response.status_code == 201
        assert response.get_json()['data']['memberId'] == member.id
        db.session.expire_all()
        assert member.is_user is True

    def test_member_already_linked(self, client, sent_emails, make_member, make_user):
        member = make_member('علي')
        existing = make_user(email='first@example.com')
        existing.member = member
        db.session.commit()

        response = client.post('/auth/register', json=_registration(memberId=member.id))

        assert response.status_code == 400
        assert 'already linked' in response.get_json()['message']

    def test_duplicate_email(self, client, sent_emails, make_user):
        make_user(email='new@example.com')

        response = client.post('/auth/register', json=_registration())

        assert response.status_code == 400

    @pytest.mark.parametrize('changes', [
        {'password': 'short'},
        {'email': 'not-an-email'},
        {'familyBranch': 'nowhere'},
        {'phone': None},
    ])
    def test_invalid_registration(self, client, sent_emails, changes):
        response = client.post('/auth/register', json=_registration(**changes))

        assert response.status_code == 400
        assert response.get_json()['success'] is False
        assert User.query.count() == 0

    def test_welcome_email_failure_does_not_fail_registration(self, client, monkeypatch):
        def _refuse(message, recipients):
            raise OSError('connection refused')

        monkeypatch.setattr('services.email_service._deliver', _refuse)

        response = client.post('/auth/register', json=_registration())

        assert response.status_code == 201


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------

class TestLogin:
    def test_login_and_me(self, client, make_user, login):
        make_user(email='ali@example.com')

        login(client, 'ali@example.com')
        response = client.get('/auth/me')

        assert response.status_code == 200
        assert response.get_json()['data']['email'] == 'ali@example.com'

    def test_wrong_password(self, client, make_user):
        make_user(email='ali@example.com')

        response = client.post('/auth/login', json={'email': 'ali@example.com', 'password': 'nope'})

        assert response.status_code == 401
        assert 'attempts remaining' in response.get_json()['message']

    def test_unknown_email(self, client):
        response = client.post('/auth/login', json={'email': 'ghost@example.com', 'password': 'x'})
        assert response.status_code == 401

    @pytest.mark.parametrize('status, fragment', [
        (STATUS_PENDING, 'pending'),
        (STATUS_REJECTED, 'rejected'),
    ])
    def test_unaccepted_accounts_cannot_login(self, client, make_user, status, fragment):
        make_user(email='ali@example.com', status=status)

        response = client.post('/auth/login', json={'email': 'ali@example.com', 'password': 'TestPass1!'})

        assert response.status_code == 403
        assert fragment in response.get_json()['message']

    def test_lockout_after_repeated_failures(self, client, app, make_user):
        make_user(email='ali@example.com')

        for _ in range(app.config['MAX_LOGIN_ATTEMPTS']):
            client.post('/auth/login', json={'email': 'ali@example.com', 'password': 'bad'})
        response = client.post('/auth/login', json={'email': 'ali@example.com', 'password': 'TestPass1!'})

        assert response.status_code == 403
        assert 'locked' in response.get_json()['message']

    def test_logout(self, client, make_user, login):
        make_user(email='ali@example.com')
        login(client, 'ali@example.com')

        assert client.post('/auth/logout').status_code == 200
        assert client.get('/auth/me').status_code == 401


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

class TestPasswordReset:
    def test_forgot_password_sends_link(self, client, app, make_user, sent_emails):
        make_user(email='ali@example.com')

        response = client.post('/auth/forgot-password', json={'email': 'ali@example.com'})

        assert response.status_code == 200
        db.session.expire_all()
        token = User.query.filter_by(email='ali@example.com').one().reset_password_token
        assert token
        html = _html_body(sent_emails[0]['message'])
        assert sent_emails[0]['to'] == ['ali@example.com']
        assert token in html

    def test_unknown_email_still_succeeds(self, client, sent_emails):
        response = client.post('/auth/forgot-password', json={'email': 'ghost@example.com'})

        assert response.status_code == 200
        assert sent_emails == []

    def test_reset_with_token(self, client, make_user, login):
        user = make_user(email='ali@example.com')
        token = user.generate_reset_token()
        db.session.commit()

        response = client.post(f'/auth/reset-password/{token}', json={'password': 'Brand3New!'})

        assert response.status_code == 200
        login(client, 'ali@example.com', password='Brand3New!')
        db.session.expire_all()
        assert User.query.filter_by(email='ali@example.com').one().reset_password_token is None

    def test_reset_with_bad_token(self, client, make_user):
        make_user(email='ali@example.com')

        response = client.post('/auth/reset-password/not-a-token', json={'password': 'Brand3New!'})

        assert response.status_code == 400
        assert 'invalid or has expired' in response.get_json()['message']
