"""
Tests for the User model: password hashing, roles, entity permissions,
login lockout and password-reset tokens.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from extensions import db
from models.users import User, STATUS_PENDING


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def user(make_user):
    return make_user(email='member@example.com')


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

class TestPasswordHashing:
    def test_correct_password_accepted(self, app, user):
        assert user.check_password('TestPass1!') is True

    def test_wrong_password_rejected(self, app, user):
        assert user.check_password('WrongPass99!') is False

    def test_password_is_hashed(self, app, user):
        assert user.password_hash != 'TestPass1!', \
            "password_hash must store a hash, not the plain-text password"


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

class TestRoles:
    def test_roles_stored_as_sorted_json(self, app, user):
        user.set_roles(['user', 'admin', 'user'])
        db.session.commit()

        assert json.loads(user.roles) == ['admin', 'user']

    def test_add_and_remove_role(self, app, user):
        assert user.add_role('admin') is True
        assert user.add_role('admin') is False
        assert user.is_admin is True

        assert user.remove_role('admin') is True
        assert user.remove_role('admin') is False
        assert user.is_admin is False

    def test_has_any_role(self, app, user):
        assert user.has_any_role(['admin', 'user']) is True
        assert user.has_any_role(['admin']) is False

    def test_garbage_roles_read_as_empty(self, app, user):
        user.roles = 'not json'
        assert user.get_roles() == []


# ---------------------------------------------------------------------------
# Entity permissions
# ---------------------------------------------------------------------------

class TestPermissions:
    def test_no_rows_means_no_access(self, app, user):
        assert user.has_permission('member', 'view') is False
        assert user.get_permissions() == {}

    def test_set_permissions_fills_missing_actions(self, app, user):
        user.set_permissions({'member': {'view': True}})
        db.session.commit()

        assert user.get_permissions() == {
            'member': {'view': True, 'create': False, 'update': False, 'delete': False},
        }
        assert user.has_permission('member', 'view') is True
        assert user.has_permission('member', 'delete') is False

    def test_set_permissions_replaces_mapping(self, app, user):
        user.set_permissions({'member': {'view': True}, 'notification': {'view': True}})
        db.session.commit()
        user.set_permissions({'notification': {'view': False}})
        db.session.commit()

        assert set(user.get_permissions()) == {'notification'}
        assert user.has_permission('member', 'view') is False

    def test_grant_keeps_existing_flags(self, app, user):
        user.set_permissions({'member': {'view': True}})
        user.grant('member', 'update', 'delete')
        db.session.commit()

        flags = user.get_permissions()['member']
        assert flags == {'view': True, 'create': False, 'update': True, 'delete': True}

    @pytest.mark.parametrize('mapping', [
        {'planets': {'view': True}},
        {'member': {'fly': True}},
        {'member': {'view': 'yes'}},
        {'member': True},
        ['member'],
    ])
    def test_invalid_mapping_rejected(self, app, user, mapping):
        with pytest.raises(ValueError):
            user.set_permissions(mapping)

    def test_admin_role_passes_every_check(self, app, admin_user):
        assert admin_user.has_permission('member', 'delete') is True
        assert admin_user.has_permission('user', 'update') is True

    def test_with_permission_matches_rows_only(self, app, make_user, admin_user):
        viewer = make_user(email='viewer@example.com', permissions={'member': {'view': True}})
        make_user(email='editor@example.com', permissions={'member': {'update': True}})

        emails = {u.email for u in User.with_permission('member', 'view').all()}

        assert emails == {viewer.email}

    def test_with_permission_rejects_unknown_action(self, app):
        with pytest.raises(ValueError):
            User.with_permission('member', 'fly')


# ---------------------------------------------------------------------------
# Login lockout
# ---------------------------------------------------------------------------

class TestLoginLockout:
    def test_account_not_locked_initially(self, app, user):
        assert user.is_locked() is False

    def test_lockout_applied_after_max_attempts(self, app, user):
        max_attempts = app.config['MAX_LOGIN_ATTEMPTS']
        for _ in range(max_attempts):
            user.record_failed_login()

        assert user.is_locked() is True
        assert user.locked_until is not None

    def test_failed_attempts_below_threshold_do_not_lock(self, app, user):
        max_attempts = app.config['MAX_LOGIN_ATTEMPTS']
        for _ in range(max_attempts - 1):
            user.record_failed_login()

        assert user.is_locked() is False

    def test_reset_clears_lockout(self, app, user):
        max_attempts = app.config['MAX_LOGIN_ATTEMPTS']
        for _ in range(max_attempts):
            user.record_failed_login()

        assert user.is_locked() is True

        user.reset_failed_logins()

        assert user.is_locked() is False
        assert user.failed_login_attempts == 0
        assert user.locked_until is None

    def test_expired_lockout_is_not_locked(self, app, user):
        """A locked_until timestamp in the past should not count as locked."""
        user.locked_until = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(minutes=1)
        db.session.commit()

        assert user.is_locked() is False


# ---------------------------------------------------------------------------
# Password reset tokens
# ---------------------------------------------------------------------------

class TestResetToken:
    def test_generated_token_is_valid(self, app, user):
        token = user.generate_reset_token()
        db.session.commit()

        assert user.reset_token_is_valid(token) is True
        assert user.reset_token_is_valid('other') is False

    def test_expired_token_is_invalid(self, app, user):
        token = user.generate_reset_token()
        user.reset_password_expires = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(seconds=1)
        db.session.commit()

        assert user.reset_token_is_valid(token) is False

    def test_clear_reset_token(self, app, user):
        token = user.generate_reset_token()
        user.clear_reset_token()

        assert user.reset_token_is_valid(token) is False


class TestSerialisation:
    def test_to_dict_hides_secrets(self, app, make_user):
        u = make_user(email='pending@example.com', status=STATUS_PENDING,
                      permissions={'member': {'view': True}})
        data = u.to_dict()

        assert 'password_hash' not in data and 'passwordHash' not in data
        assert data['status'] == STATUS_PENDING
        assert data['permissions']['member']['view'] is True
        assert data['roles'] == ['user']
