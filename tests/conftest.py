"""
Shared pytest fixtures for the family tree test suite.

All tests run against an in-memory SQLite database (TestingConfig).
Each test gets its own app context (so Flask-Login's per-context user cache
never leaks between tests) and clean_db wipes all rows afterwards so tests
are fully independent.
"""
import pytest
from app import create_app
from extensions import db as _db
from models.members import MALE, FEMALE, SON, FAMILY_BRANCHES

PASSWORD = 'TestPass1!'
BRANCH = FAMILY_BRANCHES[0]
OTHER_BRANCH = FAMILY_BRANCHES[1]


# ---------------------------------------------------------------------------
# Application / database lifecycle
# ---------------------------------------------------------------------------

@pytest.fixture(scope='session')
def app():
    """Create a test Flask application with an in-memory SQLite database."""
    application = create_app('testing')
    with application.app_context():
        _db.create_all()
    yield application
    with application.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(autouse=True)
def app_ctx(app):
    ctx = app.app_context()
    ctx.push()
    yield
    ctx.pop()


@pytest.fixture(autouse=True)
def clean_db(app_ctx):
    """Wipe every table after each test so tests never share state."""
    yield
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    _db.session.expunge_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ---------------------------------------------------------------------------
# Common model helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(app):
    """Factory: an accepted user, optionally with roles and permissions."""
    from models.users import User, STATUS_ACCEPTED

    def _make(email='user@example.com', roles=('user',), permissions=None,
              status=STATUS_ACCEPTED, password=PASSWORD):
        u = User(email=email, phone='0500000000', family_branch=BRANCH,
                 family_relationship=SON, status=status)
        u.set_password(password)
        u.set_roles(roles)
        if permissions:
            u.set_permissions(permissions)
        _db.session.add(u)
        _db.session.commit()
        return u
    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user(email='admin@example.com', roles=('admin', 'user'))


@pytest.fixture
def make_member(app):
    """Factory: create a member through MemberService with sensible defaults."""
    from services.member_service import MemberService

    def _make(fname, lname='الأحمد', gender=MALE, relationship=SON, branch=BRANCH, **extra):
        payload = {
            'fname': fname,
            'lname': lname,
            'gender': gender,
            'familyBranch': branch,
            'familyRelationship': relationship,
        }
        payload.update(extra)
        return MemberService.create_member(payload)
    return _make


@pytest.fixture
def login():
    """Return a helper that logs *client* in through the JSON login endpoint."""
    def _login(client, email, password=PASSWORD):
        response = client.post('/auth/login', json={'email': email, 'password': password})
        assert response.status_code == 200, response.get_json()
        return response
    return _login


@pytest.fixture
def admin_client(client, admin_user, login):
    login(client, admin_user.email)
    return client


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing mail instead of talking to an SMTP server."""
    outbox = []

    def _capture(message, recipients):
        outbox.append({'subject': message['Subject'], 'to': list(recipients), 'message': message})

    monkeypatch.setattr('services.email_service._deliver', _capture)
    return outbox
