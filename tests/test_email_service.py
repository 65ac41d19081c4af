"""
Tests for the email service: failure policies per message type, the shared
layout and SMTP delivery settings.
"""
import pytest

from services import email_service
from models.users import STATUS_ACCEPTED, STATUS_PENDING, STATUS_REJECTED
from utils.errors import EmailDeliveryError


def _refuse(message, recipients):
    raise OSError('connection refused')


def _html(message):
    for part in message.walk():
        if part.get_content_type() == 'text/html':
            return part.get_payload(decode=True).decode('utf-8')
    return ''


class TestAccountStatusEmail:
    def test_accepted_uses_login_url(self, app, make_user, sent_emails, monkeypatch):
        monkeypatch.setitem(app.config, 'FRONTEND_LOGIN_URL', 'https://tree.example.com/login')
        user = make_user(email='a@example.com', status=STATUS_ACCEPTED)

        assert email_service.send_account_status_email(user) is True
        assert sent_emails[0]['subject'] == 'تم تفعيل حسابك بنجاح'
        assert 'https://tree.example.com/login' in _html(sent_emails[0]['message'])

    def test_rejected_subject(self, app, make_user, sent_emails):
        user = make_user(email='a@example.com', status=STATUS_REJECTED)

        email_service.send_account_status_email(user)

        assert sent_emails[0]['subject'] == 'حالة طلب التسجيل'

    def test_pending_is_skipped(self, app, make_user, sent_emails):
        user = make_user(email='a@example.com', status=STATUS_PENDING)

        assert email_service.send_account_status_email(user) is False
        assert sent_emails == []

    def test_missing_user_is_skipped(self, app, sent_emails):
        assert email_service.send_account_status_email(None) is False

    def test_delivery_failure_raises(self, app, make_user, monkeypatch):
        monkeypatch.setattr(email_service, '_deliver', _refuse)
        user = make_user(email='a@example.com', status=STATUS_ACCEPTED)

        with pytest.raises(EmailDeliveryError):
            email_service.send_account_status_email(user)


class TestOtherEmails:
    def test_welcome_failure_is_swallowed(self, app, make_user, monkeypatch):
        monkeypatch.setattr(email_service, '_deliver', _refuse)
        user = make_user(email='a@example.com')

        assert email_service.send_welcome_email(user) is False

    def test_password_reset_failure_raises(self, app, monkeypatch):
        monkeypatch.setattr(email_service, '_deliver', _refuse)

        with pytest.raises(EmailDeliveryError):
            email_service.send_password_reset_email('a@example.com', 'https://x.example.com/r/1')

    def test_broadcast_without_recipients(self, app, sent_emails):
        assert email_service.email_users_with_permission('member', 'view', 'subject', '<p>x</p>') == 0
        assert sent_emails == []

    def test_broadcast_failure_is_swallowed(self, app, make_user, monkeypatch):
        monkeypatch.setattr(email_service, '_deliver', _refuse)
        make_user(email='a@example.com', permissions={'member': {'view': True}})

        assert email_service.email_users_with_permission('member', 'view', 'subject', '<p>x</p>') == 0


class TestLayout:
    def test_layout_is_rtl_and_wraps_content(self, app):
        html = email_service.render_layout('<p>مرحبا</p>')

        assert 'dir="rtl"' in html
        assert '<p>مرحبا</p>' in html

    def test_inline_logo_attached(self, app, tmp_path, monkeypatch):
        logo = tmp_path / 'logo.png'
        logo.write_bytes(b'\x89PNG\r\n\x1a\n' + b'\x00' * 16)
        monkeypatch.setitem(app.config, 'MAIL_LOGO_PATH', str(logo))

        message = email_service.build_message(['a@example.com'], 'subject', '<p>x</p>')

        ids = [part['Content-ID'] for part in message.walk() if part['Content-ID']]
        assert ids == ['<logo>']


class TestDelivery:
    class FakeSMTP:
        instances = []

        def __init__(self, host, port, timeout=None):
            self.host, self.port = host, port
            self.calls = []
            TestDelivery.FakeSMTP.instances.append(self)

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            self.calls.append('starttls')

        def login(self, username, password):
            self.calls.append(('login', username))

        def send_message(self, message, to_addrs=None):
            self.calls.append(('send', tuple(to_addrs)))

    @pytest.fixture(autouse=True)
    def smtp(self, app, monkeypatch):
        TestDelivery.FakeSMTP.instances = []
        monkeypatch.setattr(email_service.smtplib, 'SMTP', TestDelivery.FakeSMTP)
        monkeypatch.setattr(email_service.smtplib, 'SMTP_SSL', TestDelivery.FakeSMTP)
        monkeypatch.setitem(app.config, 'MAIL_SUPPRESS_SEND', False)
        monkeypatch.setitem(app.config, 'MAIL_USERNAME', 'mailer@example.com')
        monkeypatch.setitem(app.config, 'MAIL_PASSWORD', 'secret')

    def test_starttls_when_not_ssl(self, app, monkeypatch):
        monkeypatch.setitem(app.config, 'MAIL_USE_SSL', False)
        monkeypatch.setitem(app.config, 'MAIL_USE_TLS', True)

        email_service.send_email('a@example.com', 'subject', '<p>x</p>')

        server = TestDelivery.FakeSMTP.instances[0]
        assert server.calls == [
            'starttls', ('login', 'mailer@example.com'), ('send', ('a@example.com',)),
        ]

    def test_ssl_skips_starttls(self, app, monkeypatch):
        monkeypatch.setitem(app.config, 'MAIL_USE_SSL', True)
        monkeypatch.setitem(app.config, 'MAIL_USE_TLS', True)

        email_service.send_email(['a@example.com', 'b@example.com'], 'subject', '<p>x</p>')

        server = TestDelivery.FakeSMTP.instances[0]
        assert 'starttls' not in server.calls
        assert server.calls[-1] == ('send', ('a@example.com', 'b@example.com'))

    def test_suppressed_send_never_connects(self, app, monkeypatch):
        monkeypatch.setitem(app.config, 'MAIL_SUPPRESS_SEND', True)

        email_service.send_email('a@example.com', 'subject', '<p>x</p>')

        assert TestDelivery.FakeSMTP.instances == []
