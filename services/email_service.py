"""
Email Service
=============
Transactional emails sent over SMTP.

  send_welcome_email()           - registration received, pending review
  send_account_status_email()    - account accepted / rejected
  send_password_reset_email()    - reset link
  email_users_with_permission()  - broadcast to users holding a permission

All messages share the RTL layout in ``templates/emails/layout.html`` and,
when MAIL_LOGO_PATH points at an image, embed it inline as ``cid:logo``.

Failure policy: welcome and permission broadcasts log and swallow errors;
account-status and password-reset log and raise ``EmailDeliveryError``.
"""
import os
import smtplib
from datetime import datetime
from email.mime.image import MIMEImage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template
from markupsafe import Markup

from models.users import User, STATUS_ACCEPTED, STATUS_REJECTED
from utils.errors import EmailDeliveryError

PRIMARY_COLOR = '#2F80A2'
SECONDARY_COLOR = '#f5f5f5'


def render_email(template, **context):
    """Render a body template and wrap it in the shared layout."""
    config = current_app.config
    context.setdefault('support_email', config.get('SUPPORT_EMAIL'))
    context.setdefault('primary_color', PRIMARY_COLOR)
    content = render_template(template, **context)
    return render_layout(content)


def render_layout(content):
    return render_template(
        'emails/layout.html',
        content=Markup(content),
        primary_color=PRIMARY_COLOR,
        secondary_color=SECONDARY_COLOR,
        year=datetime.now().year,
    )


def build_message(recipients, subject, html):
    """Build a MIME message with an optional inline logo."""
    config = current_app.config

    message = MIMEMultipart('related')
    message['Subject'] = subject
    message['From'] = config['MAIL_DEFAULT_SENDER']
    message['To'] = ', '.join(recipients)

    body = MIMEMultipart('alternative')
    body.attach(MIMEText(html, 'html', 'utf-8'))
    message.attach(body)

    logo_path = config.get('MAIL_LOGO_PATH')
    if logo_path and os.path.isfile(logo_path):
        with open(logo_path, 'rb') as fh:
            logo = MIMEImage(fh.read())
        logo.add_header('Content-ID', '<logo>')
        logo.add_header('Content-Disposition', 'inline', filename=os.path.basename(logo_path))
        message.attach(logo)

    return message


def _deliver(message, recipients):
    """Hand *message* to the configured SMTP server."""
    config = current_app.config
    if config.get('MAIL_SUPPRESS_SEND'):
        current_app.logger.info(
            f"Email suppressed (MAIL_SUPPRESS_SEND): '{message['Subject']}' to {', '.join(recipients)}")
        return

    host = config['MAIL_SERVER']
    port = config['MAIL_PORT']
    timeout = config.get('MAIL_TIMEOUT', 30)
    smtp_class = smtplib.SMTP_SSL if config.get('MAIL_USE_SSL') else smtplib.SMTP

    with smtp_class(host, port, timeout=timeout) as server:
        if config.get('MAIL_USE_TLS') and not config.get('MAIL_USE_SSL'):
            server.starttls()
        if config.get('MAIL_USERNAME'):
            server.login(config['MAIL_USERNAME'], config['MAIL_PASSWORD'])
        server.send_message(message, to_addrs=recipients)


def send_email(recipients, subject, html):
    """Build and deliver one message. Raises on delivery failure."""
    if isinstance(recipients, str):
        recipients = [recipients]
    message = build_message(recipients, subject, html)
    _deliver(message, recipients)


# ---------------------------------------------------------------------------
# Transactional emails
# ---------------------------------------------------------------------------

def send_welcome_email(user):
    """Registration received; account is under review. Never raises."""
    try:
        html = render_email('emails/welcome.html')
        send_email(user.email, 'مرحبًا بكم في منصتنا - الحساب قيد المراجعة', html)
    except Exception as exc:
        current_app.logger.error(f'Error sending welcome email to {user.email}: {exc}')
        return False
    current_app.logger.info(f'Welcome email sent to {user.email}')
    return True


def send_account_status_email(user):
    """Tell the user their account was accepted or rejected.

    Skips (returns False) when the user has no email/status or the status is
    still pending.  Delivery errors are logged and re-raised as
    ``EmailDeliveryError``.
    """
    if user is None or not user.email or not user.status:
        current_app.logger.error('Invalid user object - missing email or status')
        return False

    if user.status not in (STATUS_ACCEPTED, STATUS_REJECTED):
        current_app.logger.info(f'Skipping email for status: {user.status}')
        return False

    if user.status == STATUS_ACCEPTED:
        subject = 'تم تفعيل حسابك بنجاح'
        template = 'emails/account_accepted.html'
    else:
        subject = 'حالة طلب التسجيل'
        template = 'emails/account_rejected.html'

    try:
        html = render_email(template, login_url=current_app.config.get('FRONTEND_LOGIN_URL'))
        send_email(user.email, subject, html)
    except Exception as exc:
        current_app.logger.error(f'Error sending account status email to {user.email}: {exc}')
        raise EmailDeliveryError('Failed to send account status email') from exc

    current_app.logger.info(f'Account status email sent to {user.email}')
    return True


def send_password_reset_email(email, reset_url):
    """Send the reset link. Delivery errors raise ``EmailDeliveryError``."""
    try:
        html = render_email('emails/password_reset.html', reset_url=reset_url)
        send_email(email, 'إعادة تعيين كلمة المرور الخاصة بك', html)
    except Exception as exc:
        current_app.logger.error(f'Error sending password reset email to {email}: {exc}')
        raise EmailDeliveryError('Failed to send password reset email') from exc
    current_app.logger.info(f'Password reset email sent to {email}')
    return True


def email_users_with_permission(entity, action, subject, content):
    """Send one email to every user allowed to *action* on *entity*. Never raises."""
    try:
        users = User.with_permission(entity, action).all()
        emails = [u.email for u in users if u.email]
        if not emails:
            current_app.logger.info(f'No users found with permission to {action} {entity}')
            return 0
        send_email(emails, subject, render_layout(content))
    except Exception as exc:
        current_app.logger.error(f'Error sending email to permitted users: {exc}')
        return 0

    current_app.logger.info(
        f"Email sent to {len(emails)} user(s) with '{action}' access on '{entity}'")
    return len(emails)
