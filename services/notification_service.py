"""
Notification Service
====================
Fan-out of member events to every user holding a matching permission.

Dispatch happens after the triggering mutation has committed.  It is
at-most-once and never raises: failures are logged and the notification
rows are rolled back, leaving the committed mutation untouched.
"""
from flask import current_app

from extensions import db
from models.notifications import Notification
from models.users import User
from utils.permissions import ENTITY_MEMBER

# Event wording shown in the app (Arabic UI)
MEMBER_EVENTS = {
    'create': {'message': 'تم إنشاء عضو جديد', 'audience': 'view'},
    'update': {'message': 'تم تعديل عضو', 'audience': 'update'},
    'delete': {'message': 'تم حذف عضو', 'audience': 'delete'},
}


def build_event(sender_id, message, action, entity_type, entity_id=None, priority='medium'):
    """Event payload in the shape ``notify_users_with_permission`` expects."""
    return {
        'sender': {'id': sender_id},
        'message': message,
        'action': action,
        'entity': {'type': entity_type, 'id': entity_id},
        'metadata': {'priority': priority},
        'status': 'sent',
        'read': False,
        'readAt': None,
    }


class NotificationService:

    @staticmethod
    def notify_users_with_permission(permission_filter, event):
        """
        Create one Notification per user matching *permission_filter*.

        Args:
            permission_filter: ``{'entity': str, 'action': str, 'value': bool}``
            event:             payload from ``build_event``.

        Returns:
            int - number of notifications created (0 on failure).
        """
        entity = permission_filter['entity']
        action = permission_filter['action']
        try:
            recipients = User.with_permission(
                entity, action, permission_filter.get('value', True)).all()

            sender_id = (event.get('sender') or {}).get('id')
            target = event.get('entity') or {}
            for user in recipients:
                db.session.add(Notification(
                    user_id=user.id,
                    sender_id=sender_id,
                    message=event['message'],
                    action=event['action'],
                    entity_type=target.get('type', entity),
                    entity_id=target.get('id'),
                    priority=(event.get('metadata') or {}).get('priority', 'medium'),
                    status=event.get('status', 'sent'),
                    is_read=bool(event.get('read', False)),
                ))
            db.session.commit()
        except Exception as exc:  # notifications must never fail the caller
            db.session.rollback()
            current_app.logger.error(
                f"Failed to notify users with '{action}' on '{entity}': {exc}")
            return 0

        current_app.logger.info(
            f"Notified {len(recipients)} user(s) with '{action}' on '{entity}': {event['message']}")

        if recipients and current_app.config.get('NOTIFY_BY_EMAIL'):
            from services.email_service import email_users_with_permission
            email_users_with_permission(
                entity=entity,
                action=action,
                subject=event['message'],
                content=f"<p style=\"margin: 10px 0;\">{event['message']}</p>",
            )
        return len(recipients)

    @staticmethod
    def notify_member_event(action, member_id, sender_id=None):
        """Notify about a member being created, updated or deleted."""
        event_type = MEMBER_EVENTS[action]
        event = build_event(
            sender_id=sender_id,
            message=event_type['message'],
            action=action,
            entity_type=ENTITY_MEMBER,
            entity_id=member_id,
        )
        return NotificationService.notify_users_with_permission(
            {'entity': ENTITY_MEMBER, 'action': event_type['audience'], 'value': True},
            event,
        )

    # ------------------------------------------------------------------
    # Recipient side
    # ------------------------------------------------------------------

    @staticmethod
    def list_for_user(user_id, page=1, per_page=20, unread_only=False):
        query = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()) \
            .paginate(page=page, per_page=per_page, error_out=False)

    @staticmethod
    def mark_read(user_id, notification_id):
        """Mark one of the user's notifications read; ``None`` if not theirs."""
        notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
        if notification is None:
            return None
        notification.mark_read()
        db.session.commit()
        return notification

    @staticmethod
    def mark_all_read(user_id):
        unread = Notification.query.filter_by(user_id=user_id, is_read=False).all()
        for notification in unread:
            notification.mark_read()
        db.session.commit()
        return len(unread)
