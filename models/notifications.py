"""
In-app notifications.

One row per recipient.  Rows are created by
``NotificationService.notify_users_with_permission`` after a member is
created, updated or deleted.
"""
from datetime import datetime, timezone

from extensions import db


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


PRIORITIES = ('low', 'medium', 'high')


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'),
                        nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'),
                          nullable=True)
    message = db.Column(db.String(255), nullable=False)
    action = db.Column(db.String(20), nullable=False)  # create | update | delete
    entity_type = db.Column(db.String(50), nullable=False)
    # No FK: the entity may already be gone (delete notifications)
    entity_id = db.Column(db.Integer, nullable=True)
    priority = db.Column(db.String(10), nullable=False, default='medium')
    status = db.Column(db.String(20), nullable=False, default='sent')
    is_read = db.Column('read', db.Boolean, nullable=False, default=False, index=True)
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False, index=True)

    user = db.relationship('User', foreign_keys=[user_id], back_populates='notifications')
    sender = db.relationship('User', foreign_keys=[sender_id], back_populates='sent_notifications')

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = _utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'recipient': self.user_id,
            'sender': {'id': self.sender_id},
            'message': self.message,
            'action': self.action,
            'entity': {'type': self.entity_type, 'id': self.entity_id},
            'metadata': {'priority': self.priority},
            'status': self.status,
            'read': self.is_read,
            'readAt': self.read_at.isoformat() if self.read_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Notification {self.action} {self.entity_type}:{self.entity_id} -> {self.user_id}>'
