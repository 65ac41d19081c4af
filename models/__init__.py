# Models package - Import all models for Flask-SQLAlchemy

from models.members import Member
from models.notifications import Notification
from models.users import User, UserPermission

__all__ = [
    'Member',
    'Notification',
    'User',
    'UserPermission',
]
