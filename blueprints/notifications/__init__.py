"""Notifications blueprint – the current user's in-app notifications."""
from flask import Blueprint
from flask_login import login_required

notifications_bp = Blueprint('notifications', __name__, url_prefix='/notifications')


# Require authentication for all routes in this blueprint
@notifications_bp.before_request
@login_required
def require_login():
    pass


from . import routes  # noqa: E402,F401
