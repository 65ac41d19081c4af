"""Members blueprint – family-tree members JSON API."""
from flask import Blueprint

members_bp = Blueprint('members', __name__, url_prefix='/members')

# Login and permission checks are applied per route (see routes.py)

from . import routes  # noqa: E402,F401
