"""
Permission helpers for entity-level access control.

Every user carries a permission mapping of the form::

    {
        'member':       {'view': True, 'create': True, 'update': False, 'delete': False},
        'notification': {'view': True, 'create': False, 'update': False, 'delete': False},
    }

stored one row per entity in ``user_permissions``.  Users holding the
``admin`` role bypass every check.

Entity keys
───────────
    member         family-tree members (/members)
    user           user accounts (/users)
    notification   in-app notifications
"""
from functools import wraps

from flask_login import current_user, login_required

from utils.errors import AuthorizationError

# ── Registry ──────────────────────────────────────────────────────────────────

PERMISSION_ACTIONS = ('view', 'create', 'update', 'delete')

ENTITY_MEMBER = 'member'
ENTITY_USER = 'user'
ENTITY_NOTIFICATION = 'notification'

# Human-readable labels (Arabic UI)
ENTITY_LABELS = {
    ENTITY_MEMBER:       'عضو',
    ENTITY_USER:         'مستخدم',
    ENTITY_NOTIFICATION: 'إشعار',
}

PERMISSION_ENTITIES = tuple(ENTITY_LABELS)

ROLE_ADMIN = 'admin'
ROLE_USER = 'user'


def normalize_permissions(mapping):
    """Validate a permission mapping and fill in missing actions as False.

    Raises ``ValueError`` for unknown entities, unknown actions or
    non-boolean flags.
    """
    if not isinstance(mapping, dict):
        raise ValueError('Permissions must be an object keyed by entity')

    normalized = {}
    for entity, actions in mapping.items():
        if entity not in PERMISSION_ENTITIES:
            raise ValueError(f"Unknown permission entity '{entity}'")
        if not isinstance(actions, dict):
            raise ValueError(f"Permissions for '{entity}' must be an object")
        flags = {action: False for action in PERMISSION_ACTIONS}
        for action, value in actions.items():
            if action not in PERMISSION_ACTIONS:
                raise ValueError(f"Unknown permission action '{action}'")
            if not isinstance(value, bool):
                raise ValueError(f"Permission '{entity}.{action}' must be true or false")
            flags[action] = value
        normalized[entity] = flags
    return normalized


def permission_required(entity, action):
    """Route decorator: require login plus ``entity.action`` permission."""
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.has_permission(entity, action):
                raise AuthorizationError(
                    f"You do not have permission to {action} {entity} records"
                )
            return view(*args, **kwargs)
        return login_required(wrapped)
    return decorator


def admin_required(view):
    """Route decorator: require login plus the admin role."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not current_user.is_admin:
            raise AuthorizationError('Admin access required')
        return view(*args, **kwargs)
    return login_required(wrapped)
