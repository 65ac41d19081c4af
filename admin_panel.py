"""
Flask-Admin panel for the family tree
Accessible at /admin - restricted to users flagged is_site_admin
"""
from flask import abort
from flask_admin import Admin, AdminIndexView, expose
from flask_admin.contrib.sqla import ModelView
from flask_admin.theme import Bootstrap4Theme
from flask_login import current_user


def _is_site_admin():
    return current_user.is_authenticated and current_user.is_site_admin


# ---------------------------------------------------------------------------
# Base secure views
# ---------------------------------------------------------------------------

class SecureAdminIndexView(AdminIndexView):
    """Admin home page - checks for site admin before rendering."""

    @expose('/')
    def index(self):
        if not _is_site_admin():
            abort(403)
        return super().index()

    def is_accessible(self):
        return _is_site_admin()

    def inaccessible_callback(self, name, **kwargs):
        abort(403)


class SecureModelView(ModelView):
    """Full CRUD model view - site admin only."""

    can_export = True
    page_size = 50
    column_display_pk = True

    def __init__(self, model, session, **kwargs):
        # Prefix endpoints with 'admin_' so they never clash with app blueprints
        # ('members', 'users', 'notifications').
        if 'endpoint' not in kwargs:
            kwargs['endpoint'] = f'admin_{model.__name__.lower()}'
        super().__init__(model, session, **kwargs)

    def is_accessible(self):
        return _is_site_admin()

    def inaccessible_callback(self, name, **kwargs):
        abort(403)


class ReadOnlyModelView(SecureModelView):
    """Read-only view; rows are changed through the API so links stay consistent."""

    can_create = False
    can_edit = False
    can_delete = False


# ---------------------------------------------------------------------------
# Customised model views
# ---------------------------------------------------------------------------

class UserAdminView(SecureModelView):
    """Users - hide password hash and reset token."""
    can_create = False
    column_exclude_list = ['password_hash', 'reset_password_token']
    form_excluded_columns = [
        'password_hash', 'reset_password_token', 'reset_password_expires',
        'member', 'permission_rows', 'notifications', 'sent_notifications',
    ]
    column_searchable_list = ['email', 'phone']
    column_filters = ['status', 'family_branch', 'is_active', 'is_site_admin']
    column_list = [
        'id', 'email', 'status', 'roles', 'family_branch', 'family_relationship',
        'member_id', 'is_active', 'is_site_admin', 'last_login', 'created_at',
        'failed_login_attempts', 'locked_until',
    ]


class MemberAdminView(ReadOnlyModelView):
    column_searchable_list = ['full_name', 'fname', 'lname']
    column_filters = ['family_branch', 'family_relationship', 'gender', 'is_user']
    column_list = [
        'id', 'full_name', 'gender', 'family_branch', 'family_relationship',
        'husband_id', 'father_id', 'mother_id', 'is_user', 'created_at',
    ]


class PermissionAdminView(SecureModelView):
    column_filters = ['entity', 'user_id']
    column_list = ['id', 'user_id', 'entity', 'can_view', 'can_create', 'can_update', 'can_delete']


class NotificationAdminView(ReadOnlyModelView):
    can_delete = True
    column_filters = ['action', 'entity_type', 'is_read', 'user_id']
    column_default_sort = ('created_at', True)


# ---------------------------------------------------------------------------
# Admin factory
# ---------------------------------------------------------------------------

def init_admin(app, db):
    """Create the Flask-Admin instance and register all model views."""

    admin = Admin(
        app,
        name='Family Tree Admin',
        theme=Bootstrap4Theme(),
        index_view=SecureAdminIndexView(),
        url='/admin',
    )

    from models.members import Member
    from models.notifications import Notification
    from models.users import User, UserPermission

    admin.add_view(UserAdminView(User, db.session, name='Users', category='Accounts'))
    admin.add_view(PermissionAdminView(UserPermission, db.session, name='Permissions', category='Accounts'))
    admin.add_view(MemberAdminView(Member, db.session, name='Members', category='Family'))
    admin.add_view(NotificationAdminView(Notification, db.session, name='Notifications', category='Family'))

    return admin
