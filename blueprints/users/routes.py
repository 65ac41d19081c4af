"""
User administration routes (admin role required).

  GET    /users                   – list accounts, optional ?status= filter
  GET    /users/<id>              – one account
  PATCH  /users/<id>/status       – accept / reject, emails the user
  PUT    /users/<id>/permissions  – replace the permission mapping
  PUT    /users/<id>/roles        – replace the role list
  DELETE /users/<id>              – delete the account (member is kept)
"""
from flask import current_app, jsonify, request
from flask_login import current_user

from blueprints.users import users_bp
from extensions import db
from models.users import User, USER_STATUSES, STATUS_ACCEPTED, STATUS_REJECTED, ROLE_ADMIN, ROLE_USER
from services.email_service import send_account_status_email
from utils.errors import NotFoundError, ValidationError
from utils.permissions import admin_required

KNOWN_ROLES = (ROLE_ADMIN, ROLE_USER)


def _get_user_or_404(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError('User not found')
    return user


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@users_bp.route('', methods=['GET'])
@admin_required
def list_users():
    query = User.query
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    users = query.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify({
        'success': True,
        'message': 'Users retrieved successfully',
        'data': [u.to_dict() for u in users],
    })


@users_bp.route('/<int:user_id>', methods=['GET'])
@admin_required
def get_user(user_id):
    user = _get_user_or_404(user_id)
    return jsonify({'success': True, 'message': 'User retrieved successfully', 'data': user.to_dict()})


@users_bp.route('/<int:user_id>/status', methods=['PATCH'])
@admin_required
def update_status(user_id):
    """Set the account status; accepted/rejected transitions email the user.

    The status change is committed before the email goes out, so a delivery
    failure surfaces as a 502 while the new status stays in place.
    """
    user = _get_user_or_404(user_id)
    status = _json_body().get('status')
    if status not in USER_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(USER_STATUSES)}")

    changed = user.status != status
    user.status = status
    db.session.commit()
    current_app.logger.info(f'User {user.email} status set to {status} by {current_user.email}')

    if changed and status in (STATUS_ACCEPTED, STATUS_REJECTED):
        send_account_status_email(user)

    return jsonify({'success': True, 'message': 'User status updated', 'data': user.to_dict()})


@users_bp.route('/<int:user_id>/permissions', methods=['PUT'])
@admin_required
def update_permissions(user_id):
    user = _get_user_or_404(user_id)
    data = _json_body()
    try:
        user.set_permissions(data.get('permissions', data))
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    db.session.commit()
    current_app.logger.info(f'Permissions updated for {user.email} by {current_user.email}')
    return jsonify({'success': True, 'message': 'Permissions updated', 'data': user.to_dict()})


@users_bp.route('/<int:user_id>/roles', methods=['PUT'])
@admin_required
def update_roles(user_id):
    user = _get_user_or_404(user_id)
    roles = _json_body().get('roles')
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        raise ValidationError('Roles must be a list of role names')
    unknown = [r for r in roles if r not in KNOWN_ROLES]
    if unknown:
        raise ValidationError(f"Unknown role(s): {', '.join(unknown)}")
    if user.id == current_user.id and ROLE_ADMIN not in roles:
        raise ValidationError('You cannot remove your own admin role')

    user.set_roles(roles)
    db.session.commit()
    current_app.logger.info(f'Roles for {user.email} set to {roles} by {current_user.email}')
    return jsonify({'success': True, 'message': 'Roles updated', 'data': user.to_dict()})


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    user = _get_user_or_404(user_id)
    if user.id == current_user.id:
        raise ValidationError('You cannot delete your own account')

    member = user.member
    if member is not None:
        member.is_user = False
    email = user.email
    db.session.delete(user)
    db.session.commit()
    current_app.logger.info(f'User deleted: {email} by {current_user.email}')
    return jsonify({'success': True, 'message': 'User deleted successfully', 'data': None})
