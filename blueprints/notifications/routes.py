"""
Notification routes for the logged-in user.

  GET  /notifications             – paginated, ?unread=1 for unread only
  POST /notifications/<id>/read   – mark one read
  POST /notifications/read-all    – mark everything read
"""
from flask import jsonify, request
from flask_login import current_user

from blueprints.notifications import notifications_bp
from services.notification_service import NotificationService
from utils.errors import NotFoundError


@notifications_bp.route('', methods=['GET'])
def list_notifications():
    unread_only = request.args.get('unread', '').lower() in ('1', 'true', 'yes')
    per_page = min(request.args.get('limit', 20, type=int) or 20, 100)
    pagination = NotificationService.list_for_user(
        current_user.id,
        page=max(request.args.get('page', 1, type=int) or 1, 1),
        per_page=per_page,
        unread_only=unread_only,
    )
    return jsonify({
        'success': True,
        'message': 'Notifications retrieved successfully',
        'data': [n.to_dict() for n in pagination.items],
        'pagination': {
            'total': pagination.total,
            'totalPages': pagination.pages,
            'currentPage': pagination.page,
            'pageSize': len(pagination.items),
        },
    })


@notifications_bp.route('/<int:notification_id>/read', methods=['POST'])
def mark_read(notification_id):
    notification = NotificationService.mark_read(current_user.id, notification_id)
    if notification is None:
        raise NotFoundError('Notification not found')
    return jsonify({'success': True, 'message': 'Notification marked as read',
                    'data': notification.to_dict()})


@notifications_bp.route('/read-all', methods=['POST'])
def mark_all_read():
    count = NotificationService.mark_all_read(current_user.id)
    return jsonify({'success': True, 'message': f'{count} notification(s) marked as read',
                    'data': {'updated': count}})
