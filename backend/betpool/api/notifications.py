from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user
from betpool import db
from betpool.models import Notification


notifications = Blueprint('notifications', __name__)


@notifications.route('', methods=['GET'])
@login_required
def list_notifications():
    limit = int(current_app.config.get('NOTIFICATION_PAGE_SIZE', 20))
    items = (
        Notification.query.filter_by(user_id=current_user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )
    unread = Notification.query.filter_by(user_id=current_user.id, is_read=False).count()
    return jsonify({'notifications': [n.to_dict() for n in items], 'unread_count': unread})


@notifications.route('/<int:notification_id>/read', methods=['POST'])
@login_required
def mark_read(notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=current_user.id).first_or_404()
    notification.is_read = True
    db.session.commit()
    return jsonify(notification.to_dict())


@notifications.route('/read-all', methods=['POST'])
@login_required
def mark_all_read():
    updated = (
        Notification.query.filter_by(user_id=current_user.id, is_read=False)
        .update({'is_read': True}, synchronize_session=False)
    )
    db.session.commit()
    return jsonify({'updated': updated})


@notifications.route('/<int:notification_id>', methods=['DELETE'])
@login_required
def delete_notification(notification_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=current_user.id).first_or_404()
    db.session.delete(notification)
    db.session.commit()
    return jsonify({'message': 'Notification deleted'})
