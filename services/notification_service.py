from core.logger import db_logger
from models.notification import Notification


class NotificationService:

    @staticmethod
    async def notify(user_id: int, type: str, title: str, message: str, link: str = None) -> Notification:
        notification = await Notification.create(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            link=link
        )
        db_logger.logger.debug(f"🔔 Notification {notification.id} -> user={user_id}, type={type}")
        return notification

    @staticmethod
    async def list_for(user_id: int, unread_only: bool = False, limit: int = 50):
        query = Notification.filter(user_id=user_id)
        if unread_only:
            query = query.filter(is_read=False)
        notifications = await query.order_by("-id").limit(limit)
        return [n.to_dict() for n in notifications]

    @staticmethod
    async def mark_read(user_id: int, ids: list[int] | None = None) -> int:
        query = Notification.filter(user_id=user_id, is_read=False)
        if ids:
            query = query.filter(id__in=ids)
        updated = await query.update(is_read=True)
        db_logger.logger.info(f"✅ Marked {updated} notifications as read for user {user_id}")
        return updated
