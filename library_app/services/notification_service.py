"""Vade hatırlatmaları ve ödünç alma/iade bildirimleri.

Gerçek bir gönderim kanalı yoktur: her bildirim günlüğe yazılır ve
`notifications` tablosuna eklenir.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from library_app.config import settings
from library_app.exceptions import NotFoundError
from library_app.models import Notification, NotificationType, ReminderDetails
from library_app.repositories import UnitOfWork

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d %H:%M"


def format_reminder(details: ReminderDetails) -> str:
    """Hatırlatma bloğunu (kullanıcı, kitap, kopya, kütüphane, tarihler) biçimlendirir."""
    return "\n".join(
        [
            "=== Due Date Reminder ===",
            f"To: {details.user_name} <{details.user_email}>",
            f"Book: {details.book_title} (copy #{details.copy_number})",
            f"Library: {details.library_name}",
            f"Borrowed at: {details.borrowed_at.strftime(DATE_FORMAT)}",
            f"Due at: {details.due_at.strftime(DATE_FORMAT)}",
            "Please return or renew the book before the due date.",
            "=========================",
        ]
    )


class NotificationService:
    def __init__(
        self,
        unit_of_work: Callable[..., UnitOfWork] = UnitOfWork,
        clock: Callable[[], datetime] = datetime.now,
        days_ahead: Optional[int] = None,
        window_days: Optional[int] = None,
        deduplicate: Optional[bool] = None,
    ) -> None:
        self.unit_of_work = unit_of_work
        self.clock = clock
        self.days_ahead = days_ahead if days_ahead is not None else settings.reminder_days_ahead
        self.window_days = window_days if window_days is not None else settings.reminder_window_days
        self.deduplicate = deduplicate if deduplicate is not None else settings.deduplicate_reminders

    def reminder_window(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        """Hatırlatma penceresi: [now + days_ahead, now + days_ahead + window_days)."""
        now = now or self.clock()
        start = now + timedelta(days=self.days_ahead)
        return start, start + timedelta(days=self.window_days)

    def check_overdue_notifications(self) -> List[Notification]:
        """Vadesi yaklaşan aktif ödünç kayıtları için hatırlatma gönderir.

        Her kayıt kendi işleminde işlenir; bir kayıttaki hata günlüğe yazılır ve
        kalan kayıtlar işlenmeye devam eder. Ödünç kayıtları değiştirilmez.
        """
        start, end = self.reminder_window()
        logger.info(f"Checking due-date reminders for window [{start}, {end})")

        with self.unit_of_work(read_only=True) as uow:
            records = uow.borrows.find_due_between(start, end)

        if not records:
            logger.info("No borrow records due in the reminder window")
            return []

        sent: List[Notification] = []
        for record in records:
            try:
                notification = self._send_reminder(record.id)
            except Exception:
                logger.exception(f"Failed to send reminder for borrow record {record.id}")
                continue
            if notification is not None:
                sent.append(notification)

        logger.info(f"Reminder check finished: {len(sent)} sent, {len(records)} due")
        return sent

    def _send_reminder(self, record_id: int) -> Optional[Notification]:
        with self.unit_of_work() as uow:
            if self.deduplicate and uow.notifications.exists_for_record(record_id, NotificationType.DUE_REMINDER):
                logger.debug(f"Reminder already sent for borrow record {record_id}")
                return None
            details = uow.borrows.find_details(record_id)
            if details is None:
                raise NotFoundError("Borrow record not found")
            message = format_reminder(details)
            logger.info("\n" + message)
            return uow.notifications.save(
                Notification(
                    user_id=details.user_id,
                    borrow_record_id=record_id,
                    notification_type=NotificationType.DUE_REMINDER,
                    message=message,
                ),
                self.clock(),
            )

    # ------------------------- Bildirimler ------------------------- #
    def create_notification(
        self,
        user_id: int,
        message: str,
        notification_type: NotificationType,
        borrow_record_id: Optional[int] = None,
    ) -> Notification:
        with self.unit_of_work() as uow:
            if uow.users.find_by_id(user_id) is None:
                raise NotFoundError("User not found")
            notification = uow.notifications.save(
                Notification(
                    user_id=user_id,
                    borrow_record_id=borrow_record_id,
                    notification_type=notification_type,
                    message=message,
                ),
                self.clock(),
            )
        logger.info(f"Notification {notification.id} ({notification_type.value}) for user {user_id}: {message}")
        return notification

    def _record_details(self, borrow_record_id: int) -> ReminderDetails:
        with self.unit_of_work(read_only=True) as uow:
            details = uow.borrows.find_details(borrow_record_id)
        if details is None:
            raise NotFoundError("Borrow record not found")
        return details

    def send_borrow_confirmation(self, borrow_record_id: int) -> Notification:
        details = self._record_details(borrow_record_id)
        message = (
            f"Book '{details.book_title}' has been successfully borrowed. "
            f"Due date: {details.due_at.strftime(DATE_FORMAT)}"
        )
        return self.create_notification(
            details.user_id, message, NotificationType.BORROW_CONFIRMATION, borrow_record_id
        )

    def send_return_confirmation(self, borrow_record_id: int) -> Notification:
        details = self._record_details(borrow_record_id)
        message = f"Book '{details.book_title}' has been successfully returned."
        return self.create_notification(
            details.user_id, message, NotificationType.RETURN_CONFIRMATION, borrow_record_id
        )

    def send_overdue_notice(self, borrow_record_id: int) -> Notification:
        details = self._record_details(borrow_record_id)
        message = f"Book '{details.book_title}' is overdue. Please return it as soon as possible."
        return self.create_notification(
            details.user_id, message, NotificationType.OVERDUE_NOTICE, borrow_record_id
        )

    def find_by_user(self, user_id: int) -> List[Notification]:
        with self.unit_of_work(read_only=True) as uow:
            return uow.notifications.find_by_user(user_id)

    def find_by_id(self, notification_id: int) -> Notification:
        with self.unit_of_work(read_only=True) as uow:
            notification = uow.notifications.find_by_id(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    def delete_notification(self, notification_id: int) -> None:
        with self.unit_of_work() as uow:
            if not uow.notifications.delete(notification_id):
                raise NotFoundError("Notification not found")
        logger.info(f"Notification deleted: {notification_id}")
