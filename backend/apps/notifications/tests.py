from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.test import TestCase
from rest_framework.test import APIClient

from apps.ecommerce.models import Order

from .models import Notification, NotificationType
from .services import notification_service
from .tasks import send_notification_email

User = get_user_model()


class NotificationServiceTests(TestCase):
    """Test notification dispatch"""

    def setUp(self):
        self.user = User.objects.create_user(username='buyer', email='buyer@example.com', password='testpass')
        self.order = Order.objects.create(
            user=self.user, total=Decimal('60.00'), shipping_email='shipping@example.com'
        )

    def test_notify_takes_user_from_order(self):
        notification = notification_service.notify(
            NotificationType.ORDER_PLACED, 'Order placed', 'Thanks', order=self.order
        )
        self.assertEqual(notification.user, self.user)
        self.assertFalse(notification.is_read)

    def test_same_dedupe_key_records_once(self):
        first = notification_service.notify(
            NotificationType.PAYMENT_RECEIVED, 'Paid', 'Thanks', order=self.order, dedupe_key='payment:MPESA:1:COMPLETED'
        )
        second = notification_service.notify(
            NotificationType.PAYMENT_RECEIVED, 'Paid again', 'Thanks', order=self.order,
            dedupe_key='payment:MPESA:1:COMPLETED'
        )
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Notification.objects.filter(type=NotificationType.PAYMENT_RECEIVED).count(), 1)

    def test_without_key_every_call_records(self):
        for _ in range(2):
            notification_service.notify(NotificationType.GENERAL, 'Hello', 'Message', user=self.user)
        self.assertEqual(Notification.objects.filter(user=self.user).count(), 2)

    def test_email_sent_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            notification = notification_service.notify(
                NotificationType.ORDER_SHIPPED, 'Order shipped', 'On its way', order=self.order
            )
            self.assertEqual(len(mail.outbox), 0)

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['shipping@example.com'])
        self.assertEqual(mail.outbox[0].subject, 'Order shipped')
        notification.refresh_from_db()
        self.assertTrue(notification.email_sent)

    def test_duplicate_does_not_queue_second_email(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            for _ in range(2):
                notification_service.notify(
                    NotificationType.ORDER_DELIVERED, 'Delivered', 'Enjoy', order=self.order,
                    dedupe_key='shipment:1:delivered'
                )
        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)

    def test_email_task_skips_missing_recipient(self):
        notification = Notification.objects.create(title='No address', message='Nobody')
        send_notification_email(notification.id)
        self.assertEqual(len(mail.outbox), 0)
        notification.refresh_from_db()
        self.assertFalse(notification.email_sent)

    def test_email_task_does_not_resend(self):
        notification = Notification.objects.create(user=self.user, title='Hi', message='Once', email_sent=True)
        with patch('apps.notifications.tasks.send_mail') as send:
            send_notification_email(notification.id)
        send.assert_not_called()

    def test_mark_read_selected_and_all(self):
        notes = [
            notification_service.notify(NotificationType.GENERAL, f'Note {i}', 'Message', user=self.user)
            for i in range(3)
        ]
        self.assertEqual(notification_service.unread_count(self.user), 3)

        self.assertEqual(notification_service.mark_read(self.user, [notes[0].id]), 1)
        self.assertEqual(notification_service.unread_count(self.user), 2)

        self.assertEqual(notification_service.mark_read(self.user), 2)
        self.assertEqual(notification_service.unread_count(self.user), 0)

    def test_mark_read_ignores_other_users(self):
        other = User.objects.create_user(username='other', password='testpass')
        note = notification_service.notify(NotificationType.GENERAL, 'Mine', 'Message', user=other)
        self.assertEqual(notification_service.mark_read(self.user, [note.id]), 0)
        note.refresh_from_db()
        self.assertFalse(note.is_read)


class NotificationAPITests(TestCase):
    """Test the notification inbox endpoints"""

    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(username='buyer', password='testpass')
        self.client.force_authenticate(user=self.user)
        for i in range(3):
            notification_service.notify(NotificationType.GENERAL, f'Note {i}', 'Message', user=self.user)

    def test_requires_login(self):
        response = APIClient().get('/api/notifications/')
        self.assertIn(response.status_code, (401, 403))

    def test_list_with_unread_count(self):
        response = self.client.get('/api/notifications/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data['notifications']), 3)
        self.assertEqual(response.data['unread_count'], 3)

    def test_limit(self):
        response = self.client.get('/api/notifications/?limit=2')
        self.assertEqual(len(response.data['notifications']), 2)

    def test_out_of_range_limit_is_clamped(self):
        for limit, expected in (('-1', 1), ('0', 1), ('abc', 3), ('1000', 3)):
            response = self.client.get(f'/api/notifications/?limit={limit}')
            self.assertEqual(response.status_code, 200, limit)
            self.assertEqual(len(response.data['notifications']), expected, limit)

    def test_mark_all_read(self):
        response = self.client.post('/api/notifications/mark-read/', {}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['updated'], 3)
        self.assertEqual(response.data['unread_count'], 0)

        response = self.client.get('/api/notifications/?unread=true')
        self.assertEqual(response.data['notifications'], [])
