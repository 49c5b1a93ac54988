import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from apps.core.exceptions import PaymentInitiationFailed
from apps.core.services import ConflictError, ValidationError
from apps.ecommerce.models import Order, OrderItem, OrderStatus, PaymentStatus
from apps.notifications.models import Notification, NotificationType
from apps.shipping.models import Shipment

from .clients import MpesaError, generate_merchant_reference, normalize_phone
from .models import PaymentAttempt, Provider
from .services import Outcome, PaymentInitiationService, reconciliation_service
from .services.initiation import amount_in_kes
from .signatures import pesapal_signature, verify_pesapal_signature
from .tasks import query_stuck_mpesa_payments

User = get_user_model()

MPESA_CALLBACK_URL = '/api/payments/mpesa/callback'
PESAPAL_IPN_URL = '/api/payments/pesapal/ipn'
IPN_SECRET = 'test-ipn-secret'


def mpesa_callback(merchant_request_id, result_code=0, amount=1000, receipt='QGH7ABC123'):
    callback = {
        'MerchantRequestID': merchant_request_id,
        'CheckoutRequestID': 'ws_CO_1',
        'ResultCode': result_code,
        'ResultDesc': 'The service request is processed successfully.' if result_code == 0 else 'Request cancelled by user',
    }
    if result_code == 0:
        callback['CallbackMetadata'] = {'Item': [
            {'Name': 'Amount', 'Value': amount},
            {'Name': 'MpesaReceiptNumber', 'Value': receipt},
            {'Name': 'TransactionDate', 'Value': 20240301120000},
            {'Name': 'PhoneNumber', 'Value': 254712345678},
        ]}
    return {'Body': {'stkCallback': callback}}


def pesapal_ipn(reference, status='COMPLETED', tracking_id='TRK-123', secret=IPN_SECRET):
    return {
        'pesapal_transaction_tracking_id': tracking_id,
        'pesapal_merchant_reference': reference,
        'status': status,
        'signature': pesapal_signature(secret, tracking_id, reference),
    }


class PaymentTestCase(TestCase):
    """Base test case with an order awaiting payment"""

    def setUp(self):
        self.user = User.objects.create_user(username='buyer', email='buyer@example.com', password='testpass')
        self.order = Order.objects.create(
            user=self.user,
            payment_method='MPESA',
            payment_status=PaymentStatus.PROCESSING,
            subtotal=Decimal('40.00'),
            shipping_cost=Decimal('6.00'),
            tax=Decimal('3.20'),
            total=Decimal('49.20'),
            shipping_name='Amina Otieno',
            shipping_email='amina@example.com',
            shipping_phone='254712345678',
            shipping_city='Nairobi',
            shipping_country='KE',
        )
        OrderItem.objects.create(
            order=self.order, art_listing_id='art-1', title='Maasai beaded necklace',
            unit_price=Decimal('40.00'), quantity=1,
        )
        self.mpesa_attempt = PaymentAttempt.objects.create(
            order=self.order, provider=Provider.MPESA, correlation_id='29115-34620561-1',
            checkout_request_id='ws_CO_1', status=PaymentStatus.PROCESSING, amount=Decimal('7380'),
        )

    def post_json(self, url, payload, **extra):
        return self.client.post(url, data=json.dumps(payload), content_type='application/json', **extra)


class MpesaCallbackTests(PaymentTestCase):
    """Test M-Pesa STK callback reconciliation"""

    def test_successful_callback_completes_order(self):
        response = self.post_json(MPESA_CALLBACK_URL, mpesa_callback('29115-34620561-1', amount=7380))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['ResultCode'], 0)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(self.order.status, OrderStatus.CONFIRMED)
        self.assertEqual(self.order.provider_transaction_id, 'QGH7ABC123')
        self.assertIn('payment_completed', self.order.notes)

        self.mpesa_attempt.refresh_from_db()
        self.assertEqual(self.mpesa_attempt.status, PaymentStatus.COMPLETED)
        self.assertEqual(self.mpesa_attempt.receipt_number, 'QGH7ABC123')

        self.assertTrue(Shipment.objects.filter(order=self.order).exists())
        self.assertEqual(
            Notification.objects.filter(order=self.order, type=NotificationType.PAYMENT_RECEIVED).count(), 1
        )

    def test_duplicate_callback_applied_once(self):
        payload = mpesa_callback('29115-34620561-1')
        self.post_json(MPESA_CALLBACK_URL, payload)
        response = self.post_json(MPESA_CALLBACK_URL, payload)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['outcome'], Outcome.DUPLICATE)
        self.order.refresh_from_db()
        self.assertEqual(self.order.notes.count('payment_completed'), 1)
        self.assertEqual(Shipment.objects.filter(order=self.order).count(), 1)
        self.assertEqual(
            Notification.objects.filter(order=self.order, type=NotificationType.PAYMENT_RECEIVED).count(), 1
        )

    def test_failed_callback(self):
        response = self.post_json(MPESA_CALLBACK_URL, mpesa_callback('29115-34620561-1', result_code=1032))
        self.assertEqual(response.status_code, 200)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.FAILED)
        self.assertEqual(self.order.status, OrderStatus.CANCELLED)
        self.assertFalse(Shipment.objects.filter(order=self.order).exists())
        self.assertTrue(
            Notification.objects.filter(order=self.order, type=NotificationType.PAYMENT_FAILED).exists()
        )

    def test_success_after_failure_is_ignored(self):
        self.post_json(MPESA_CALLBACK_URL, mpesa_callback('29115-34620561-1', result_code=1032))
        self.post_json(MPESA_CALLBACK_URL, mpesa_callback('29115-34620561-1'))

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.FAILED)
        self.assertFalse(Shipment.objects.filter(order=self.order).exists())

    def test_unmatched_callback_acknowledged(self):
        response = self.post_json(MPESA_CALLBACK_URL, mpesa_callback('unknown-request'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['outcome'], Outcome.UNMATCHED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.PROCESSING)

    def test_malformed_callback_rejected(self):
        self.assertEqual(self.post_json(MPESA_CALLBACK_URL, {'Body': {}}).status_code, 400)
        response = self.client.post(MPESA_CALLBACK_URL, data='not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_amount_mismatch_still_completes(self):
        with patch.object(reconciliation_service, 'log_warning') as log_warning:
            reconciliation_service.handle_mpesa_callback(mpesa_callback('29115-34620561-1', amount=10))
        log_warning.assert_called()
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)
        self.assertIn('amount_mismatch', self.order.notes)

    def test_null_result_description_still_fails_order(self):
        payload = mpesa_callback('29115-34620561-1', result_code=1032)
        payload['Body']['stkCallback']['ResultDesc'] = None
        response = self.post_json(MPESA_CALLBACK_URL, payload)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['outcome'], Outcome.APPLIED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.FAILED)
        self.mpesa_attempt.refresh_from_db()
        self.assertEqual(self.mpesa_attempt.result_description, '')

    def test_metadata_not_a_dict_is_ignored(self):
        payload = mpesa_callback('29115-34620561-1')
        payload['Body']['stkCallback']['CallbackMetadata'] = [{'Name': 'Amount', 'Value': 7380}]
        response = self.post_json(MPESA_CALLBACK_URL, payload)

        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)

    def test_missing_receipt_falls_back_to_checkout_request_id(self):
        payload = mpesa_callback('29115-34620561-1')
        items = payload['Body']['stkCallback']['CallbackMetadata']['Item']
        payload['Body']['stkCallback']['CallbackMetadata']['Item'] = [
            item for item in items if item['Name'] != 'MpesaReceiptNumber'
        ]
        reconciliation_service.handle_mpesa_callback(payload)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(self.order.provider_transaction_id, 'ws_CO_1')

    def test_existing_shipment_tolerated(self):
        Shipment.objects.create(order=self.order, destination_country='KE')
        outcome = reconciliation_service.handle_mpesa_callback(mpesa_callback('29115-34620561-1'))
        self.assertEqual(outcome, Outcome.APPLIED)
        self.assertEqual(Shipment.objects.filter(order=self.order).count(), 1)


class PesaPalIPNTests(PaymentTestCase):
    """Test PesaPal IPN reconciliation"""

    def setUp(self):
        super().setUp()
        self.reference = f"PESA-{self.order.order_number}-1709290000000"
        self.pesapal_attempt = PaymentAttempt.objects.create(
            order=self.order, provider=Provider.PESAPAL, correlation_id=self.reference,
            status=PaymentStatus.PROCESSING, amount=self.order.total, currency='USD',
        )

    def test_completed_ipn(self):
        response = self.post_json(PESAPAL_IPN_URL, pesapal_ipn(self.reference))
        self.assertEqual(response.status_code, 200)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(self.order.status, OrderStatus.CONFIRMED)
        self.assertEqual(self.order.provider_transaction_id, 'TRK-123')
        self.assertTrue(Shipment.objects.filter(order=self.order).exists())

    def test_status_is_case_insensitive(self):
        self.post_json(PESAPAL_IPN_URL, pesapal_ipn(self.reference, status='paid'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)

    def test_failed_statuses(self):
        self.post_json(PESAPAL_IPN_URL, pesapal_ipn(self.reference, status='Invalid'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.FAILED)
        self.assertEqual(self.order.status, OrderStatus.CANCELLED)

    def test_invalid_signature_rejected(self):
        payload = pesapal_ipn(self.reference, secret='wrong-secret')
        response = self.post_json(PESAPAL_IPN_URL, payload)
        self.assertEqual(response.status_code, 400)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.PROCESSING)
        self.assertEqual(self.order.notes, '')

    def test_missing_signature_rejected(self):
        payload = pesapal_ipn(self.reference)
        del payload['signature']
        self.assertEqual(self.post_json(PESAPAL_IPN_URL, payload).status_code, 400)

    def test_signature_from_header(self):
        payload = pesapal_ipn(self.reference)
        signature = payload.pop('signature')
        response = self.post_json(PESAPAL_IPN_URL, payload, HTTP_X_PESAPAL_SIGNATURE=signature)
        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)

    def test_unknown_status_is_noop(self):
        response = self.post_json(PESAPAL_IPN_URL, pesapal_ipn(self.reference, status='REVERSED'))
        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.PROCESSING)
        self.assertEqual(self.order.status, OrderStatus.PENDING)

    def test_pending_status_is_noop(self):
        response = self.post_json(PESAPAL_IPN_URL, pesapal_ipn(self.reference, status='PENDING'))
        self.assertEqual(response.json()['outcome'], Outcome.IGNORED)
        self.pesapal_attempt.refresh_from_db()
        self.assertEqual(self.pesapal_attempt.status, PaymentStatus.PROCESSING)

    def test_reference_matched_exactly(self):
        partial = f"PESA-{self.order.order_number}"
        response = self.post_json(PESAPAL_IPN_URL, pesapal_ipn(partial))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['outcome'], Outcome.UNMATCHED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.PROCESSING)

    def test_missing_fields_rejected(self):
        response = self.post_json(PESAPAL_IPN_URL, {'status': 'COMPLETED'})
        self.assertEqual(response.status_code, 400)

    def test_health_check(self):
        self.assertEqual(self.client.get(PESAPAL_IPN_URL).status_code, 200)


class SignatureTests(TestCase):
    """Test IPN signature helpers"""

    def test_round_trip_and_tampering(self):
        signature = pesapal_signature('secret', 'TRK', 'PESA-1')
        self.assertTrue(verify_pesapal_signature('secret', 'TRK', 'PESA-1', signature))
        self.assertFalse(verify_pesapal_signature('secret', 'TRK', 'PESA-2', signature))
        self.assertFalse(verify_pesapal_signature('other', 'TRK', 'PESA-1', signature))

    def test_missing_secret_or_signature_fails(self):
        signature = pesapal_signature('secret', 'TRK', 'PESA-1')
        self.assertFalse(verify_pesapal_signature('', 'TRK', 'PESA-1', signature))
        self.assertFalse(verify_pesapal_signature('secret', 'TRK', 'PESA-1', None))


class ClientHelperTests(TestCase):
    """Test provider client helpers"""

    def test_normalize_phone(self):
        self.assertEqual(normalize_phone('0712345678'), '254712345678')
        self.assertEqual(normalize_phone('+254 712 345 678'), '254712345678')
        self.assertEqual(normalize_phone('712345678'), '254712345678')
        self.assertEqual(normalize_phone('0110345678'), '254110345678')

    def test_invalid_phone(self):
        with self.assertRaises(ValueError):
            normalize_phone('12345')
        with self.assertRaises(ValueError):
            normalize_phone('')

    def test_merchant_reference_format(self):
        reference = generate_merchant_reference('ORD-20240301120000-ABC123')
        self.assertTrue(reference.startswith('PESA-ORD-20240301120000-ABC123-'))
        self.assertTrue(reference.rsplit('-', 1)[1].isdigit())


class PaymentInitiationTests(PaymentTestCase):
    """Test payment initiation"""

    def test_amount_in_kes_rounds_up(self):
        self.assertEqual(amount_in_kes(self.order), 7380)
        self.order.total = Decimal('10.01')
        self.assertEqual(amount_in_kes(self.order), 1502)

    def test_simulated_stk_push(self):
        result = PaymentInitiationService().start_mpesa(self.order, '0712345678')
        self.assertTrue(result['isDevelopment'])
        attempt = PaymentAttempt.objects.get(correlation_id=result['merchantRequestId'])
        self.assertTrue(attempt.is_simulated)
        self.assertEqual(attempt.status, PaymentStatus.PROCESSING)
        self.assertEqual(attempt.phone_number, '254712345678')

    def test_configured_stk_push_stores_correlation(self):
        client = MagicMock(is_configured=True)
        client.stk_push.return_value = {
            'MerchantRequestID': '12345-67890-1',
            'CheckoutRequestID': 'ws_CO_99',
            'ResponseCode': '0',
        }
        result = PaymentInitiationService(mpesa_client=client).start_mpesa(self.order, '0712345678')

        self.assertEqual(result['merchantRequestId'], '12345-67890-1')
        client.stk_push.assert_called_once()
        self.assertEqual(client.stk_push.call_args.kwargs['amount'], 7380)
        attempt = PaymentAttempt.objects.get(provider=Provider.MPESA, correlation_id='12345-67890-1')
        self.assertEqual(attempt.checkout_request_id, 'ws_CO_99')

    def test_provider_error_raises(self):
        client = MagicMock(is_configured=True)
        client.stk_push.side_effect = MpesaError('Invalid Access Token')
        with self.assertRaises(PaymentInitiationFailed):
            PaymentInitiationService(mpesa_client=client).start_mpesa(self.order, '0712345678')

    def test_invalid_phone(self):
        with self.assertRaises(ValidationError):
            PaymentInitiationService().start_mpesa(self.order, 'abc')

    def test_paid_order_cannot_restart(self):
        Order.objects.filter(pk=self.order.pk).update(payment_status=PaymentStatus.COMPLETED)
        self.order.refresh_from_db()
        with self.assertRaises(ConflictError):
            PaymentInitiationService().start_pesapal(self.order)

    def test_failed_order_reopened_for_new_attempt(self):
        Order.objects.filter(pk=self.order.pk).update(
            payment_status=PaymentStatus.FAILED, status=OrderStatus.CANCELLED
        )
        self.order.refresh_from_db()
        result = PaymentInitiationService().start_pesapal(self.order)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.PROCESSING)
        self.assertEqual(self.order.status, OrderStatus.PENDING)
        self.assertTrue(result['merchantReference'].startswith(f"PESA-{self.order.order_number}-"))


class PaymentAPITests(TestCase):
    """Test the payment endpoints end to end"""

    def setUp(self):
        self.user = User.objects.create_user(username='buyer', password='testpass')
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def checkout_body(self):
        return {
            'phoneNumber': '0712345678',
            'shippingInfo': {'name': 'Amina Otieno', 'city': 'Nairobi', 'country': 'KE'},
            'items': [{'art_listing_id': 'art-9', 'title': 'Kikoy', 'price': '30.00', 'quantity': 2}],
        }

    def test_mpesa_initiation_then_callback(self):
        response = self.client.post('/api/payments/mpesa/', self.checkout_body(), format='json')
        self.assertEqual(response.status_code, 201)
        data = response.json()['data']

        order = Order.objects.get(order_number=data['orderNumber'])
        self.assertEqual(order.payment_status, PaymentStatus.PROCESSING)
        self.assertEqual(order.shipping_phone, '0712345678')

        callback = mpesa_callback(data['merchantRequestId'], amount=amount_in_kes(order))
        self.client.post(MPESA_CALLBACK_URL, callback, format='json')

        response = self.client.get('/api/payments/status/', {'order': order.order_number})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['paymentStatus'], PaymentStatus.COMPLETED)

    def test_pesapal_initiation(self):
        body = self.checkout_body()
        del body['phoneNumber']
        response = self.client.post('/api/payments/pesapal/', body, format='json')
        self.assertEqual(response.status_code, 201)
        reference = response.json()['data']['merchantReference']
        self.assertTrue(PaymentAttempt.objects.filter(provider=Provider.PESAPAL, correlation_id=reference).exists())

    def test_initiation_without_trailing_slash(self):
        response = self.client.post('/api/payments/mpesa', self.checkout_body(), format='json')
        self.assertEqual(response.status_code, 201)
        order_number = response.json()['data']['orderNumber']

        response = self.client.get('/api/payments/status', {'order': order_number})
        self.assertEqual(response.status_code, 200)

    def test_initiation_requires_items(self):
        body = self.checkout_body()
        del body['items']
        response = self.client.post('/api/payments/mpesa/', body, format='json')
        self.assertEqual(response.status_code, 400)

    def test_initiation_requires_authentication(self):
        response = APIClient().post('/api/payments/mpesa/', self.checkout_body(), format='json')
        self.assertIn(response.status_code, (401, 403))

    def test_status_hidden_from_other_users(self):
        other = User.objects.create_user(username='other', password='testpass')
        order = Order.objects.create(user=other, shipping_country='KE')
        response = self.client.get('/api/payments/status/', {'order': order.order_number})
        self.assertEqual(response.status_code, 404)


class StuckPaymentSweepTests(PaymentTestCase):
    """Test the STK status sweep task"""

    def age_attempt(self):
        PaymentAttempt.objects.filter(pk=self.mpesa_attempt.pk).update(
            created_at=timezone.now() - timedelta(minutes=30)
        )

    @patch('apps.payments.tasks.MpesaClient')
    def test_sweep_completes_stuck_payment(self, client_class):
        self.age_attempt()
        client = client_class.return_value
        client.is_configured = True
        client.stk_query.return_value = {'ResponseCode': '0', 'ResultCode': '0', 'ResultDesc': 'Processed'}

        query_stuck_mpesa_payments()

        client.stk_query.assert_called_once_with('ws_CO_1')
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PaymentStatus.COMPLETED)

    @patch('apps.payments.tasks.MpesaClient')
    def test_sweep_skips_recent_and_pending(self, client_class):
        client = client_class.return_value
        client.is_configured = True
        query_stuck_mpesa_payments()
        client.stk_query.assert_not_called()

        self.age_attempt()
        client.stk_query.side_effect = MpesaError('The transaction is being processed')
        query_stuck_mpesa_payments()
        self.mpesa_attempt.refresh_from_db()
        self.assertEqual(self.mpesa_attempt.status, PaymentStatus.PROCESSING)
