import json
from datetime import date, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from apps.core.exceptions import InvalidShipmentTransition, ShipmentAlreadyExists
from apps.core.services import NotFoundError, ValidationError
from apps.ecommerce.models import Order, OrderItem, OrderStatus
from apps.notifications.models import Notification, NotificationType

from .calculator import (
    amount_needed_for_free_shipping, billable_weight, calculate_shipping,
    calculate_total_weight, estimated_delivery_date, shipping_options, to_decimal
)
from .models import Shipment, TrackingEvent
from .services import shipment_service
from .transitions import ShipmentStatus, can_transition, is_terminal
from .zones import ServiceTier, ShippingZone, countries_in_zone, get_zone

User = get_user_model()


class ZoneTableTests(TestCase):
    """Test country to zone lookup"""

    def test_known_countries(self):
        self.assertEqual(get_zone('KE'), ShippingZone.DOMESTIC)
        self.assertEqual(get_zone('TZ'), ShippingZone.REGIONAL)
        self.assertEqual(get_zone('GB'), ShippingZone.EUROPE)
        self.assertEqual(get_zone('US'), ShippingZone.AMERICAS)

    def test_lookup_is_case_insensitive(self):
        self.assertEqual(get_zone(' ke '), ShippingZone.DOMESTIC)

    def test_unknown_country_falls_back_to_international(self):
        self.assertEqual(get_zone('ZZ'), ShippingZone.INTERNATIONAL)

    def test_blank_country_rejected(self):
        with self.assertRaises(ValueError):
            get_zone('')
        with self.assertRaises(ValueError):
            get_zone(None)

    def test_countries_in_zone(self):
        self.assertIn('UG', countries_in_zone(ShippingZone.REGIONAL))
        self.assertNotIn('KE', countries_in_zone(ShippingZone.REGIONAL))


class ShippingCalculatorTests(TestCase):
    """Test shipping cost calculation"""

    def test_domestic_cost_with_extra_weight(self):
        quote = calculate_shipping('KE', weight=Decimal('1.5'), subtotal=Decimal('20'))
        self.assertEqual(quote.cost_usd, Decimal('7.00'))
        self.assertEqual(quote.cost_kes, Decimal('1050'))
        self.assertEqual(quote.zone, ShippingZone.DOMESTIC)
        self.assertEqual((quote.estimated_days_min, quote.estimated_days_max), (1, 3))
        self.assertFalse(quote.is_free_shipping)

    def test_weight_below_minimum_is_clamped(self):
        quote = calculate_shipping('KE', weight=Decimal('0.1'))
        self.assertEqual(quote.weight_kg, Decimal('0.5'))
        self.assertEqual(quote.cost_usd, Decimal('5.00'))

    def test_missing_or_negative_weight_uses_minimum(self):
        self.assertEqual(calculate_shipping('KE', weight=None).weight_kg, Decimal('0.5'))
        self.assertEqual(calculate_shipping('KE', weight=-3).weight_kg, Decimal('0.5'))

    def test_free_shipping_over_threshold(self):
        quote = calculate_shipping('KE', weight=Decimal('1.5'), subtotal=Decimal('100'))
        self.assertTrue(quote.is_free_shipping)
        self.assertEqual(quote.cost_usd, Decimal('0.00'))
        self.assertEqual(quote.cost_kes, Decimal('0'))
        self.assertEqual(quote.savings, Decimal('7.00'))
        self.assertEqual((quote.estimated_days_min, quote.estimated_days_max), (1, 3))

    def test_free_shipping_outside_domestic_keeps_days(self):
        quote = calculate_shipping('US', weight=2, subtotal=500)
        self.assertTrue(quote.is_free_shipping)
        self.assertEqual(quote.cost_usd, Decimal('0'))
        self.assertEqual((quote.estimated_days_min, quote.estimated_days_max), (6, 10))

    def test_non_finite_values_rejected(self):
        for value in ('nan', 'Infinity', Decimal('-Infinity')):
            with self.assertRaises(ValueError):
                to_decimal(value)
        with self.assertRaises(ValueError):
            calculate_shipping('KE', weight='nan')

    def test_unknown_country_is_most_expensive(self):
        unknown = calculate_shipping('ZZ', weight=2)
        self.assertEqual(unknown.zone, ShippingZone.INTERNATIONAL)
        for code in ('KE', 'TZ', 'NG', 'AE', 'GB', 'US', 'AU'):
            self.assertGreaterEqual(unknown.cost_usd, calculate_shipping(code, weight=2).cost_usd)

    def test_cost_never_below_base_rate(self):
        quote = calculate_shipping('GB', weight=Decimal('0.5'))
        self.assertEqual(quote.cost_usd, Decimal('45.00'))

    def test_cost_grows_with_weight(self):
        for code in ('KE', 'UG', 'ZA', 'IN', 'DE', 'CA', 'NZ', 'ZZ'):
            lighter = calculate_shipping(code, weight=1).cost_usd
            heavier = calculate_shipping(code, weight=3).cost_usd
            self.assertGreater(heavier, lighter, code)

    def test_same_input_same_quote(self):
        self.assertEqual(
            calculate_shipping('NG', weight='2.25', subtotal='40'),
            calculate_shipping('NG', weight='2.25', subtotal='40'),
        )

    def test_express_tier(self):
        quote = calculate_shipping('GB', weight=Decimal('0.5'), tier=ServiceTier.EXPRESS)
        self.assertEqual(quote.cost_usd, Decimal('67.50'))
        self.assertEqual((quote.estimated_days_min, quote.estimated_days_max), (3, 4))

    def test_economy_tier_accepts_lowercase(self):
        quote = calculate_shipping('GB', weight=Decimal('0.5'), tier='economy')
        self.assertEqual(quote.tier, ServiceTier.ECONOMY)
        self.assertEqual(quote.cost_usd, Decimal('36.00'))
        self.assertEqual((quote.estimated_days_min, quote.estimated_days_max), (8, 12))

    def test_shipping_options_per_zone(self):
        self.assertEqual([q.tier for q in shipping_options('KE')], [ServiceTier.STANDARD])
        self.assertEqual(
            [q.tier for q in shipping_options('GB')],
            [ServiceTier.ECONOMY, ServiceTier.STANDARD, ServiceTier.EXPRESS]
        )

    def test_to_dict_is_json_serializable(self):
        data = calculate_shipping('KE', weight=1).to_dict()
        self.assertEqual(data['estimated_days'], '1-3 days')
        json.dumps(data)

    def test_total_weight_defaults_missing_item_weight(self):
        items = [{'weight': 1, 'quantity': 2}, {'quantity': 1}]
        self.assertEqual(calculate_total_weight(items), Decimal('2.5'))

    def test_billable_weight_uses_volumetric_when_larger(self):
        dimensions = {'length': 50, 'width': 40, 'height': 30}
        self.assertEqual(billable_weight(1, dimensions), Decimal('12'))
        self.assertEqual(billable_weight(20, dimensions), Decimal('20'))

    def test_amount_needed_for_free_shipping(self):
        self.assertEqual(amount_needed_for_free_shipping(60, ShippingZone.DOMESTIC), Decimal('40.00'))
        self.assertEqual(amount_needed_for_free_shipping(160, ShippingZone.DOMESTIC), Decimal('0.00'))

    def test_estimated_delivery_date_includes_processing_day(self):
        start = date(2024, 3, 1)
        self.assertEqual(
            estimated_delivery_date(ShippingZone.DOMESTIC, ServiceTier.STANDARD, start),
            start + timedelta(days=4)
        )


class ShipmentTransitionTests(TestCase):
    """Test the shipment status machine"""

    def test_forward_moves_and_skips_allowed(self):
        self.assertTrue(can_transition(ShipmentStatus.CREATED, ShipmentStatus.LABEL_GENERATED))
        self.assertTrue(can_transition(ShipmentStatus.CREATED, ShipmentStatus.DELIVERED))
        self.assertTrue(can_transition('PICKED_UP', 'OUT_FOR_DELIVERY'))

    def test_backward_moves_rejected(self):
        self.assertFalse(can_transition(ShipmentStatus.IN_TRANSIT, ShipmentStatus.PICKED_UP))
        self.assertFalse(can_transition(ShipmentStatus.IN_TRANSIT, ShipmentStatus.IN_TRANSIT))

    def test_returned_and_cancelled_from_any_open_status(self):
        for status in ('CREATED', 'LABEL_GENERATED', 'PICKED_UP', 'IN_TRANSIT', 'OUT_FOR_DELIVERY'):
            self.assertTrue(can_transition(status, ShipmentStatus.RETURNED))
            self.assertTrue(can_transition(status, ShipmentStatus.CANCELLED))

    def test_terminal_statuses_are_final(self):
        for status in (ShipmentStatus.DELIVERED, ShipmentStatus.RETURNED, ShipmentStatus.CANCELLED):
            self.assertTrue(is_terminal(status))
            for target in ShipmentStatus.values:
                self.assertFalse(can_transition(status, target))


class ShipmentTestCase(TestCase):
    """Base test case with a paid order"""

    def setUp(self):
        self.user = User.objects.create_user(username='buyer', email='buyer@example.com', password='testpass')
        self.order = Order.objects.create(
            user=self.user,
            status=OrderStatus.CONFIRMED,
            payment_status='COMPLETED',
            subtotal=Decimal('40.00'),
            shipping_cost=Decimal('6.00'),
            total=Decimal('49.20'),
            shipping_name='Amina Otieno',
            shipping_email='amina@example.com',
            shipping_phone='+254712345678',
            shipping_address='12 Moi Avenue',
            shipping_city='Nairobi',
            shipping_country='KE',
        )
        OrderItem.objects.create(
            order=self.order, art_listing_id='art-1', title='Kisii soapstone bowl',
            unit_price=Decimal('40.00'), quantity=1, weight_kg=Decimal('1.0'),
        )


class ShipmentServiceTests(ShipmentTestCase):
    """Test shipment creation and status updates"""

    def test_create_shipment(self):
        shipment = shipment_service.create_shipment(self.order)
        self.assertEqual(shipment.status, ShipmentStatus.CREATED)
        self.assertIsNone(shipment.tracking_number)
        self.assertEqual(shipment.events.count(), 0)
        self.assertEqual(shipment.destination_country, 'KE')
        self.assertEqual(shipment.recipient_name, 'Amina Otieno')
        self.assertEqual(shipment.total_weight_kg, Decimal('1.0'))
        self.assertIsNotNone(shipment.estimated_delivery)

    def test_one_shipment_per_order(self):
        shipment_service.create_shipment(self.order)
        with self.assertRaises(ShipmentAlreadyExists):
            shipment_service.create_shipment(self.order)
        self.assertEqual(Shipment.objects.filter(order=self.order).count(), 1)

    def test_create_requires_country(self):
        self.order.shipping_country = ''
        self.order.save()
        with self.assertRaises(ValidationError):
            shipment_service.create_shipment(self.order)

    def test_first_move_assigns_tracking_number_and_event(self):
        shipment_service.create_shipment(self.order)
        shipment = shipment_service.update_shipment_status(self.order.order_number, 'PICKED_UP', location='Nairobi')

        self.assertTrue(shipment.tracking_number.startswith('AF'))
        self.assertIsNotNone(shipment.picked_up_at)
        self.assertEqual(shipment.events.count(), 1)
        self.assertEqual(shipment.events.get().location, 'Nairobi')

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.SHIPPED)

    def test_each_update_appends_one_event(self):
        shipment = shipment_service.create_shipment(self.order)
        shipment_service.update_shipment_status(shipment.id, ShipmentStatus.LABEL_GENERATED)
        shipment = shipment_service.update_shipment_status(shipment.id, ShipmentStatus.IN_TRANSIT)
        tracking_number = shipment.tracking_number
        shipment = shipment_service.update_shipment_status(tracking_number, ShipmentStatus.OUT_FOR_DELIVERY)

        self.assertEqual(shipment.tracking_number, tracking_number)
        self.assertEqual(
            list(shipment.events.values_list('status', flat=True)),
            ['LABEL_GENERATED', 'IN_TRANSIT', 'OUT_FOR_DELIVERY']
        )

    def test_shipped_notification_sent_once(self):
        shipment = shipment_service.create_shipment(self.order)
        shipment_service.update_shipment_status(shipment.id, ShipmentStatus.PICKED_UP)
        shipment_service.update_shipment_status(shipment.id, ShipmentStatus.IN_TRANSIT)
        self.assertEqual(
            Notification.objects.filter(order=self.order, type=NotificationType.ORDER_SHIPPED).count(), 1
        )

    def test_direct_delivery_updates_order(self):
        shipment = shipment_service.create_shipment(self.order)
        shipment = shipment_service.update_shipment_status(shipment.id, 'delivered')

        self.assertEqual(shipment.status, ShipmentStatus.DELIVERED)
        self.assertIsNotNone(shipment.delivered_at)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)
        self.assertTrue(
            Notification.objects.filter(order=self.order, type=NotificationType.ORDER_DELIVERED).exists()
        )

    def test_backward_transition_rejected_without_changes(self):
        shipment = shipment_service.create_shipment(self.order)
        shipment_service.update_shipment_status(shipment.id, ShipmentStatus.IN_TRANSIT)

        with self.assertRaises(InvalidShipmentTransition):
            shipment_service.update_shipment_status(shipment.id, ShipmentStatus.PICKED_UP)

        shipment.refresh_from_db()
        self.assertEqual(shipment.status, ShipmentStatus.IN_TRANSIT)
        self.assertEqual(shipment.events.count(), 1)

    def test_unknown_status_rejected(self):
        shipment = shipment_service.create_shipment(self.order)
        with self.assertRaises(ValidationError):
            shipment_service.update_shipment_status(shipment.id, 'LOST_AT_SEA')

    def test_unknown_reference(self):
        with self.assertRaises(NotFoundError):
            shipment_service.update_shipment_status('AFNOPE', ShipmentStatus.IN_TRANSIT)

    def test_update_details(self):
        shipment = shipment_service.create_shipment(self.order)
        shipment = shipment_service.update_shipment_details(shipment.id, {'carrier': 'G4S', 'notes': 'Fragile'})
        self.assertEqual(shipment.carrier, 'G4S')
        self.assertEqual(shipment.notes, 'Fragile')
        with self.assertRaises(ValidationError):
            shipment_service.update_shipment_details(shipment.id, {'status': 'DELIVERED'})

    def test_stats(self):
        shipment = shipment_service.create_shipment(self.order)
        shipment_service.update_shipment_status(shipment.id, ShipmentStatus.IN_TRANSIT)
        stats = shipment_service.shipment_stats()
        self.assertEqual(stats['total'], 1)
        self.assertEqual(stats['by_status']['IN_TRANSIT'], 1)
        self.assertEqual(stats['by_status']['DELIVERED'], 0)
        self.assertEqual(stats['in_transit'], 1)


class TrackingInfoTests(ShipmentTestCase):
    """Test the public tracking view"""

    def setUp(self):
        super().setUp()
        shipment = shipment_service.create_shipment(self.order)
        shipment_service.update_shipment_status(shipment.id, ShipmentStatus.PICKED_UP)
        self.shipment = shipment_service.update_shipment_status(shipment.id, ShipmentStatus.IN_TRANSIT)

    def test_tracking_info_excludes_personal_data(self):
        info = shipment_service.get_tracking_info(self.shipment.tracking_number)
        serialized = json.dumps(info)

        self.assertEqual(info['destination'], {'city': 'Nairobi', 'country': 'KE', 'country_name': 'Kenya'})
        for private in ('Amina', '254712345678', 'Moi Avenue', 'amina@example.com'):
            self.assertNotIn(private, serialized)
        for field in ('recipient_name', 'recipient_phone', 'shipping_cost', 'total'):
            self.assertNotIn(field, info)

    def test_events_chronological_with_latest_current(self):
        info = shipment_service.get_tracking_info(self.shipment.tracking_number.lower())
        self.assertEqual([event['status'] for event in info['events']], ['PICKED_UP', 'IN_TRANSIT'])
        self.assertEqual([event['is_current'] for event in info['events']], [False, True])
        self.assertEqual(info['status'], 'IN_TRANSIT')

    def test_direct_delivery_shows_single_event(self):
        order = Order.objects.create(
            payment_method='MPESA', subtotal=Decimal('40.00'), total=Decimal('46.00'),
            shipping_city='Mombasa', shipping_country='KE',
        )
        shipment = shipment_service.create_shipment(order)
        shipment = shipment_service.update_shipment_status(shipment.id, ShipmentStatus.DELIVERED)

        info = shipment_service.get_tracking_info(shipment.tracking_number)
        self.assertEqual(info['status'], 'DELIVERED')
        self.assertEqual(len(info['events']), 1)
        self.assertEqual(info['events'][0]['status'], 'DELIVERED')
        self.assertIsNotNone(info['delivered_at'])

    def test_unknown_tracking_number(self):
        self.assertIsNone(shipment_service.get_tracking_info('AF000000'))

    def test_tracking_events_are_append_only(self):
        event = TrackingEvent.objects.filter(shipment=self.shipment).first()
        event.description = 'changed'
        with self.assertRaises(TypeError):
            event.save()
        with self.assertRaises(TypeError):
            event.delete()
        with self.assertRaises(TypeError):
            TrackingEvent.objects.all().delete()


class ShippingAPITests(ShipmentTestCase):
    """Test the public shipping and tracking endpoints"""

    def setUp(self):
        super().setUp()
        self.client = APIClient()

    def test_quote_with_weight(self):
        response = self.client.post('/api/shipping/', {
            'countryCode': 'KE', 'weight': '1.5', 'subtotal': '20'
        }, format='json')
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['mainShipping']['cost_usd'], 7.0)
        self.assertEqual(data['weight'], 1.5)
        self.assertEqual(len(data['options']), 1)

    def test_quote_with_items(self):
        response = self.client.post('/api/shipping', {
            'countryCode': 'gb',
            'items': [{'weight': '1', 'quantity': 2}],
            'tier': 'express',
        }, format='json')
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['weight'], 2.0)
        self.assertEqual(data['mainShipping']['tier'], 'EXPRESS')
        self.assertEqual(len(data['options']), 3)

    def test_quote_requires_country(self):
        response = self.client.post('/api/shipping/', {'weight': 1}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_quote_get(self):
        response = self.client.get('/api/shipping/', {'country': 'US', 'weight': '2'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['zone'], 'AMERICAS')
        self.assertEqual(self.client.get('/api/shipping/').status_code, 400)

    def test_quote_get_rejects_non_finite_numbers(self):
        for params in ({'weight': 'nan'}, {'weight': 'Infinity'}, {'subtotal': 'nan'}):
            response = self.client.get('/api/shipping/', dict(params, country='KE'))
            self.assertEqual(response.status_code, 400, params)

    def test_tracking_endpoint(self):
        shipment = shipment_service.create_shipment(self.order)
        shipment = shipment_service.update_shipment_status(shipment.id, ShipmentStatus.PICKED_UP)

        response = self.client.get('/api/tracking/', {'tracking': shipment.tracking_number})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['status'], 'PICKED_UP')

        response = self.client.post('/api/tracking/', {'trackingNumber': shipment.tracking_number}, format='json')
        self.assertEqual(response.status_code, 200)

    def test_tracking_errors(self):
        self.assertEqual(self.client.get('/api/tracking/').status_code, 400)
        self.assertEqual(self.client.get('/api/tracking/', {'tracking': 'AFUNKNOWN'}).status_code, 404)


class ShipmentAdminAPITests(ShipmentTestCase):
    """Test the admin shipment endpoints"""

    def setUp(self):
        super().setUp()
        self.admin = User.objects.create_user(username='admin', password='testpass', is_staff=True)
        self.client = APIClient()
        self.shipment = shipment_service.create_shipment(self.order)

    def test_requires_admin(self):
        self.assertIn(self.client.get('/api/shipments/').status_code, (401, 403))
        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.get('/api/shipments/').status_code, 403)

    def test_list_and_filter(self):
        self.client.force_authenticate(self.admin)
        response = self.client.get('/api/shipments/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['count'], 1)

        response = self.client.get('/api/shipments/', {'status': 'DELIVERED'})
        self.assertEqual(response.json()['count'], 0)

        response = self.client.get('/api/shipments/', {'search': 'Amina'})
        self.assertEqual(response.json()['count'], 1)

    def test_status_update(self):
        self.client.force_authenticate(self.admin)
        url = f'/api/shipments/{self.shipment.id}/status/'

        response = self.client.post(url, {'status': 'in_transit', 'location': 'Mombasa'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'IN_TRANSIT')

        response = self.client.post(url, {'status': 'PICKED_UP'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_create_conflict(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post('/api/shipments/', {'order_number': self.order.order_number}, format='json')
        self.assertEqual(response.status_code, 409)

    def test_partial_update_and_stats(self):
        self.client.force_authenticate(self.admin)
        response = self.client.patch(
            f'/api/shipments/{self.shipment.id}/', {'carrier': 'Sendy'}, format='json'
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['carrier'], 'Sendy')

        response = self.client.get('/api/shipments/stats/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['by_status']['CREATED'], 1)
