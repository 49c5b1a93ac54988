from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.sessions.backends.cache import SessionStore
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient

from apps.core.services import NotFoundError, ValidationError
from apps.notifications.models import Notification, NotificationType

from .cart import (
    CacheCartStorage, CartAction, CartItem, CartState, CartStore, SessionCartStorage, reduce_cart
)
from .models import Order, OrderItem, PaymentMethod
from .services import order_service

User = get_user_model()


def add_item(state, art_listing_id='art-1', price='25.00', quantity=1, weight=None):
    payload = {'art_listing_id': art_listing_id, 'title': f'Listing {art_listing_id}',
               'price': price, 'quantity': quantity}
    if weight is not None:
        payload['weight'] = weight
    return reduce_cart(state, {'type': CartAction.ADD_ITEM, 'payload': payload})


class CartReducerTests(TestCase):
    """Test the pure cart reducer"""

    def test_add_item_returns_new_state(self):
        state = CartState()
        new_state = add_item(state)
        self.assertEqual(state.items, ())
        self.assertEqual(len(new_state.items), 1)
        self.assertEqual(new_state.items[0].price, Decimal('25.00'))

    def test_adding_same_listing_merges_quantity(self):
        state = add_item(add_item(CartState(), quantity=2), quantity=3)
        self.assertEqual(len(state.items), 1)
        self.assertEqual(state.item_count, 5)

    def test_add_with_zero_quantity_is_noop(self):
        state = CartState()
        self.assertIs(add_item(state, quantity=0), state)

    def test_remove_item(self):
        state = add_item(add_item(CartState(), 'art-1'), 'art-2')
        state = reduce_cart(state, {'type': CartAction.REMOVE_ITEM, 'payload': {'art_listing_id': 'art-1'}})
        self.assertEqual([item.art_listing_id for item in state.items], ['art-2'])

    def test_update_quantity_and_remove_at_zero(self):
        state = add_item(CartState())
        state = reduce_cart(state, {
            'type': CartAction.UPDATE_QUANTITY, 'payload': {'art_listing_id': 'art-1', 'quantity': 4}
        })
        self.assertEqual(state.item_count, 4)
        state = reduce_cart(state, {
            'type': CartAction.UPDATE_QUANTITY, 'payload': {'art_listing_id': 'art-1', 'quantity': 0}
        })
        self.assertEqual(state.items, ())

    def test_clear_keeps_wishlist(self):
        state = add_item(CartState())
        state = reduce_cart(state, {'type': CartAction.WISHLIST_ADD, 'payload': {'art_listing_id': 'art-9'}})
        state = reduce_cart(state, {'type': CartAction.CLEAR})
        self.assertEqual(state.items, ())
        self.assertTrue(state.in_wishlist('art-9'))

    def test_wishlist_toggle(self):
        action = {'type': CartAction.WISHLIST_TOGGLE, 'payload': {'art_listing_id': 'art-3'}}
        state = reduce_cart(CartState(), action)
        self.assertTrue(state.in_wishlist('art-3'))
        state = reduce_cart(state, action)
        self.assertFalse(state.in_wishlist('art-3'))

    def test_wishlist_add_is_idempotent(self):
        action = {'type': CartAction.WISHLIST_ADD, 'payload': {'art_listing_id': 'art-3'}}
        state = reduce_cart(CartState(), action)
        self.assertIs(reduce_cart(state, action), state)

    def test_unknown_action_rejected(self):
        with self.assertRaises(ValueError):
            reduce_cart(CartState(), {'type': 'EMPTY_EVERYTHING'})

    def test_totals(self):
        state = add_item(CartState(), 'art-1', price='10.00', quantity=2, weight='1.5')
        state = add_item(state, 'art-2', price='5.50')
        self.assertEqual(state.subtotal, Decimal('25.50'))
        # art-2 has no weight and counts at the default item weight
        self.assertEqual(state.total_weight, Decimal('3.5'))


class CartStorageTests(TestCase):
    """Test cart persistence backends"""

    def setUp(self):
        cache.clear()

    def test_session_storage_round_trip(self):
        session = SessionStore()
        storage = SessionCartStorage(session)
        storage.save(add_item(CartState(), weight='2'))
        loaded = SessionCartStorage(session).load()
        self.assertEqual(loaded.items[0], CartItem(
            art_listing_id='art-1', title='Listing art-1', price=Decimal('25.00'), weight=Decimal('2')
        ))

    def test_cache_storage_is_per_user(self):
        CacheCartStorage(1).save(add_item(CartState()))
        self.assertEqual(CacheCartStorage(1).load().item_count, 1)
        self.assertEqual(CacheCartStorage(2).load().item_count, 0)

    def test_store_dispatch_persists(self):
        storage = CacheCartStorage(7)
        store = CartStore(storage)
        store.dispatch(CartAction.ADD_ITEM, {'art_listing_id': 'art-1', 'price': '12.00', 'quantity': 2})
        snapshot = CartStore(storage).snapshot()
        self.assertEqual(snapshot['item_count'], 2)
        self.assertEqual(snapshot['subtotal'], '24.00')


class OrderServiceTests(TestCase):
    """Test order creation"""

    def setUp(self):
        self.user = User.objects.create_user(username='buyer', email='buyer@example.com', password='testpass')
        self.items = [{'art_listing_id': 'art-1', 'title': 'Kisii soapstone bowl', 'price': '50.00',
                       'quantity': 1, 'weight': '1.0'}]
        self.shipping_info = {'name': 'Amina Otieno', 'email': 'amina@example.com',
                              'phone': '254712345678', 'city': 'Nairobi', 'country': 'ke'}

    def test_create_order_totals(self):
        order = order_service.create_order(self.user, self.items, self.shipping_info, PaymentMethod.MPESA)

        self.assertEqual(order.subtotal, Decimal('50.00'))
        self.assertEqual(order.shipping_cost, Decimal('6.00'))
        self.assertEqual(order.tax, Decimal('4.00'))
        self.assertEqual(order.total, Decimal('60.00'))
        self.assertEqual(order.shipping_country, 'KE')
        self.assertEqual(order.user, self.user)
        self.assertTrue(order.order_number.startswith('ORD-'))

    def test_create_order_captures_items(self):
        order = order_service.create_order(self.user, self.items, self.shipping_info, PaymentMethod.MPESA)
        item = OrderItem.objects.get(order=order)
        self.assertEqual(item.unit_price, Decimal('50.00'))
        self.assertEqual(item.weight_kg, Decimal('1.0'))
        self.assertEqual(order.item_count, 1)

    def test_create_order_notifies_once(self):
        order = order_service.create_order(self.user, self.items, self.shipping_info, PaymentMethod.PESAPAL)
        notifications = Notification.objects.filter(order=order, type=NotificationType.ORDER_PLACED)
        self.assertEqual(notifications.count(), 1)
        self.assertEqual(notifications.get().user, self.user)

    def test_free_shipping_over_threshold(self):
        items = [dict(self.items[0], price='120.00')]
        order = order_service.create_order(self.user, items, self.shipping_info, PaymentMethod.MPESA)
        self.assertEqual(order.shipping_cost, Decimal('0.00'))

    def test_anonymous_checkout_has_no_user(self):
        order = order_service.create_order(None, self.items, self.shipping_info, PaymentMethod.MPESA)
        self.assertIsNone(order.user)

    def test_empty_cart_rejected(self):
        with self.assertRaises(ValidationError):
            order_service.create_order(self.user, [], self.shipping_info, PaymentMethod.MPESA)

    def test_missing_country_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            order_service.create_order(self.user, self.items, {'name': 'Amina'}, PaymentMethod.MPESA)
        self.assertIn('country', ctx.exception.message)
        self.assertFalse(Order.objects.exists())

    def test_unsupported_payment_method_rejected(self):
        with self.assertRaises(ValidationError):
            order_service.create_order(self.user, self.items, self.shipping_info, 'CHEQUE')

    def test_get_unknown_order(self):
        with self.assertRaises(NotFoundError):
            order_service.get_order('ORD-MISSING')


class CartAPITests(TestCase):
    """Test cart and wishlist endpoints"""

    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def test_anonymous_cart_lives_in_session(self):
        response = self.client.post('/api/cart/', {
            'action': 'ADD_ITEM', 'art_listing_id': 'art-1', 'title': 'Mask', 'price': '30.00', 'quantity': 2
        }, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['item_count'], 2)

        response = self.client.get('/api/cart/')
        self.assertEqual(response.data['data']['subtotal'], '60.00')

    def test_add_requires_price(self):
        response = self.client.post('/api/cart/', {'action': 'ADD_ITEM', 'art_listing_id': 'art-1'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_delete_single_item_then_clear(self):
        for listing in ('art-1', 'art-2'):
            self.client.post('/api/cart/', {'art_listing_id': listing, 'price': '10.00'}, format='json')

        response = self.client.delete('/api/cart/?item=art-1')
        self.assertEqual([item['art_listing_id'] for item in response.data['data']['items']], ['art-2'])

        response = self.client.delete('/api/cart/')
        self.assertEqual(response.data['data']['items'], [])

    def test_signed_in_cart_uses_cache(self):
        user = User.objects.create_user(username='collector', password='testpass')
        self.client.force_authenticate(user=user)
        self.client.post('/api/cart/', {'art_listing_id': 'art-1', 'price': '10.00'}, format='json')
        self.assertEqual(CacheCartStorage(user.pk).load().item_count, 1)

    def test_wishlist_toggle(self):
        response = self.client.post('/api/wishlist/', {'art_listing_id': 'art-5'}, format='json')
        self.assertTrue(response.data['in_wishlist'])
        response = self.client.post('/api/wishlist/', {'art_listing_id': 'art-5'}, format='json')
        self.assertFalse(response.data['in_wishlist'])


class OrderAPITests(TestCase):
    """Test order read endpoints"""

    def setUp(self):
        self.client = APIClient()
        self.owner = User.objects.create_user(username='owner', password='testpass')
        self.other = User.objects.create_user(username='other', password='testpass')
        self.order = Order.objects.create(
            user=self.owner, payment_method=PaymentMethod.MPESA, total=Decimal('60.00'), shipping_country='KE'
        )

    def test_list_requires_login(self):
        response = self.client.get('/api/orders/')
        self.assertIn(response.status_code, (401, 403))

    def test_list_only_own_orders(self):
        Order.objects.create(user=self.other, payment_method=PaymentMethod.MPESA)
        self.client.force_authenticate(user=self.owner)
        response = self.client.get('/api/orders/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            [order['order_number'] for order in response.data['results']], [self.order.order_number]
        )

    def test_owner_can_read_order(self):
        self.client.force_authenticate(user=self.owner)
        response = self.client.get(f'/api/orders/{self.order.order_number}/')
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data['tracking_number'])

    def test_other_user_forbidden(self):
        self.client.force_authenticate(user=self.other)
        response = self.client.get(f'/api/orders/{self.order.order_number}/')
        self.assertEqual(response.status_code, 403)

    def test_staff_can_read_any_order(self):
        staff = User.objects.create_user(username='staff', password='testpass', is_staff=True)
        self.client.force_authenticate(user=staff)
        response = self.client.get(f'/api/orders/{self.order.order_number}/')
        self.assertEqual(response.status_code, 200)

    def test_unknown_order_404(self):
        self.client.force_authenticate(user=self.owner)
        response = self.client.get('/api/orders/ORD-MISSING/')
        self.assertEqual(response.status_code, 404)
