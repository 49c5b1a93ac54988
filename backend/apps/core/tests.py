from unittest.mock import MagicMock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase, override_settings

from .exceptions import ResourceNotFound, api_exception_handler
from .permissions import IsMarketplaceAdmin, get_admin_check, user_is_marketplace_admin
from .services import BaseService, NotFoundError, ValidationError

User = get_user_model()


def nobody_is_admin(user):
    return False


class AdminCheckTests(TestCase):
    """Test the admin capability check"""

    def setUp(self):
        self.user = User.objects.create_user(username='curator', password='testpass')

    def test_plain_user_is_not_admin(self):
        self.assertFalse(user_is_marketplace_admin(self.user))

    def test_staff_and_group_members_are_admins(self):
        staff = User.objects.create_user(username='staff', password='testpass', is_staff=True)
        self.assertTrue(user_is_marketplace_admin(staff))

        self.user.groups.add(Group.objects.create(name='marketplace-admin'))
        self.assertTrue(user_is_marketplace_admin(self.user))

    @override_settings(MARKETPLACE_ADMIN_CHECK='apps.core.tests.nobody_is_admin')
    def test_check_is_configurable(self):
        staff = User.objects.create_user(username='staff', password='testpass', is_staff=True)
        self.assertIs(get_admin_check(), nobody_is_admin)

        request = MagicMock(user=staff)
        self.assertFalse(IsMarketplaceAdmin().has_permission(request, None))


class ServiceErrorTests(TestCase):
    """Test service error handling"""

    def test_errors_map_to_api_exceptions(self):
        error = NotFoundError('Order ORD-1 not found')
        api_error = error.to_api_exception()
        self.assertIsInstance(api_error, ResourceNotFound)
        self.assertEqual(api_error.status_code, 404)
        self.assertEqual(str(api_error.detail), 'Order ORD-1 not found')

    def test_validate_required_fields(self):
        with self.assertRaises(ValidationError) as ctx:
            BaseService().validate_required_fields({'name': 'Amina', 'country': ''}, ['name', 'country'])
        self.assertEqual(ctx.exception.message, 'Missing required fields: country')

    def test_unhandled_errors_become_generic_500(self):
        response = api_exception_handler(RuntimeError('database password is hunter2'), {'view': None})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data, {'error': 'Internal server error'})

    def test_api_exceptions_keep_their_status(self):
        response = api_exception_handler(ResourceNotFound('Shipment AF1 not found'), {'view': None})
        self.assertEqual(response.status_code, 404)
