"""
Tests for authentication, audit logs, role groups and dashboard caching
"""
from io import StringIO

from django.contrib.auth.models import Group
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from rest_framework import status

from stockroom.inventory.ledger import StockLedger
from .cache_signals import suspend_cache_signals
from .cache_utils import DASHBOARD_PREFIX, cached_query, get_generation, invalidate_dashboard_cache
from .models import AuditLog
from .permissions import ADMINISTRATOR, MANAGER, STAFF
from .test_utils import TestDataFactory, AuthenticatedAPIClient
from .utils import create_audit_log


class AuthAPITest(TestCase):
    """Test token login and the current-user endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user(username='alice', password='s3cret-pass', roles=[STAFF])
        self.client = AuthenticatedAPIClient()

    def test_login_returns_token_pair(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'alice', 'password': 's3cret-pass'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)

        response = self.client.post('/api/v1/auth/refresh/', {'refresh': response.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_login_with_wrong_password(self):
        response = self.client.post('/api/v1/auth/login/', {'username': 'alice', 'password': 'nope'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_lists_groups(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], 'alice')
        self.assertEqual(response.data['groups'], [STAFF])

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class AuditLogAPITest(TestCase):
    """Audit logs are readable by managers only"""

    def setUp(self):
        self.manager = TestDataFactory.create_user(roles=[MANAGER])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)
        create_audit_log(action='create', model_name='Warehouse', object_id=1, object_name='North', user=self.manager)
        create_audit_log(action='delete', model_name='Warehouse', object_id=2, object_name='South', user=self.manager)

    def test_list_and_filter(self):
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)

        response = self.client.get('/api/v1/audit-logs/?action=delete')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['object_name'], 'South')
        self.assertEqual(response.data['results'][0]['username'], self.manager.username)

    def test_detail(self):
        log = AuditLog.objects.get(action='create')
        response = self.client.get(f'/api/v1/audit-logs/{log.id}/')
        self.assertEqual(response.data['object_id'], '1')

    def test_staff_cannot_read_audit_logs(self):
        self.client.authenticate_user(TestDataFactory.create_user(roles=[STAFF]))
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_missing_fields_skip_the_entry(self):
        self.assertIsNone(create_audit_log(action='create', model_name='Warehouse'))
        self.assertEqual(AuditLog.objects.count(), 2)


class CreateUserGroupsCommandTest(TestCase):

    def test_creates_role_groups_once(self):
        call_command('create_user_groups', stdout=StringIO())
        call_command('create_user_groups', stdout=StringIO())
        self.assertEqual(
            sorted(Group.objects.values_list('name', flat=True)),
            sorted([ADMINISTRATOR, MANAGER, STAFF]),
        )

    def test_role_membership(self):
        call_command('create_user_groups', stdout=StringIO())
        manager = TestDataFactory.create_user(roles=[MANAGER])
        staff = TestDataFactory.create_user(roles=[STAFF])
        self.assertTrue(manager.has_role(ADMINISTRATOR, MANAGER))
        self.assertFalse(staff.has_role(ADMINISTRATOR, MANAGER))
        self.assertTrue(TestDataFactory.create_user(is_superuser=True).has_role(MANAGER))


class DashboardCacheTest(TestCase):
    """Test generation-based invalidation of cached dashboard metrics"""

    def setUp(self):
        cache.clear()
        self.calls = []

        @cached_query(cache_ttl=60, key_prefix=DASHBOARD_PREFIX)
        def metrics(threshold):
            self.calls.append(threshold)
            return {'threshold': threshold, 'call': len(self.calls)}

        self.metrics = metrics

    def test_cached_until_invalidated(self):
        self.assertEqual(self.metrics(5)['call'], 1)
        self.assertEqual(self.metrics(5)['call'], 1)
        self.assertEqual(self.metrics(6)['call'], 2)

        generation = get_generation(DASHBOARD_PREFIX)
        invalidate_dashboard_cache()
        self.assertEqual(get_generation(DASHBOARD_PREFIX), generation + 1)
        self.assertEqual(self.metrics(5)['call'], 3)

    def test_stock_change_invalidates_after_commit(self):
        self.metrics(5)
        product = TestDataFactory.create_product()
        warehouse = TestDataFactory.create_warehouse()
        generation = get_generation(DASHBOARD_PREFIX)

        with self.captureOnCommitCallbacks(execute=True):
            StockLedger.adjust(product.id, warehouse.id, 3)
        self.assertGreater(get_generation(DASHBOARD_PREFIX), generation)
        self.assertEqual(self.metrics(5)['call'], 2)

    def test_suspended_signals_leave_cache_alone(self):
        product = TestDataFactory.create_product()
        warehouse = TestDataFactory.create_warehouse()
        generation = get_generation(DASHBOARD_PREFIX)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with suspend_cache_signals():
                StockLedger.adjust(product.id, warehouse.id, 3)
        self.assertEqual(callbacks, [])
        self.assertEqual(get_generation(DASHBOARD_PREFIX), generation)
