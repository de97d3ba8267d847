"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.db import connection
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from stockroom.locations.models import Warehouse
from stockroom.parties.models import Supplier
from stockroom.catalog.models import Category, Product
from stockroom.inventory.ledger import StockLedger
from stockroom.purchasing.models import PurchaseOrder, PurchaseOrderItem
from decimal import Decimal
import random
import string
import threading

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""
    __test__ = False

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', roles=None, is_superuser=False):
        """Create a test user, optionally in the given role groups"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_superuser=is_superuser
        )
        for role in roles or []:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user

    @staticmethod
    def create_warehouse(name=None, address=None, is_active=True):
        """Create a test warehouse"""
        if not name:
            name = f'Warehouse_{TestDataFactory.random_string(6)}'
        return Warehouse.objects.create(
            name=name,
            address=address or f'Test Address {name}',
            phone='1234567890',
            is_active=is_active
        )

    @staticmethod
    def create_supplier(name=None, phone=None, email=None):
        """Create a test supplier"""
        if not name:
            name = f'Supplier_{TestDataFactory.random_string(6)}'
        if not phone:
            phone = f'9{random.randint(100000000, 999999999)}'
        if not email:
            email = f'{name.lower()}@test.com'
        return Supplier.objects.create(
            name=name,
            phone=phone,
            email=email
        )

    @staticmethod
    def create_category(name=None, description=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(
            name=name,
            description=description or f'Test category {name}'
        )

    @staticmethod
    def create_product(name=None, category=None, supplier=None, price=None, is_active=True, specifications=None):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not category:
            category = TestDataFactory.create_category()
        if not supplier:
            supplier = TestDataFactory.create_supplier()
        if price is None:
            price = Decimal('100.00')
        return Product.objects.create(
            name=name,
            category=category,
            supplier=supplier,
            price=price,
            is_active=is_active,
            specifications=specifications or []
        )

    @staticmethod
    def create_stock(product, warehouse, quantity):
        """Put ``quantity`` units of a product in a warehouse through the ledger (no movement row)"""
        if quantity:
            return StockLedger.adjust(product.id, warehouse.id, quantity)
        StockLedger.ensure_location(product.id, warehouse.id)
        return 0

    @staticmethod
    def create_purchase_order(user=None, supplier=None, status='draft', order_date=None, notes=''):
        """Create a test purchase order without items"""
        if not supplier:
            supplier = TestDataFactory.create_supplier()
        if not order_date:
            order_date = timezone.now()
        return PurchaseOrder.objects.create(
            supplier=supplier,
            order_date=order_date,
            status=status,
            notes=notes,
            created_by=user
        )

    @staticmethod
    def create_purchase_order_item(order, product, quantity=None, unit_price=None):
        """Create a test purchase order item"""
        if quantity is None:
            quantity = 10
        if unit_price is None:
            unit_price = Decimal('100.00')
        return PurchaseOrderItem.objects.create(
            order=order,
            product=product,
            quantity=quantity,
            unit_price=unit_price
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()


def supports_concurrent_writes():
    """
    True when two transactions on separate connections queue behind each
    other instead of failing. SQLite needs a file database opened with
    ``transaction_mode='IMMEDIATE'``.
    """
    if connection.vendor != 'sqlite':
        return connection.features.has_select_for_update
    immediate = connection.settings_dict['OPTIONS'].get('transaction_mode') == 'IMMEDIATE'
    return immediate and not connection.is_in_memory_db()


def run_concurrently(*calls):
    """
    Run each callable in its own thread, released together by a barrier.
    Returns one outcome per call: its return value or the exception it raised.
    """
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def worker(index, call):
        try:
            barrier.wait()
            outcomes[index] = call()
        except Exception as e:
            outcomes[index] = e
        finally:
            connection.close()

    threads = [threading.Thread(target=worker, args=(index, call)) for index, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes
