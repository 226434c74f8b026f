from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.repositories import OrderDjangoRepository
from modules.products.models import Product

SIZES = [{"name": "Small", "price": "0.00"}, {"name": "Large", "price": "20.00"}]
VASES = [{"name": "Glass", "price": "15.00"}]

SHIPPING_ADDRESS = {
    "full_name": "Maria Silva",
    "street": "12 Garden Lane",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "US",
    "phone": "+1 555 0100",
}


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def customer():
    return get_user_model().objects.create_user(
        "maria", email="maria@example.com", password="secret123"
    )


@pytest.fixture()
def other_customer():
    return get_user_model().objects.create_user(
        "joao", email="joao@example.com", password="secret123"
    )


@pytest.fixture()
def staff():
    return get_user_model().objects.create_user(
        "florist", email="florist@example.com", password="secret123", is_staff=True
    )


@pytest.fixture()
def product():
    return Product.objects.create(
        name="Red Rose Bouquet",
        price=Decimal("100.00"),
        stock=10,
        low_stock_threshold=3,
        sizes=SIZES,
        vases=VASES,
    )


@pytest.fixture()
def second_product():
    return Product.objects.create(
        name="Sunflower Bunch",
        price=Decimal("30.00"),
        stock=5,
    )


@pytest.fixture()
def make_order(customer, product):
    """Factory persisting an order without going through checkout.

    Defaults reproduce a two-bouquet order: subtotal 200, shipping 10,
    tax 8, discount 5, total 213.
    """

    def _make(
        user=None,
        lines=None,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        **fields,
    ):
        lines = lines or [(product, 2)]
        subtotal = sum((p.price * qty for p, qty in lines), Decimal("0.00"))
        data = {
            "user_id": (user or customer).pk,
            "status": status,
            "payment_status": payment_status,
            "shipping_address": SHIPPING_ADDRESS,
            "subtotal": subtotal,
            "shipping_fee": Decimal("10.00"),
            "tax": Decimal("8.00"),
            "discount": Decimal("5.00"),
            "items": [
                {
                    "product": p,
                    "product_name": p.name,
                    "quantity": qty,
                    "unit_price": p.price,
                }
                for p, qty in lines
            ],
        }
        data.update(fields)
        order = OrderDjangoRepository().create(data)
        return OrderDjangoRepository().get_by_id(order.pk)

    return _make


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def customer_client(customer):
    client = APIClient()
    client.force_authenticate(user=customer)
    return client


@pytest.fixture()
def other_client(other_customer):
    client = APIClient()
    client.force_authenticate(user=other_customer)
    return client


@pytest.fixture()
def staff_client(staff):
    client = APIClient()
    client.force_authenticate(user=staff)
    return client
