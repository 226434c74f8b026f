from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.products.models import Product
from modules.shopping.models import Wishlist

SIZES = [
    {"name": "Small", "price": "0.00"},
    {"name": "Medium", "price": "10.00"},
    {"name": "Large", "price": "25.00"},
]
VASES = [
    {"name": "Glass", "price": "15.00"},
    {"name": "Ceramic", "price": "22.00"},
]


class Command(BaseCommand):
    help = "Seed database with a small flower catalogue and demo accounts."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        products = self._seed_products()
        self._seed_wishlist(products)

        self.stdout.write(
            self.style.SUCCESS(
                f"Seed completed: users={users_created}, products={len(products)}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser(
                "admin", email="admin@example.com", password="admin123"
            )
            created += 1
        if not User.objects.filter(username="florist").exists():
            User.objects.create_user(
                "florist",
                email="florist@example.com",
                password="florist123",
                is_staff=True,
            )
            created += 1
        if not User.objects.filter(username="customer").exists():
            User.objects.create_user(
                "customer", email="customer@example.com", password="customer123"
            )
            created += 1
        return created

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        catalog = [
            ("Red Rose Bouquet", "A dozen long-stem red roses.", Decimal("49.90")),
            ("Sunflower Bunch", "Seven bright sunflowers.", Decimal("34.50")),
            ("White Lily Arrangement", "Oriental lilies with greenery.", Decimal("59.00")),
            ("Tulip Mix", "Fifteen seasonal tulips.", Decimal("39.90")),
            ("Orchid Pot", "Phalaenopsis orchid, two stems.", Decimal("64.00")),
            ("Peony Posy", "Blush peonies, in season only.", Decimal("72.00")),
            ("Wildflower Jar", "Hand-picked meadow flowers.", Decimal("28.00")),
            ("Carnation Box", "Twenty mixed carnations.", Decimal("31.00")),
        ]
        for name, description, price in catalog:
            product, _ = Product.objects.get_or_create(
                name=name,
                defaults={
                    "description": description,
                    "price": price,
                    "stock": random.randint(5, 60),
                    "low_stock_threshold": 10,
                    "sizes": SIZES,
                    "vases": VASES,
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_wishlist(self, products: list[Product]) -> None:
        customer = get_user_model().objects.filter(username="customer").first()
        if customer is None or not products:
            return
        wishlist, _ = Wishlist.objects.get_or_create(user=customer)
        wishlist.products.add(*random.sample(products, k=min(3, len(products))))
