from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.orders.dtos import CartItemDTO, OrderInputDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.exceptions import InsufficientStock
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

CATALOG = [
    ("MATE-001", "Mate de calabaza", Decimal("8500.00"), Decimal("0.00")),
    ("MATE-002", "Mate de acero", Decimal("12900.00"), Decimal("11500.00")),
    ("BOMB-001", "Bombilla pico de loro", Decimal("4200.00"), Decimal("0.00")),
    ("YERB-001", "Yerba 1kg", Decimal("5600.00"), Decimal("0.00")),
    ("YERB-002", "Yerba organica 500g", Decimal("4100.00"), Decimal("3800.00")),
    ("TERM-001", "Termo 1L", Decimal("38000.00"), Decimal("0.00")),
    ("MATR-001", "Matera de cuero", Decimal("21000.00"), Decimal("0.00")),
    ("KIT-001", "Kit matero", Decimal("64000.00"), Decimal("59900.00")),
]

CUSTOMERS = [
    ("Ana Gomez", "+5491144445555", "ana@example.com"),
    ("Bruno Diaz", "+5491155556666", "bruno@example.com"),
    ("Carla Ruiz", "+5493415551234", ""),
]


class Command(BaseCommand):
    help = "Seed database with a demo catalog, a staff user and counter-sale orders."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=5)

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        products = self._seed_products()
        orders_created = self._seed_orders(products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        if User.objects.filter(username="admin").exists():
            return 0
        User.objects.create_superuser("admin", password="admin123")
        return 1

    def _seed_products(self) -> list[Product]:
        products: list[Product] = []
        for sku, name, price, sale_price in CATALOG:
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    "name": name,
                    "price": price,
                    "sale_price": sale_price,
                    "stock_quantity": random.randint(5, 60),
                    "status": ProductStatus.ACTIVE,
                },
            )
            products.append(product)
        return products

    def _seed_orders(self, products: list[Product], count: int) -> int:
        service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )
        created = 0
        for _ in range(count):
            name, phone, email = random.choice(CUSTOMERS)
            picks = random.sample(products, k=random.randint(1, 3))
            dto = OrderInputDTO(
                items=[
                    CartItemDTO(product_id=str(p.id), quantity=random.randint(1, 2))
                    for p in picks
                ],
                customer_name=name,
                customer_phone=phone,
                customer_email=email or None,
            )
            try:
                service.create_admin_order(dto)
            except InsufficientStock:
                self.stdout.write(self.style.WARNING("Skipping order (out of stock)."))
                continue
            created += 1
        return created
