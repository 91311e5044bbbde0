from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from modules.accounts.models import UserRole
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import OwnerType, Product, ProductStatus
from modules.products.repositories import ProductDjangoRepository

SEED_USERS = [
    ("admin", "Admin", UserRole.ADMIN, ""),
    ("asha", "Asha Verma", UserRole.CUSTOMER, "+91 98100 00001"),
    ("rahul", "Rahul Nair", UserRole.CUSTOMER, "+91 98100 00002"),
    ("freshmart", "FreshMart Store", UserRole.RETAILER, "+91 98100 00010"),
    ("agrobulk", "AgroBulk Traders", UserRole.WHOLESALER, "+91 98100 00020"),
    ("vikram", "Vikram Singh", UserRole.DELIVERY, "+91 98100 00030"),
    ("meena", "Meena Iyer", UserRole.DELIVERY, "+91 98100 00031"),
]

SEED_PRODUCTS = [
    ("RICE-5KG", "Basmati Rice 5kg", Decimal("649.00"), OwnerType.RETAILER),
    ("ATTA-10KG", "Whole Wheat Atta 10kg", Decimal("499.00"), OwnerType.RETAILER),
    ("DAL-1KG", "Toor Dal 1kg", Decimal("159.00"), OwnerType.RETAILER),
    ("OIL-1L", "Sunflower Oil 1L", Decimal("189.00"), OwnerType.RETAILER),
    ("RICE-50KG", "Basmati Rice 50kg Sack", Decimal("5400.00"), OwnerType.WHOLESALER),
    ("SUGAR-50KG", "Sugar 50kg Sack", Decimal("2100.00"), OwnerType.WHOLESALER),
]


class Command(BaseCommand):
    help = "Seed database with LiveMart development data."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users = self._seed_users()
        products = self._seed_products(users)
        orders_created = self._seed_orders(users, products)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={len(users)}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> dict:
        User = get_user_model()
        users = {}
        for username, name, role, phone in SEED_USERS:
            user = User.objects.filter(username=username).first()
            if user is None:
                user = User.objects.create_user(
                    username,
                    email=f"{username}@livemart.local",
                    password=f"{username}123",
                    name=name,
                    role=role,
                    phone=phone,
                    address="12 MG Road, Bengaluru",
                    is_staff=role == UserRole.ADMIN,
                    is_superuser=role == UserRole.ADMIN,
                )
            users[username] = user
        return users

    def _seed_products(self, users: dict) -> list[Product]:
        self.stdout.write("Creating products...")
        owners = {
            OwnerType.RETAILER: users["freshmart"],
            OwnerType.WHOLESALER: users["agrobulk"],
        }
        products = []
        for sku, name, price, tier in SEED_PRODUCTS:
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    "name": name,
                    "price": price,
                    "stock_quantity": random.randint(50, 200),
                    "status": ProductStatus.ACTIVE,
                    "owner": owners[tier],
                    "owner_type": tier,
                },
            )
            products.append(product)
        return products

    @transaction.atomic
    def _seed_orders(self, users: dict, products: list[Product]) -> int:
        self.stdout.write("Creating orders...")
        service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )
        retail = [p for p in products if p.owner_type == OwnerType.RETAILER]
        wholesale = [p for p in products if p.owner_type == OwnerType.WHOLESALER]
        plans = [
            (users["asha"], retail),
            (users["rahul"], retail),
            (users["freshmart"], wholesale),
        ]
        created = 0
        for buyer, catalogue in plans:
            picks = random.sample(catalogue, k=min(2, len(catalogue)))
            dto = CreateOrderDTO(
                items=[
                    CreateOrderItemDTO(product_id=p.id, quantity=random.randint(1, 3))
                    for p in picks
                ],
                address=buyer.address,
                idempotency_key=f"seed-{buyer.username}",
            )
            service.create_order(dto, buyer)
            created += 1
        return created
