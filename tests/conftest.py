"""Pytest configuration: an in-memory Supabase project behind the app."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from storefront import main
from storefront.mailer import Mailer, get_mailer
from storefront.supabase_client import SupabaseClient, get_supabase
from tests.fake_supabase import FakeSupabase


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def fake():
    return FakeSupabase()


@pytest.fixture
def supabase(fake):
    client = fake.client()
    yield client
    client.close()


@pytest.fixture
def mailer():
    return MagicMock(spec=Mailer)


@pytest.fixture
def missed_lookups(monkeypatch):
    """maybe_single() returns None for the next N reads of a table, as if a concurrent insert had not landed yet."""
    misses = {}
    original = SupabaseClient.maybe_single

    def maybe_single(self, table, params=None, columns="*"):
        if misses.get(table, 0) > 0:
            misses[table] -= 1
            return None
        return original(self, table, params, columns)

    monkeypatch.setattr(SupabaseClient, "maybe_single", maybe_single)
    return misses


@pytest.fixture
def client(supabase, mailer, monkeypatch, tmp_path):
    """TestClient wired to the fake project; scratch uploads go to tmp_path."""
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "uploads"))
    main.app.dependency_overrides[get_supabase] = lambda: supabase
    main.app.dependency_overrides[main._platform_client] = lambda: supabase
    main.app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def customer(fake):
    row, token = fake.add_user("alice@example.com", role="customer", name="Alice Smith")
    return {**row, "headers": bearer(token)}


@pytest.fixture
def other_customer(fake):
    row, token = fake.add_user("bob@example.com", role="customer", name="Bob Jones")
    return {**row, "headers": bearer(token)}


@pytest.fixture
def admin(fake):
    row, token = fake.add_user("admin@example.com", role="admin", name="Ada Admin")
    return {**row, "headers": bearer(token)}


@pytest.fixture
def catalog(fake):
    """One category with a visible product and two variants (stock 5 and 0)."""
    category = fake.add("categories", name="Shoes", slug="shoes", parent_id=None, order=0, featured=True)
    product = fake.add(
        "products", name="Trail Runner", description="Light trail shoe",
        category_id=category["id"], is_visible=True, base_price=80.0,
    )
    in_stock = fake.add(
        "product_variants", product_id=product["id"], sku="TR-42", price=80.0, stock=5,
        size="42", color="blue",
    )
    sold_out = fake.add(
        "product_variants", product_id=product["id"], sku="TR-43", price=85.0, stock=0,
        size="43", color="blue",
    )
    image = fake.add(
        "product_images", product_id=product["id"], variant_id=None, type="main", order=0,
        url="http://supabase.test/storage/v1/object/public/product-images/products/x/main.webp",
    )
    return {"category": category, "product": product, "variant": in_stock, "sold_out": sold_out, "image": image}
