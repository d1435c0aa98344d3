"""Tests for product tag endpoints."""

from storefront.product_tags import normalize_tag


class TestProductTags:
    def test_normalize(self):
        assert normalize_tag("  Summer Sale ") == "summer sale"

    def test_create_lowercases_and_rejects_duplicates(self, client, admin):
        resp = client.post("/product-tags", json={"name": "Eco Friendly"}, headers=admin["headers"])
        assert resp.status_code == 201
        assert resp.json()["name"] == "eco friendly"

        dup = client.post("/product-tags", json={"name": "ECO FRIENDLY"}, headers=admin["headers"])
        assert dup.status_code == 409

    def test_invalid_characters_rejected(self, client, admin):
        resp = client.post("/product-tags", json={"name": "sale!!"}, headers=admin["headers"])
        assert resp.status_code == 400

    def test_create_requires_admin(self, client, customer):
        assert client.post("/product-tags", json={"name": "new"}, headers=customer["headers"]).status_code == 403

    def test_list_search_and_paginate(self, client, fake):
        for name in ("cotton", "linen", "organic cotton"):
            fake.add("product_tags", name=name)
        body = client.get("/product-tags", params={"search": "COTTON", "limit": 1}).json()
        assert body["meta"]["totalItems"] == 2
        assert [t["name"] for t in body["items"]] == ["cotton"]

    def test_search_autocomplete(self, client, fake):
        fake.add("product_tags", name="waterproof")
        fake.add("product_tags", name="water resistant")
        fake.add("product_tags", name="wool")
        names = [t["name"] for t in client.get("/product-tags/search", params={"q": "wat"}).json()]
        assert names == ["water resistant", "waterproof"]
        assert client.get("/product-tags/search").json() == []

    def test_suggestions_newest_first(self, client, fake):
        fake.add("product_tags", name="old")
        fake.add("product_tags", name="new")
        assert [t["name"] for t in client.get("/product-tags/suggestions").json()] == ["new", "old"]

    def test_bulk_create_reuses_existing(self, client, fake, admin):
        fake.add("product_tags", name="cotton")
        resp = client.post(
            "/product-tags/bulk", json={"tagNames": ["Cotton", "linen", " linen "]}, headers=admin["headers"]
        )
        assert resp.status_code == 201
        assert sorted(t["name"] for t in resp.json()) == ["cotton", "linen"]
        assert len(fake.table("product_tags")) == 2

    def test_update_and_delete(self, client, fake, admin):
        tag = fake.add("product_tags", name="cotton")
        fake.add("product_tags", name="linen")

        clash = client.patch(f"/product-tags/{tag['id']}", json={"name": "Linen"}, headers=admin["headers"])
        assert clash.status_code == 409

        renamed = client.patch(f"/product-tags/{tag['id']}", json={"name": "Organic"}, headers=admin["headers"])
        assert renamed.json()["name"] == "organic"

        assert client.delete(f"/product-tags/{tag['id']}", headers=admin["headers"]).status_code == 200
        assert client.get(f"/product-tags/{tag['id']}").status_code == 404
