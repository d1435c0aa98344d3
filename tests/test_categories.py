"""
Tests for the category endpoints.

Covers:
- Tree reads (flat and nested) and slug generation
- Parent validation: self-parent and cyclic hierarchies are rejected
- Deletion is blocked while subcategories or products exist
- Image uploads: non-image files never reach the service, scratch files never outlive the request
"""

import io
import os
from unittest.mock import patch

from PIL import Image

from storefront.categories import CategoryService, build_tree, slugify


def png_bytes(size=(40, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, (30, 120, 200)).save(buf, format="PNG")
    return buf.getvalue()


# ============================================================================
# Helpers
# ============================================================================

class TestSlugAndTree:
    def test_slugify_collapses_punctuation(self):
        assert slugify("Men's Shoes & Boots") == "men-s-shoes-boots"

    def test_slugify_trims_edges(self):
        assert slugify("  --Summer Sale--  ") == "summer-sale"

    def test_build_tree_nests_children_in_input_order(self):
        rows = [
            {"id": "a", "parent_id": None},
            {"id": "b", "parent_id": "a"},
            {"id": "c", "parent_id": "a"},
            {"id": "d", "parent_id": "b"},
        ]
        tree = build_tree(rows)
        assert [n["id"] for n in tree] == ["a"]
        assert [n["id"] for n in tree[0]["subcategories"]] == ["b", "c"]
        assert tree[0]["subcategories"][0]["subcategories"][0]["id"] == "d"


# ============================================================================
# Public reads
# ============================================================================

class TestCategoryReads:
    def test_list_flat_and_nested(self, client, fake):
        root = fake.add("categories", name="Clothing", slug="clothing", parent_id=None, order=0)
        fake.add("categories", name="Shirts", slug="shirts", parent_id=root["id"], order=0)

        flat = client.get("/categories").json()
        assert len(flat) == 2

        nested = client.get("/categories", params={"nested": "true"}).json()
        assert len(nested) == 1
        assert nested[0]["subcategories"][0]["slug"] == "shirts"

    def test_unknown_category_is_404(self, client):
        resp = client.get("/categories/missing-id")
        assert resp.status_code == 404
        body = resp.json()
        assert body["statusCode"] == 404
        assert body["path"] == "/categories/missing-id"

    def test_featured_only(self, client, fake):
        fake.add("categories", name="A", slug="a", parent_id=None, order=0, featured=True)
        fake.add("categories", name="B", slug="b", parent_id=None, order=1, featured=False)
        names = [c["name"] for c in client.get("/categories/featured").json()]
        assert names == ["A"]

    def test_popular_includes_main_product_image(self, client, catalog):
        popular = client.get("/categories/popular").json()
        assert popular[0]["id"] == catalog["category"]["id"]
        assert popular[0]["product_image"] == catalog["image"]["url"]

    def test_category_products_are_paginated(self, client, catalog):
        body = client.get(f"/categories/{catalog['category']['id']}/products", params={"limit": 1}).json()
        assert body["meta"] == {"page": 1, "limit": 1, "totalItems": 1, "totalPages": 1}
        assert body["items"][0]["id"] == catalog["product"]["id"]


# ============================================================================
# Admin writes
# ============================================================================

class TestCategoryWrites:
    def test_create_requires_admin(self, client, customer):
        resp = client.post("/categories/admin", json={"name": "Hats"}, headers=customer["headers"])
        assert resp.status_code == 403

    def test_create_generates_slug_and_next_order(self, client, admin):
        first = client.post("/categories/admin", json={"name": "Hats"}, headers=admin["headers"])
        second = client.post("/categories/admin", json={"name": "Winter Gloves"}, headers=admin["headers"])
        assert first.status_code == 201
        assert first.json()["slug"] == "hats"
        assert second.json()["slug"] == "winter-gloves"
        assert second.json()["order"] == first.json()["order"] + 1

    def test_duplicate_slug_is_conflict(self, client, admin):
        client.post("/categories/admin", json={"name": "Hats"}, headers=admin["headers"])
        resp = client.post("/categories/admin", json={"name": "Hats"}, headers=admin["headers"])
        assert resp.status_code == 409

    def test_unknown_parent_is_404(self, client, admin):
        resp = client.post(
            "/categories/admin", json={"name": "Orphan", "parent_id": "nope"}, headers=admin["headers"]
        )
        assert resp.status_code == 404

    def test_self_parent_rejected(self, client, fake, admin):
        cat = fake.add("categories", name="Loop", slug="loop", parent_id=None, order=0)
        resp = client.put(
            f"/categories/admin/{cat['id']}", json={"parent_id": cat["id"]}, headers=admin["headers"]
        )
        assert resp.status_code == 400
        assert fake.find("categories", id=cat["id"])[0]["parent_id"] is None

    def test_cycle_through_descendant_rejected(self, client, fake, admin):
        a = fake.add("categories", name="A", slug="a", parent_id=None, order=0)
        b = fake.add("categories", name="B", slug="b", parent_id=a["id"], order=0)
        c = fake.add("categories", name="C", slug="c", parent_id=b["id"], order=0)

        resp = client.put(f"/categories/admin/{a['id']}", json={"parent_id": c["id"]}, headers=admin["headers"])
        assert resp.status_code == 400
        assert "cyclic" in resp.json()["message"]
        assert fake.find("categories", id=a["id"])[0]["parent_id"] is None

    def test_valid_reparent(self, client, fake, admin):
        a = fake.add("categories", name="A", slug="a", parent_id=None, order=0)
        b = fake.add("categories", name="B", slug="b", parent_id=None, order=1)
        resp = client.put(f"/categories/admin/{b['id']}", json={"parent_id": a["id"]}, headers=admin["headers"])
        assert resp.status_code == 200
        assert resp.json()["parent_id"] == a["id"]

    def test_hierarchy_create(self, client, admin):
        body = {"name": "Home", "subcategories": [{"name": "Kitchen", "subcategories": [{"name": "Knives"}]}]}
        resp = client.post("/categories/admin/hierarchy", json=body, headers=admin["headers"])
        assert resp.status_code == 201
        created = resp.json()
        kitchen = created["subcategories"][0]
        assert kitchen["parent_id"] == created["id"]
        assert kitchen["subcategories"][0]["slug"] == "knives"

    def test_hierarchy_deeper_than_four_levels_rejected(self, client, admin):
        node = {"name": "L5"}
        for level in ("L4", "L3", "L2", "L1"):
            node = {"name": level, "subcategories": [node]}
        resp = client.post("/categories/admin/hierarchy", json=node, headers=admin["headers"])
        assert resp.status_code == 400

    def test_toggle_featured_and_order(self, client, fake, admin):
        cat = fake.add("categories", name="A", slug="a", parent_id=None, order=0, featured=False)
        assert client.put(
            f"/categories/admin/{cat['id']}/featured", json={"featured": True}, headers=admin["headers"]
        ).json()["featured"] is True
        assert client.put(
            f"/categories/admin/{cat['id']}/order", json={"order": 7}, headers=admin["headers"]
        ).json()["order"] == 7


# ============================================================================
# Deletion
# ============================================================================

class TestCategoryDelete:
    def test_blocked_by_subcategories(self, client, fake, admin):
        parent = fake.add("categories", name="P", slug="p", parent_id=None, order=0)
        fake.add("categories", name="C", slug="c", parent_id=parent["id"], order=0)
        resp = client.delete(f"/categories/admin/{parent['id']}", headers=admin["headers"])
        assert resp.status_code == 400
        assert "subcategories" in resp.json()["message"]
        assert fake.find("categories", id=parent["id"])

    def test_blocked_by_products(self, client, fake, admin, catalog):
        resp = client.delete(f"/categories/admin/{catalog['category']['id']}", headers=admin["headers"])
        assert resp.status_code == 400
        assert "products" in resp.json()["message"]
        assert fake.find("categories", id=catalog["category"]["id"])

    def test_empty_category_deleted(self, client, fake, admin):
        cat = fake.add("categories", name="Empty", slug="empty", parent_id=None, order=0)
        resp = client.delete(f"/categories/admin/{cat['id']}", headers=admin["headers"])
        assert resp.status_code == 200
        assert not fake.find("categories", id=cat["id"])


# ============================================================================
# Images
# ============================================================================

class TestCategoryImages:
    def test_non_image_upload_never_reaches_service(self, client, fake, admin):
        cat = fake.add("categories", name="A", slug="a", parent_id=None, order=0)
        with patch.object(CategoryService, "upload_image") as upload_image:
            resp = client.post(
                f"/categories/admin/{cat['id']}/image",
                files={"imageFile": ("notes.txt", b"plain text", "text/plain")},
                headers=admin["headers"],
            )
        assert resp.status_code == 400
        assert "Only image files are allowed" in resp.json()["message"]
        upload_image.assert_not_called()

    def test_url_sets_image(self, client, fake, admin):
        cat = fake.add("categories", name="A", slug="a", parent_id=None, order=0)
        resp = client.post(
            f"/categories/admin/{cat['id']}/image",
            data={"url": "https://cdn.example.com/a.png"},
            headers=admin["headers"],
        )
        assert resp.status_code == 200
        assert resp.json()["image_url"] == "https://cdn.example.com/a.png"

    def test_neither_file_nor_url_is_400(self, client, fake, admin):
        cat = fake.add("categories", name="A", slug="a", parent_id=None, order=0)
        resp = client.post(f"/categories/admin/{cat['id']}/image", headers=admin["headers"])
        assert resp.status_code == 400

    def test_unknown_category_leaves_no_scratch_file(self, client, admin, tmp_path):
        resp = client.post(
            "/categories/admin/00000000-0000-0000-0000-000000000000/image",
            files={"imageFile": ("a.png", png_bytes(), "image/png")},
            headers=admin["headers"],
        )
        assert resp.status_code == 404
        assert os.listdir(tmp_path / "uploads") == []

    def test_uploaded_file_is_stored_and_scratch_removed(self, client, fake, admin, tmp_path):
        cat = fake.add("categories", name="A", slug="a", parent_id=None, order=0)
        resp = client.post(
            f"/categories/admin/{cat['id']}/image",
            files={"imageFile": ("a.png", png_bytes(), "image/png")},
            headers=admin["headers"],
        )
        assert resp.status_code == 200
        assert len(fake.objects["category-images"]) == 1
        assert os.listdir(tmp_path / "uploads") == []

    def test_cleanup_removes_unreferenced_objects(self, fake, supabase):
        fake.buckets["category-images"] = {"id": "category-images", "name": "category-images", "public": True}
        fake.objects["category-images"] = {"categories/keep.webp": b"1", "categories/stale.webp": b"2"}
        fake.add(
            "categories", name="A", slug="a", parent_id=None, order=0,
            image_url=supabase.public_url("category-images", "categories/keep.webp"),
        )

        result = CategoryService(supabase).cleanup_orphaned_images()

        assert result == {"scanned": 2, "orphaned": 1, "deleted": 1}
        assert list(fake.objects["category-images"]) == ["categories/keep.webp"]
