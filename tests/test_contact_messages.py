"""Tests for the contact form and its admin endpoints."""


class TestContactMessages:
    def test_public_create(self, client, fake):
        resp = client.post("/contact-messages", json={
            "first_name": "Dana", "last_name": "Reed", "email": "dana@example.com", "message_text": "Hello",
        })
        assert resp.status_code == 201
        assert fake.find("contact_messages", email="dana@example.com")[0]["message_text"] == "Hello"

    def test_invalid_email(self, client):
        resp = client.post("/contact-messages", json={
            "first_name": "Dana", "last_name": "Reed", "email": "not-an-email", "message_text": "Hello",
        })
        assert resp.status_code == 400
        assert resp.json()["error"] == "Bad Request"

    def test_admin_list_filters(self, client, fake, admin):
        fake.add("contact_messages", first_name="Dana", last_name="Reed", email="dana@example.com",
                 message_text="a", status="new")
        fake.add("contact_messages", first_name="Eli", last_name="Stone", email="eli@example.com",
                 message_text="b", status="read")

        everything = client.get("/admin/contact-messages", headers=admin["headers"]).json()
        assert everything["total"] == 2
        assert everything["items"][0]["first_name"] == "Eli"

        unread = client.get("/admin/contact-messages", params={"status": "new"}, headers=admin["headers"]).json()
        assert [m["first_name"] for m in unread["items"]] == ["Dana"]

        found = client.get("/admin/contact-messages", params={"search": "stone"}, headers=admin["headers"]).json()
        assert found["total"] == 1

    def test_admin_only(self, client, customer):
        assert client.get("/admin/contact-messages", headers=customer["headers"]).status_code == 403

    def test_update(self, client, fake, admin):
        message = fake.add("contact_messages", first_name="D", last_name="R", email="d@example.com",
                           message_text="x", status="new")
        resp = client.put(
            f"/admin/contact-messages/{message['id']}",
            json={"status": "replied", "admin_notes": "Sent tracking link"},
            headers=admin["headers"],
        )
        assert resp.json()["status"] == "replied"
        assert resp.json()["admin_notes"] == "Sent tracking link"

    def test_update_rejects_unknown_status(self, client, fake, admin):
        message = fake.add("contact_messages", first_name="D", last_name="R", email="d@example.com", message_text="x")
        resp = client.put(
            f"/admin/contact-messages/{message['id']}", json={"status": "spam"}, headers=admin["headers"]
        )
        assert resp.status_code == 400

    def test_missing_message(self, client, admin):
        for resp in (
            client.put("/admin/contact-messages/ghost", json={"status": "read"}, headers=admin["headers"]),
            client.delete("/admin/contact-messages/ghost", headers=admin["headers"]),
        ):
            assert resp.status_code == 404
            assert resp.json()["message"] == "Contact message not found"

    def test_delete(self, client, fake, admin):
        message = fake.add("contact_messages", first_name="D", last_name="R", email="d@example.com", message_text="x")
        resp = client.delete(f"/admin/contact-messages/{message['id']}", headers=admin["headers"])
        assert resp.json() == {"id": message["id"]}
        assert fake.table("contact_messages") == []
