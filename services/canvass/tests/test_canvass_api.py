"""
API tests for the Canvass Service.

The app runs in TestClient's own event loop, so the database is prepared
with asyncio.run and the engine is disposed before the client starts.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from services.canvass.tests.conftest import ADMIN_KEY, FRONTEND_KEY, seed_directory


@pytest.fixture
def api_directory(canvass_env):
    from services.canvass.database import (
        close_db,
        create_all_tables_for_testing,
        get_async_session_factory,
    )

    async def prepare():
        await close_db()
        await create_all_tables_for_testing()
        directory = await seed_directory(get_async_session_factory())
        await close_db()
        return directory

    return asyncio.run(prepare())


@pytest.fixture
def client(api_directory):
    from services.canvass.main import app

    with TestClient(app) as test_client:
        yield test_client


def auth_headers(directory, user="editor", key=FRONTEND_KEY):
    return {"X-API-Key": key, "X-User-Id": directory.users[user].id}


class TestServiceEndpoints:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["message"] == "Hello World"

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["configuration"]["issues"] == []


class TestAuthentication:
    def test_missing_api_key(self, client, api_directory):
        response = client.get(
            "/contacts/search",
            headers={"X-User-Id": api_directory.users["editor"].id},
        )
        assert response.status_code == 401
        assert response.json()["type"] == "auth_error"

    def test_invalid_api_key(self, client, api_directory):
        response = client.get(
            "/contacts/search", headers=auth_headers(api_directory, key="nope")
        )
        assert response.status_code == 401

    def test_bearer_token_accepted(self, client, api_directory):
        response = client.get(
            "/contacts/search",
            headers={
                "Authorization": f"Bearer {FRONTEND_KEY}",
                "X-User-Id": api_directory.users["viewer"].id,
            },
        )
        assert response.status_code == 200

    def test_missing_user_header(self, client):
        response = client.get("/contacts/search", headers={"X-API-Key": FRONTEND_KEY})
        assert response.status_code == 401
        assert "X-User-Id" in response.json()["message"]

    @pytest.mark.parametrize("user_id", ["no-such-user", None])
    def test_unknown_or_inactive_user(self, client, api_directory, user_id):
        user_id = user_id or api_directory.users["inactive"].id
        response = client.get(
            "/contacts/search",
            headers={"X-API-Key": FRONTEND_KEY, "X-User-Id": user_id},
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Unknown or inactive user"

    def test_admin_key_cannot_edit(self, client, api_directory):
        response = client.patch(
            f"/contacts/{api_directory.contact_id('jane')}",
            json={"notes": "hi"},
            headers=auth_headers(api_directory, "admin", key=ADMIN_KEY),
        )
        assert response.status_code == 403
        assert response.json()["details"]["code"] == "INSUFFICIENT_PERMISSIONS"


class TestSearchEndpoint:
    def test_search_by_last_name(self, client, api_directory):
        response = client.get(
            "/contacts/search",
            params={"lastName": "smith"},
            headers=auth_headers(api_directory, "viewer"),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["page"] == 1
        assert body["limit"] == 20
        assert [row["systemId"] for row in body["contacts"]] == [
            "V0002",
            "V0001",
            "V0005",
        ]
        first = body["contacts"][0]
        assert first["matchTier"] == 1
        assert first["baselinePhoneCount"] == 1
        assert first["manualPhoneCount"] == 0
        assert body["filterToken"]

    def test_filter_token_replays_the_search(self, client, api_directory):
        headers = auth_headers(api_directory)
        first = client.get(
            "/contacts/search", params={"firstName": "Bill"}, headers=headers
        ).json()
        replay = client.get(
            "/contacts/search",
            params={"filterToken": first["filterToken"], "firstName": "ignored"},
            headers=headers,
        ).json()
        assert [r["systemId"] for r in replay["contacts"]] == [
            r["systemId"] for r in first["contacts"]
        ]
        assert replay["filterToken"] == first["filterToken"]

    def test_tampered_filter_token(self, client, api_directory):
        response = client.get(
            "/contacts/search",
            params={"filterToken": "not-a-real-token"},
            headers=auth_headers(api_directory),
        )
        assert response.status_code == 422
        assert response.json()["details"]["field"] == "filterToken"

    def test_page_size_is_fixed(self, client, api_directory):
        headers = auth_headers(api_directory)
        assert (
            client.get("/contacts/search", params={"limit": 20}, headers=headers).status_code
            == 200
        )
        response = client.get("/contacts/search", params={"limit": 50}, headers=headers)
        assert response.status_code == 422
        assert response.json()["details"]["field"] == "limit"

    def test_page_must_be_positive(self, client, api_directory):
        response = client.get(
            "/contacts/search", params={"page": 0}, headers=auth_headers(api_directory)
        )
        assert response.status_code == 422
        assert response.json()["type"] == "validation_error"

    def test_legacy_supporter_status_rejected(self, client, api_directory):
        response = client.get(
            "/contacts/search",
            params={"supporterStatus": "supporter"},
            headers=auth_headers(api_directory),
        )
        assert response.status_code == 422
        assert response.json()["details"]["field"] == "supporter_status"

    def test_quick_filter(self, client, api_directory):
        response = client.get(
            "/contacts/search",
            params={"quickFilters": "supporters"},
            headers=auth_headers(api_directory),
        )
        assert response.status_code == 200
        assert {row["systemId"] for row in response.json()["contacts"]} == {
            "V0001",
            "V0003",
            "V0005",
        }


class TestContactEndpoints:
    def test_contact_detail(self, client, api_directory):
        response = client.get(
            f"/contacts/{api_directory.contact_id('john')}",
            headers=auth_headers(api_directory, "viewer"),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["fullName"] == "John Smith"
        assert body["systemId"] == "V0002"
        assert isinstance(body["age"], int)
        assert [p["phoneNumber"] for p in body["phones"]] == ["217-555-0101"]
        assert body["phones"][0]["isPrimary"] is True
        assert body["emails"][0]["isManuallyAdded"] is False
        assert body["auditLogs"] == []

    def test_contact_not_found(self, client, api_directory):
        response = client.get(
            "/contacts/missing", headers=auth_headers(api_directory, "viewer")
        )
        assert response.status_code == 404
        assert response.json()["type"] == "not_found"

    def test_patch_contact_and_read_history(self, client, api_directory):
        jane_id = api_directory.contact_id("jane")
        headers = auth_headers(api_directory)
        response = client.patch(
            f"/contacts/{jane_id}",
            json={"supporterStatus": "likely-supporter", "notes": "Has a dog"},
            headers=headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["supporterStatus"] == "likely-supporter"
        assert body["lastUpdatedBy"] == api_directory.users["editor"].id

        history = client.get(f"/contacts/{jane_id}/audit", headers=headers).json()
        assert {entry["field"] for entry in history} == {"supporter_status", "notes"}
        assert history[0]["user"]["firstName"] == "Eddie"

    def test_patch_locked_field(self, client, api_directory):
        response = client.patch(
            f"/contacts/{api_directory.contact_id('jane')}",
            json={"dateOfBirth": "1990-01-01"},
            headers=auth_headers(api_directory),
        )
        assert response.status_code == 403
        details = response.json()["details"]
        assert details["code"] == "FIELD_LOCKED"
        assert details["field"] == "date_of_birth"

    def test_viewer_cannot_patch(self, client, api_directory):
        response = client.patch(
            f"/contacts/{api_directory.contact_id('jane')}",
            json={"notes": "hi"},
            headers=auth_headers(api_directory, "viewer"),
        )
        assert response.status_code == 403
        assert response.json()["details"]["code"] == "ACCESS_DENIED"

    def test_empty_patch(self, client, api_directory):
        response = client.patch(
            f"/contacts/{api_directory.contact_id('jane')}",
            json={},
            headers=auth_headers(api_directory),
        )
        assert response.status_code == 422

    def test_history_of_missing_contact(self, client, api_directory):
        response = client.get("/contacts/missing/audit", headers=auth_headers(api_directory))
        assert response.status_code == 404


class TestChildRowEndpoints:
    def test_phone_lifecycle(self, client, api_directory):
        jane_id = api_directory.contact_id("jane")
        headers = auth_headers(api_directory)

        created = client.post(
            f"/contacts/{jane_id}/phones",
            json={"phoneNumber": "555-0100", "phoneType": "home"},
            headers=headers,
        )
        assert created.status_code == 201
        phone = created.json()
        assert phone["isManuallyAdded"] is True
        assert phone["phoneType"] == "home"

        updated = client.patch(
            f"/phones/{phone['id']}", json={"isPrimary": True}, headers=headers
        )
        assert updated.status_code == 200
        assert updated.json()["isPrimary"] is True

        deleted = client.delete(f"/phones/{phone['id']}", headers=headers)
        assert deleted.status_code == 204

        detail = client.get(f"/contacts/{jane_id}", headers=headers).json()
        assert detail["phones"] == []
        assert [(e["field"], e["action"]) for e in detail["auditLogs"]] == [
            ("phone", "delete"),
            ("is_primary", "update"),
            ("phone", "create"),
        ]

    def test_invalid_phone(self, client, api_directory):
        response = client.post(
            f"/contacts/{api_directory.contact_id('jane')}/phones",
            json={"phoneNumber": "call me"},
            headers=auth_headers(api_directory),
        )
        assert response.status_code == 422
        assert response.json()["details"]["field"] == "phoneNumber"

    def test_missing_phone(self, client, api_directory):
        response = client.delete("/phones/missing", headers=auth_headers(api_directory))
        assert response.status_code == 404

    def test_email_lifecycle(self, client, api_directory):
        jane_id = api_directory.contact_id("jane")
        headers = auth_headers(api_directory)
        created = client.post(
            f"/contacts/{jane_id}/emails",
            json={"email": "jane@example.org", "isPrimary": True},
            headers=headers,
        )
        assert created.status_code == 201
        email_id = created.json()["id"]

        updated = client.patch(
            f"/emails/{email_id}", json={"emailType": "work"}, headers=headers
        )
        assert updated.json()["emailType"] == "work"
        assert client.delete(f"/emails/{email_id}", headers=headers).status_code == 204

    def test_alias_lifecycle(self, client, api_directory):
        john_id = api_directory.contact_id("john")
        headers = auth_headers(api_directory)
        created = client.post(
            f"/contacts/{john_id}/aliases", json={"alias": "Jack"}, headers=headers
        )
        assert created.status_code == 201

        duplicate = client.post(
            f"/contacts/{john_id}/aliases", json={"alias": "jack"}, headers=headers
        )
        assert duplicate.status_code == 409
        assert duplicate.json()["details"]["code"] == "ALREADY_EXISTS"

        found = client.get(
            "/contacts/search", params={"firstName": "Jack"}, headers=headers
        ).json()
        assert [row["systemId"] for row in found["contacts"]] == ["V0002"]

        alias_id = created.json()["id"]
        assert client.delete(f"/aliases/{alias_id}", headers=headers).status_code == 204


class TestAuditEndpoints:
    def _edit(self, client, directory):
        jane_id = directory.contact_id("jane")
        client.patch(
            f"/contacts/{jane_id}",
            json={"supporterStatus": "opposition"},
            headers=auth_headers(directory),
        )
        history = client.get(
            f"/contacts/{jane_id}/audit", headers=auth_headers(directory)
        ).json()
        return history[0]["id"]

    def test_feed_is_admin_only(self, client, api_directory):
        self._edit(client, api_directory)
        denied = client.get("/audit", headers=auth_headers(api_directory, "editor"))
        assert denied.status_code == 403

        feed = client.get(
            "/audit", headers=auth_headers(api_directory, "admin", key=ADMIN_KEY)
        )
        assert feed.status_code == 200
        assert [entry["newValue"] for entry in feed.json()] == ["opposition"]

    def test_feed_filtered_by_user(self, client, api_directory):
        self._edit(client, api_directory)
        feed = client.get(
            "/audit",
            params={"userId": api_directory.users["admin"].id},
            headers=auth_headers(api_directory, "admin", key=ADMIN_KEY),
        )
        assert feed.json() == []

    def test_undo(self, client, api_directory):
        entry_id = self._edit(client, api_directory)
        admin_headers = auth_headers(api_directory, "admin", key=ADMIN_KEY)

        response = client.post(f"/audit/{entry_id}/undo", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["revertsEntryId"] == entry_id
        assert body["newValue"] == "confirmed-supporter"
        assert body["user"]["firstName"] == "Ada"

        contact = client.get(
            f"/contacts/{api_directory.contact_id('jane')}", headers=admin_headers
        ).json()
        assert contact["supporterStatus"] == "confirmed-supporter"

        again = client.post(f"/audit/{entry_id}/undo", headers=admin_headers)
        assert again.status_code == 409
        assert again.json()["type"] == "conflict"

    def test_undo_requires_admin_role(self, client, api_directory):
        entry_id = self._edit(client, api_directory)
        response = client.post(
            f"/audit/{entry_id}/undo", headers=auth_headers(api_directory, "editor")
        )
        assert response.status_code == 403

    def test_undo_missing_entry(self, client, api_directory):
        response = client.post(
            "/audit/9999/undo",
            headers=auth_headers(api_directory, "admin", key=ADMIN_KEY),
        )
        assert response.status_code == 404
