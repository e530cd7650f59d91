"""
Bird Feed Backend — API Endpoint Tests
=======================================

What:  Request/response behavior of the HTTP surface: auth, status codes,
       error bodies and the flows that span several endpoints.
How:   HTTPX AsyncClient over ASGITransport; every request runs in its own
       committed transaction against the shared in-memory database.
"""

import pytest

from birdfeed.exceptions import CircuitBreakerOpenError, HaikuboxServiceError
from birdfeed.services.haikubox_client import CircuitBreaker, haikubox_client
from birdfeed.services.haikubox_service import haikubox_service
from birdfeed.services.wikipedia_service import wikipedia_service

BOB = {"X-User-Id": "user_bob", "X-User-First-Name": "Bob"}


async def _create_species(client, headers, name="Blue Jay", **fields):
    response = await client.post("/api/species", json={"common_name": name, **fields}, headers=headers)
    assert response.status_code == 201
    return response.json()


async def _upload(client, headers, content, **form):
    return await client.post(
        "/api/upload/browser",
        files={"photo": ("bird.jpg", content, "image/jpeg")},
        data={k: str(v) for k, v in form.items()},
        headers=headers,
    )


# ══════════════════════════════════════════════════════════════════════════
# Health & Auth
# ══════════════════════════════════════════════════════════════════════════

class TestHealth:

    async def test_healthy(self, test_client):
        response = await test_client.get("/health")
        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["haikubox"] == "available"
        assert "X-Request-ID" in response.headers

    async def test_open_circuit_is_degraded(self, test_client):
        haikubox_client.circuit_breaker.state = CircuitBreaker.OPEN
        body = (await test_client.get("/health")).json()
        assert body["status"] == "degraded"
        assert body["haikubox"] == "circuit_open"


class TestAuth:

    async def test_missing_identity_is_401(self, test_client):
        response = await test_client.get("/api/species")
        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "unauthorized"
        assert body["request_id"]

    async def test_client_request_id_is_echoed(self, test_client, auth_headers):
        response = await test_client.get("/api/species", headers={**auth_headers, "X-Request-ID": "trace-42"})
        assert response.headers["X-Request-ID"] == "trace-42"


# ══════════════════════════════════════════════════════════════════════════
# Species & Photos
# ══════════════════════════════════════════════════════════════════════════

class TestSpeciesEndpoints:

    async def test_crud(self, test_client, auth_headers):
        created = await _create_species(test_client, auth_headers, rarity="rare")

        listing = await test_client.get("/api/species?sort=alpha", headers=auth_headers)
        assert [s["common_name"] for s in listing.json()["species"]] == ["Blue Jay"]

        patched = await test_client.patch(
            f"/api/species/{created['id']}", json={"rarity": "uncommon"}, headers=auth_headers
        )
        assert patched.json()["rarity"] == "uncommon"

        deleted = await test_client.delete(f"/api/species/{created['id']}", headers=auth_headers)
        assert deleted.json() == {"success": True, "deleted_photos": 0}

        missing = await test_client.get(f"/api/species/{created['id']}", headers=auth_headers)
        assert missing.status_code == 404

    async def test_schema_errors_are_422(self, test_client, auth_headers):
        response = await test_client.post(
            "/api/species", json={"common_name": "Jay", "rarity": "legendary"}, headers=auth_headers
        )
        assert response.status_code == 422

    async def test_empty_patch_is_400(self, test_client, auth_headers):
        created = await _create_species(test_client, auth_headers)
        response = await test_client.patch(f"/api/species/{created['id']}", json={}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "No valid fields to update"

    async def test_other_users_species_hidden(self, test_client, auth_headers):
        created = await _create_species(test_client, auth_headers)
        response = await test_client.get(f"/api/species/{created['id']}", headers=BOB)
        assert response.status_code == 404


class TestPhotoFlow:

    async def test_upload_assign_serve_delete(self, test_client, auth_headers, sample_jpeg_bytes, temp_storage):
        species = await _create_species(test_client, auth_headers)

        uploaded = await _upload(test_client, auth_headers, sample_jpeg_bytes)
        assert uploaded.status_code == 201
        assert uploaded.json()["needs_species"] is True
        photo_id = uploaded.json()["photo_id"]

        inbox = (await test_client.get("/api/photos/unassigned", headers=auth_headers)).json()
        assert inbox["count"] == 1
        filename = inbox["photos"][0]["filename"]

        served = await test_client.get(f"/api/files/{filename}")
        assert served.status_code == 200
        assert served.content == sample_jpeg_bytes
        assert served.headers["content-type"] == "image/jpeg"

        assigned = await test_client.patch(
            f"/api/photos/{photo_id}", json={"species_id": species["id"]}, headers=auth_headers
        )
        assert assigned.json()["photo"]["species"]["common_name"] == "Blue Jay"

        detail = (await test_client.get(f"/api/species/{species['id']}", headers=auth_headers)).json()
        assert detail["photo_count"] == 1
        assert detail["latest_photo"]["id"] == photo_id

        deleted = await test_client.delete(f"/api/photos/{photo_id}", headers=auth_headers)
        assert deleted.json() == {"success": True, "deleted_id": photo_id}
        assert not (temp_storage / filename).exists()

    async def test_full_gallery_needs_swap(self, test_client, auth_headers, sample_jpeg_bytes, monkeypatch):
        from birdfeed.config import settings

        monkeypatch.setattr(settings, "species_photo_limit", 1)
        species = await _create_species(test_client, auth_headers)
        first = await _upload(test_client, auth_headers, sample_jpeg_bytes, species_id=species["id"])

        blocked = await _upload(test_client, auth_headers, sample_jpeg_bytes, species_id=species["id"])
        assert blocked.status_code == 409
        assert blocked.json()["error"] == "photo_limit_reached"
        assert blocked.json()["details"] == {"limit": 1, "current_count": 1, "species_id": species["id"]}

        swapped = await _upload(
            test_client,
            auth_headers,
            sample_jpeg_bytes,
            species_id=species["id"],
            replace_photo_id=first.json()["photo_id"],
        )
        assert swapped.status_code == 201
        assert swapped.json()["replaced_photo_id"] == first.json()["photo_id"]

    async def test_failed_upload_leaves_no_file(self, test_client, auth_headers, sample_jpeg_bytes, temp_storage):
        response = await _upload(test_client, auth_headers, sample_jpeg_bytes, species_id=999)
        assert response.status_code == 404
        assert list(temp_storage.rglob("*.jpg")) == []

    async def test_non_integer_form_field(self, test_client, auth_headers, sample_jpeg_bytes):
        response = await _upload(test_client, auth_headers, sample_jpeg_bytes, species_id="abc")
        assert response.status_code == 400
        assert response.json()["message"] == "species_id must be an integer"

    async def test_photo_list_query_validation(self, test_client, auth_headers):
        response = await test_client.get("/api/photos?limit=0", headers=auth_headers)
        assert response.status_code == 422

    async def test_device_upload_requires_api_key(self, test_client, sample_jpeg_bytes):
        files = {"photo": ("bird.jpg", sample_jpeg_bytes, "image/jpeg")}

        rejected = await test_client.post("/api/upload", files=files, headers={"X-API-Key": "wrong"})
        assert rejected.status_code == 401
        assert rejected.json()["message"] == "Invalid or missing API key"

        accepted = await test_client.post("/api/upload", files=files, headers={"X-API-Key": "test-upload-key"})
        assert accepted.status_code == 201

        owner_inbox = await test_client.get("/api/photos/unassigned", headers={"X-User-Id": "device_owner"})
        assert owner_inbox.json()["count"] == 1

    async def test_missing_file_is_404(self, test_client):
        response = await test_client.get("/api/files/2025/01/01/nothing.jpg")
        assert response.status_code == 404


# ══════════════════════════════════════════════════════════════════════════
# Settings, Public Galleries & Bookmarks
# ══════════════════════════════════════════════════════════════════════════

async def _publish(client, headers, username="alicebirds", **extra):
    response = await client.patch(
        "/api/settings/profile",
        json={"username": username, "is_public_gallery_enabled": True, **extra},
        headers=headers,
    )
    assert response.status_code == 200
    return response.json()


class TestSettings:

    async def test_serial_round_trip(self, test_client, auth_headers):
        saved = await test_client.post("/api/settings", json={"haikubox_serial": "ABC123"}, headers=auth_headers)
        assert saved.json() == {"success": True, "message": "Settings saved"}

        fetched = await test_client.get("/api/settings", headers=auth_headers)
        assert fetched.json() == {"haikubox_serial": "ABC123"}

    async def test_invalid_serial(self, test_client, auth_headers):
        response = await test_client.post("/api/settings", json={"haikubox_serial": "ab-12"}, headers=auth_headers)
        assert response.status_code == 400

    async def test_profile_and_username_check(self, test_client, auth_headers):
        profile = await _publish(test_client, auth_headers, state="wa")
        assert profile["display_name"] == "Alice"
        assert profile["state"] == "WA"

        check = await test_client.get("/api/settings/profile/check-username?username=alicebirds", headers=BOB)
        assert check.json() == {"available": False, "error": "This username is already taken"}

        conflict = await test_client.patch("/api/settings/profile", json={"username": "AliceBirds"}, headers=BOB)
        assert conflict.status_code == 409


class TestPublicGallery:

    async def test_private_gallery_not_found(self, test_client, auth_headers):
        await test_client.patch("/api/settings/profile", json={"username": "alicebirds"}, headers=auth_headers)
        response = await test_client.get("/api/public/gallery/alicebirds")
        assert response.status_code == 404
        assert response.json()["message"] == "Gallery not found"

    async def test_public_views(self, test_client, auth_headers, sample_jpeg_bytes):
        species = await _create_species(test_client, auth_headers)
        await _upload(test_client, auth_headers, sample_jpeg_bytes, species_id=species["id"])
        await _publish(test_client, auth_headers)

        profile = (await test_client.get("/api/public/gallery/AliceBirds")).json()
        assert profile == {"username": "alicebirds", "display_name": "Alice", "photo_count": 1, "species_count": 1}

        listing = (await test_client.get("/api/public/gallery/alicebirds/species")).json()
        assert listing["species"][0]["photo_count"] == 1

        detail = (await test_client.get(f"/api/public/gallery/alicebirds/species/{species['id']}")).json()
        assert len(detail["photos"]) == 1

        photos = (await test_client.get("/api/public/gallery/alicebirds/photos?limit=10")).json()
        assert photos["pagination"] == {"page": 1, "limit": 10, "total": 1, "total_pages": 1}

    async def test_discover(self, test_client, auth_headers):
        await _publish(test_client, auth_headers, is_directory_listed=True, state="TX")
        await _publish(test_client, BOB, username="bobsbirds")

        listed = (await test_client.get("/api/public/discover")).json()
        assert [g["username"] for g in listed["galleries"]] == ["alicebirds"]

        texas = (await test_client.get("/api/public/discover?state=tx&limit=500")).json()
        assert texas["pagination"]["limit"] == 50
        assert texas["pagination"]["total"] == 1

        invalid = await test_client.get("/api/public/discover?state=XX")
        assert invalid.status_code == 400


class TestBookmarks:

    async def test_bookmark_lifecycle(self, test_client, auth_headers):
        await _publish(test_client, auth_headers)

        added = await test_client.post("/api/bookmarks", json={"username": "alicebirds"}, headers=BOB)
        assert added.status_code == 201

        duplicate = await test_client.post("/api/bookmarks", json={"username": "alicebirds"}, headers=BOB)
        assert duplicate.status_code == 409

        listing = (await test_client.get("/api/bookmarks", headers=BOB)).json()
        assert [b["username"] for b in listing["bookmarks"]] == ["alicebirds"]

        check = await test_client.get("/api/bookmarks/check/alicebirds", headers=BOB)
        assert check.json() == {"bookmarked": True}

        removed = await test_client.delete("/api/bookmarks/alicebirds", headers=BOB)
        assert removed.status_code == 200
        again = await test_client.delete("/api/bookmarks/alicebirds", headers=BOB)
        assert again.status_code == 404

    async def test_cannot_bookmark_own_gallery(self, test_client, auth_headers):
        await _publish(test_client, auth_headers)
        response = await test_client.post("/api/bookmarks", json={"username": "alicebirds"}, headers=auth_headers)
        assert response.status_code == 400


# ══════════════════════════════════════════════════════════════════════════
# Haikubox, Activity, Suggestions, Lookup
# ══════════════════════════════════════════════════════════════════════════

class _FailingClient:

    async def fetch_yearly(self, serial, year):
        raise HaikuboxServiceError(message="Haikubox API error: 500")

    async def fetch_recent(self, serial, hours=8):
        return []


class _WorkingClient:

    async def fetch_yearly(self, serial, year):
        return [{"bird": "Blue Jay", "count": 25}]

    async def fetch_recent(self, serial, hours=8):
        return []

    async def fetch_device(self, serial):
        if serial == "UNKNOWN1":
            raise HaikuboxServiceError(message="Haikubox API error: 404", context={"status": 404})
        return {"name": "Backyard Box"}


class _OpenCircuitClient:

    async def fetch_yearly(self, serial, year):
        raise CircuitBreakerOpenError(recovery_time=30)

    async def fetch_recent(self, serial, hours=8):
        return []


class TestHaikubox:

    async def test_sync_without_serial(self, test_client, auth_headers):
        response = await test_client.post("/api/haikubox/sync", headers=auth_headers)
        assert response.status_code == 400

    async def test_sync_failure_is_502_and_logged(self, test_client, auth_headers, monkeypatch):
        monkeypatch.setattr(haikubox_service, "client", _FailingClient())
        await test_client.post("/api/settings", json={"haikubox_serial": "ABC123"}, headers=auth_headers)

        response = await test_client.post("/api/haikubox/sync", headers=auth_headers)
        assert response.status_code == 502
        assert response.json()["error"] == "haikubox_unavailable"

        status = (await test_client.get("/api/haikubox/sync", headers=auth_headers)).json()
        assert status["last_sync"]["status"] == "error"
        assert status["last_sync"]["error_message"] == "Haikubox API error: 500"

    async def test_sync_with_open_circuit_is_503(self, test_client, auth_headers, monkeypatch):
        monkeypatch.setattr(haikubox_service, "client", _OpenCircuitClient())
        await test_client.post("/api/settings", json={"haikubox_serial": "ABC123"}, headers=auth_headers)

        response = await test_client.post("/api/haikubox/sync", headers=auth_headers)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert response.json()["error"] == "service_unavailable"
        assert response.json()["details"]["retry_after"] == 30

    async def test_connection_test(self, test_client, auth_headers, monkeypatch):
        monkeypatch.setattr(haikubox_service, "client", _WorkingClient())

        ok = await test_client.post("/api/haikubox/test", json={"serial": "ABC123"}, headers=auth_headers)
        assert ok.status_code == 200
        assert ok.json() == {"success": True, "device_name": "Backyard Box", "serial": "ABC123"}

        unknown = await test_client.post("/api/haikubox/test", json={"serial": "UNKNOWN1"}, headers=auth_headers)
        assert unknown.status_code == 400
        assert unknown.json()["message"] == "Device not found. Check your serial number."

        missing = await test_client.post("/api/haikubox/test", json={}, headers=auth_headers)
        assert missing.status_code == 400
        assert missing.json()["message"] == "Serial number required"

    async def test_user_sync_then_browse(self, test_client, auth_headers, monkeypatch):
        monkeypatch.setattr(haikubox_service, "client", _WorkingClient())
        await test_client.post("/api/settings", json={"haikubox_serial": "ABC123"}, headers=auth_headers)
        species = await _create_species(test_client, auth_headers, name="blue jay")

        synced = await test_client.post("/api/haikubox/sync", headers=auth_headers)
        assert synced.status_code == 200
        assert synced.json()["processed"] == 1

        detections = (await test_client.get("/api/haikubox/detections", headers=auth_headers)).json()
        assert detections["detections"][0]["matched_species_id"] == species["id"]

        suggestions = (await test_client.get("/api/suggestions", headers=auth_headers)).json()
        assert suggestions["top_suggestion"]["common_name"] == "blue jay"

        stats = (await test_client.get("/api/haikubox/stats", headers=auth_headers)).json()
        assert stats["total_heard"] == 1

        unlinked = await test_client.post(
            "/api/haikubox/detections/link",
            json={"detection_common_name": "Blue Jay", "species_id": None},
            headers=auth_headers,
        )
        assert unlinked.json()["updated_detections"] == 1

    async def test_cron_sync(self, test_client, auth_headers, monkeypatch):
        monkeypatch.setattr(haikubox_service, "client", _WorkingClient())
        await test_client.post("/api/settings", json={"haikubox_serial": "ABC123"}, headers=auth_headers)

        denied = await test_client.post("/api/haikubox/sync", headers={"Authorization": "Bearer nope"})
        assert denied.status_code == 401

        response = await test_client.post(
            "/api/haikubox/sync", headers={"Authorization": "Bearer test-cron-secret"}
        )
        body = response.json()
        assert response.status_code == 200
        assert body["synced"] == 1
        assert body["success_count"] == 1
        assert body["results"][0]["user_id"] == "user_alice"


class TestMisc:

    async def test_suggestion_limit_is_400(self, test_client, auth_headers):
        response = await test_client.get("/api/suggestions?limit=0", headers=auth_headers)
        assert response.status_code == 400

    async def test_activity_species_not_found(self, test_client, auth_headers):
        response = await test_client.get("/api/activity/species/Snowy%20Owl", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "No activity data found for this species"

    async def test_heatmap_empty(self, test_client, auth_headers):
        response = await test_client.get("/api/activity/heatmap", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["heatmap"] == []

    @pytest.mark.parametrize("name", ["", "a"])
    async def test_lookup_requires_name(self, test_client, auth_headers, name):
        response = await test_client.get(f"/api/birds/lookup?name={name}", headers=auth_headers)
        assert response.status_code == 400

    async def test_lookup_not_found(self, test_client, auth_headers, monkeypatch):
        async def no_article(name):
            return None

        monkeypatch.setattr(wikipedia_service, "lookup", no_article)
        response = await test_client.get("/api/birds/lookup?name=Snipe", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Bird not found"

    async def test_lookup_found(self, test_client, auth_headers, monkeypatch):
        async def article(name):
            return {"common_name": name, "scientific_name": "Cyanocitta cristata", "description": "A jay.", "source": "wikipedia"}

        monkeypatch.setattr(wikipedia_service, "lookup", article)
        response = await test_client.get("/api/birds/lookup?name=Blue%20Jay", headers=auth_headers)
        assert response.json()["scientific_name"] == "Cyanocitta cristata"


# ══════════════════════════════════════════════════════════════════════════
# Species Refresh & User Agreement
# ══════════════════════════════════════════════════════════════════════════

class TestSpeciesRefresh:

    async def test_refresh_fills_missing_details(self, test_client, auth_headers, monkeypatch):
        async def article(name):
            if name == "Blue Jay":
                return {"common_name": name, "scientific_name": "Cyanocitta cristata", "description": "A jay."}
            return None

        monkeypatch.setattr(wikipedia_service, "lookup", article)
        jay = await _create_species(test_client, auth_headers)
        await _create_species(test_client, auth_headers, name="Mystery Bird")

        response = await test_client.post("/api/species/refresh", headers=auth_headers)
        body = response.json()
        assert response.status_code == 200
        assert (body["total"], body["updated"], body["not_found"], body["errors"]) == (2, 1, 1, 0)

        stored = (await test_client.get(f"/api/species/{jay['id']}", headers=auth_headers)).json()
        assert stored["scientific_name"] == "Cyanocitta cristata"


class TestAgreement:

    async def test_accept_current_version(self, test_client, auth_headers):
        before = (await test_client.get("/api/agreement", headers=auth_headers)).json()
        assert before == {"accepted": False, "current_version": "1.0", "accepted_at": None}

        accepted = await test_client.post("/api/agreement", headers=auth_headers)
        body = accepted.json()
        assert accepted.status_code == 200
        assert body["success"] is True
        assert body["agreement"]["accepted"] is True

        again = (await test_client.post("/api/agreement", headers=auth_headers)).json()
        assert again["agreement"]["accepted_at"] == body["agreement"]["accepted_at"]

        after = (await test_client.get("/api/agreement", headers=auth_headers)).json()
        assert after["accepted"] is True

    async def test_requires_sign_in(self, test_client):
        response = await test_client.post("/api/agreement")
        assert response.status_code == 401
