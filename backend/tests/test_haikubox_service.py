"""
Bird Feed Backend — Haikubox Sync Service Tests
================================================

What:  Sync (single user and scheduled), connection test, detection
       listing, linking, stats.
How:   A fake client replaces HaikuboxClient so no HTTP is involved; the
       database is the in-memory SQLite from conftest.py.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select

from birdfeed.exceptions import CircuitBreakerOpenError, HaikuboxServiceError, NotFoundError, ValidationError
from birdfeed.models.haikubox import HaikuboxActivityLog, HaikuboxDetection, HaikuboxSyncLog
from birdfeed.schemas.haikubox import LinkDetectionRequest
from birdfeed.services.haikubox_service import DEFAULT_DEVICE_NAME, NO_DATA_MESSAGE, HaikuboxService
from birdfeed.services.user_service import HAIKUBOX_SERIAL_KEY, user_service
from birdfeed.timeutil import ensure_utc

from conftest import TEST_USER_ID


def _iso(moment: datetime) -> str:
    return moment.isoformat().replace("+00:00", "Z")


class FakeHaikuboxClient:

    def __init__(self, yearly=None, recent=None, failures=None):
        self.yearly = yearly or []
        self.recent = recent or []
        self.failures = failures or {}
        self.calls = []
        self.devices = {}

    async def fetch_yearly(self, serial, year):
        self.calls.append(("yearly", serial, year))
        if serial in self.failures:
            raise self.failures[serial]
        return self.yearly

    async def fetch_recent(self, serial, hours=8):
        self.calls.append(("recent", serial, hours))
        return self.recent

    async def fetch_device(self, serial):
        self.calls.append(("device", serial))
        if serial in self.failures:
            raise self.failures[serial]
        return self.devices.get(serial, {})


@pytest.fixture
def now():
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def fake_client(now):
    return FakeHaikuboxClient(
        yearly=[{"bird": "Blue Jay", "count": 40}, {"bird": "Cooper’s Hawk", "count": 12}],
        recent=[
            {"species": "Blue Jay", "timestamp": _iso(now - timedelta(hours=3))},
            {"species": "Blue Jay", "timestamp": _iso(now - timedelta(hours=1))},
            {"species": "Cooper’s Hawk", "timestamp": _iso(now - timedelta(hours=2))},
        ],
    )


@pytest_asyncio.fixture
async def configured_user(db_session, make_user, make_species):
    await make_user()
    hawk = await make_species(common_name="Cooper's hawk")
    await user_service.set_setting(db_session, TEST_USER_ID, HAIKUBOX_SERIAL_KEY, "ABC123")
    return hawk


class TestSyncUser:

    async def test_requires_serial(self, db_session, make_user, fake_client):
        await make_user()
        with pytest.raises(ValidationError, match="serial not configured"):
            await HaikuboxService(fake_client).sync_user(db_session, TEST_USER_ID)

    async def test_successful_sync(self, db_session, configured_user, fake_client, now):
        hawk = configured_user
        result = await HaikuboxService(fake_client).sync_user(db_session, TEST_USER_ID)

        assert result.success is True
        assert result.processed == 2
        assert result.matched == 1
        assert result.activity_logged == 3
        assert result.year == now.year

        rows = {
            d.species_common_name: d
            for d in (await db_session.execute(select(HaikuboxDetection))).scalars().all()
        }
        assert rows["Blue Jay"].yearly_count == 40
        assert rows["Blue Jay"].species_id is None
        assert ensure_utc(rows["Blue Jay"].last_heard_at) == now - timedelta(hours=1)
        assert rows["Cooper’s Hawk"].species_id == hawk.id

        log = (await db_session.execute(select(HaikuboxSyncLog))).scalar_one()
        assert (log.status, log.records_processed, log.sync_type) == ("success", 2, "yearly")

    async def test_resync_updates_in_place(self, db_session, configured_user, fake_client):
        service = HaikuboxService(fake_client)
        await service.sync_user(db_session, TEST_USER_ID)
        fake_client.yearly = [{"bird": "Blue Jay", "count": 55}]

        result = await service.sync_user(db_session, TEST_USER_ID)

        assert result.activity_logged == 0
        rows = (await db_session.execute(select(HaikuboxDetection))).scalars().all()
        assert len(rows) == 2
        assert {r.species_common_name: r.yearly_count for r in rows}["Blue Jay"] == 55

    async def test_upstream_failure_is_logged(self, db_session, configured_user):
        client = FakeHaikuboxClient(failures={"ABC123": HaikuboxServiceError(message="Haikubox API error: 500")})

        result = await HaikuboxService(client).sync_user(db_session, TEST_USER_ID)

        assert result.success is False
        assert result.error == "Haikubox API error: 500"
        log = (await db_session.execute(select(HaikuboxSyncLog))).scalar_one()
        assert log.status == "error"
        assert log.error_message == "Haikubox API error: 500"

    async def test_open_circuit_keeps_its_status(self, db_session, configured_user):
        client = FakeHaikuboxClient(failures={"ABC123": CircuitBreakerOpenError(recovery_time=30)})

        result = await HaikuboxService(client).sync_user(db_session, TEST_USER_ID)

        assert result.success is False
        assert (result.status_code, result.error_code, result.retry_after) == (503, "service_unavailable", 30)
        assert not {"status_code", "error_code", "retry_after"} & set(result.model_dump())

    async def test_empty_yearly_data_is_an_error(self, db_session, configured_user):
        client = FakeHaikuboxClient(yearly=[])

        result = await HaikuboxService(client).sync_user(db_session, TEST_USER_ID)

        assert result.success is False
        assert result.error == NO_DATA_MESSAGE
        assert ("recent", "ABC123", 72) not in client.calls


class TestConnectionCheck:

    async def test_device_name_returned(self, fake_client):
        fake_client.devices["ABC123"] = {"name": "Backyard Box"}

        result = await HaikuboxService(fake_client).check_connection("  ABC123 ")

        assert (result.success, result.device_name, result.serial) == (True, "Backyard Box", "ABC123")
        assert fake_client.calls == [("device", "ABC123")]

    async def test_unnamed_device_gets_default_name(self, fake_client):
        result = await HaikuboxService(fake_client).check_connection("ABC123")
        assert result.device_name == DEFAULT_DEVICE_NAME

    @pytest.mark.parametrize("serial", [None, "", "   "])
    async def test_serial_required(self, fake_client, serial):
        with pytest.raises(ValidationError, match="Serial number required"):
            await HaikuboxService(fake_client).check_connection(serial)
        assert fake_client.calls == []

    async def test_serial_must_be_alphanumeric(self, fake_client):
        with pytest.raises(ValidationError, match="alphanumeric"):
            await HaikuboxService(fake_client).check_connection("ABC-123")
        assert fake_client.calls == []

    async def test_unknown_device(self):
        client = FakeHaikuboxClient(
            failures={"ABC123": HaikuboxServiceError(message="Haikubox API error: 404", context={"status": 404})}
        )
        with pytest.raises(ValidationError, match="Device not found"):
            await HaikuboxService(client).check_connection("ABC123")

    async def test_other_status_is_a_bad_connection(self):
        client = FakeHaikuboxClient(
            failures={"ABC123": HaikuboxServiceError(message="Haikubox API error: 500", context={"status": 500})}
        )
        with pytest.raises(ValidationError, match="Unable to connect"):
            await HaikuboxService(client).check_connection("ABC123")

    async def test_unreachable_api_propagates(self):
        client = FakeHaikuboxClient(failures={"ABC123": HaikuboxServiceError(message="Could not reach")})
        with pytest.raises(HaikuboxServiceError):
            await HaikuboxService(client).check_connection("ABC123")


class TestSyncAll:

    async def test_no_configured_users(self, session_factory, fake_client):
        result = await HaikuboxService(fake_client).sync_all(session_factory)
        assert result.synced == 0
        assert result.message == "No users with Haikubox serials"

    async def test_each_user_synced_independently(self, db_session, session_factory, make_user, fake_client):
        await make_user("user_a")
        await make_user("user_b")
        await user_service.set_setting(db_session, "user_a", HAIKUBOX_SERIAL_KEY, "GOOD1")
        await user_service.set_setting(db_session, "user_b", HAIKUBOX_SERIAL_KEY, "BAD1")
        await db_session.commit()
        fake_client.failures["BAD1"] = HaikuboxServiceError(message="Could not reach the Haikubox API.")

        result = await HaikuboxService(fake_client).sync_all(session_factory)

        assert result.synced == 2
        assert result.success_count == 1
        assert result.total_processed == 2
        outcomes = {r.user_id: r for r in result.results}
        assert outcomes["user_a"].success is True
        assert outcomes["user_b"].error == "Could not reach the Haikubox API."

        async with session_factory() as check:
            logs = (await check.execute(select(HaikuboxSyncLog.user_id, HaikuboxSyncLog.status))).all()
        assert sorted(tuple(row) for row in logs) == [("user_a", "success"), ("user_b", "error")]


class TestQueries:

    async def _synced(self, db_session, fake_client):
        await HaikuboxService(fake_client).sync_user(db_session, TEST_USER_ID)
        return HaikuboxService(fake_client)

    async def test_sync_status(self, db_session, configured_user, fake_client):
        service = await self._synced(db_session, fake_client)
        status = await service.get_sync_status(db_session, TEST_USER_ID)

        assert status.last_sync.status == "success"
        assert status.total_detections == 2
        assert status.matched_to_gallery == 1

    async def test_list_detections_filters(self, db_session, configured_user, fake_client):
        service = await self._synced(db_session, fake_client)

        everything = await service.list_detections(db_session, TEST_USER_ID)
        assert [d.species_common_name for d in everything.detections] == ["Blue Jay", "Cooper’s Hawk"]

        unmatched = await service.list_detections(db_session, TEST_USER_ID, unmatched=True)
        assert [d.species_common_name for d in unmatched.detections] == ["Blue Jay"]

        by_name = await service.list_detections(db_session, TEST_USER_ID, species="cooper's HAWK")
        assert by_name.detections[0].matched_species_name == "Cooper's hawk"

        limited = await service.list_detections(db_session, TEST_USER_ID, limit=1)
        assert len(limited.detections) == 1

    async def test_link_and_unlink(self, db_session, configured_user, fake_client, make_species):
        service = await self._synced(db_session, fake_client)
        jay = await make_species(common_name="Blue Jay (backyard)")

        linked = await service.link_detection(
            db_session, TEST_USER_ID, LinkDetectionRequest(detection_common_name="blue jay", species_id=jay.id)
        )
        assert linked.updated_detections == 1
        assert linked.updated_activity_logs == 2

        ids = (
            await db_session.execute(
                select(HaikuboxActivityLog.species_id).where(HaikuboxActivityLog.species_common_name == "Blue Jay")
            )
        ).scalars().all()
        assert set(ids) == {jay.id}

        unlinked = await service.link_detection(
            db_session, TEST_USER_ID, LinkDetectionRequest(detection_common_name="Blue Jay", species_id=None)
        )
        assert unlinked.updated_detections == 1

    async def test_link_to_foreign_species_rejected(self, db_session, configured_user, fake_client, make_species):
        service = await self._synced(db_session, fake_client)
        theirs = await make_species(user_id="user_bob", common_name="Blue Jay")
        with pytest.raises(NotFoundError):
            await service.link_detection(
                db_session, TEST_USER_ID, LinkDetectionRequest(detection_common_name="Blue Jay", species_id=theirs.id)
            )

    async def test_stats(self, db_session, configured_user, fake_client, make_photo):
        hawk = configured_user
        service = await self._synced(db_session, fake_client)
        await make_photo(species_id=hawk.id)

        stats = await service.get_stats(db_session, TEST_USER_ID)

        assert stats.total_heard == 2
        assert stats.total_photographed == 1
        assert stats.heard_and_photographed == 1
        assert [h.common_name for h in stats.heard_not_photographed] == ["Blue Jay"]
        assert {r.common_name: r.has_photo for r in stats.recently_heard} == {
            "Blue Jay": False,
            "Cooper’s Hawk": True,
        }
