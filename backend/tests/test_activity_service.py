"""Activity log storage, pruning and timeline query tests."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from birdfeed.config import settings
from birdfeed.exceptions import NotFoundError
from birdfeed.models.haikubox import HaikuboxActivityLog
from birdfeed.services.activity_service import activity_service, local_hour_and_weekday

from conftest import TEST_USER_ID


def _at(days_ago: int, hour: int) -> datetime:
    base = datetime.now(timezone.utc) - timedelta(days=days_ago)
    return base.replace(hour=hour, minute=0, second=0, microsecond=0)


def _detection(name: str, moment: datetime) -> dict:
    return {"species": name, "timestamp": moment.isoformat().replace("+00:00", "Z")}


async def _count(db) -> int:
    return (await db.execute(select(func.count(HaikuboxActivityLog.id)))).scalar()


def test_local_hour_and_weekday_sunday_is_zero():
    assert local_hour_and_weekday(datetime(2025, 5, 18, 7, 15, tzinfo=timezone.utc)) == (7, 0)
    assert local_hour_and_weekday(datetime(2025, 5, 17, 23, 59, tzinfo=timezone.utc)) == (23, 6)


def test_local_hour_uses_activity_timezone(monkeypatch):
    monkeypatch.setattr(settings, "activity_timezone", "America/New_York")
    # 02:00 UTC on a Monday is 22:00 Sunday in New York (EDT)
    assert local_hour_and_weekday(datetime(2025, 5, 19, 2, 0, tzinfo=timezone.utc)) == (22, 0)


class TestStore:

    async def test_stores_and_matches_species(self, db_session):
        moment = _at(1, 6)
        stored = await activity_service.store_activity_logs(
            db_session,
            TEST_USER_ID,
            [_detection("Cooper’s Hawk", moment), _detection("Blue Jay", moment)],
            {"cooper's hawk": 42},
        )
        assert stored == 2

        rows = (await db_session.execute(select(HaikuboxActivityLog).order_by(HaikuboxActivityLog.id))).scalars().all()
        assert rows[0].species_id == 42
        assert rows[0].hour_of_day == 6
        assert rows[1].species_id is None

    async def test_skips_duplicates_across_and_within_batches(self, db_session):
        moment = _at(1, 6)
        batch = [_detection("Blue Jay", moment), _detection("Blue Jay", moment)]

        assert await activity_service.store_activity_logs(db_session, TEST_USER_ID, batch, {}) == 1
        assert await activity_service.store_activity_logs(db_session, TEST_USER_ID, batch, {}) == 0
        assert await _count(db_session) == 1

    async def test_skips_bad_entries(self, db_session):
        stored = await activity_service.store_activity_logs(
            db_session,
            TEST_USER_ID,
            [{"species": "Blue Jay", "timestamp": "yesterday-ish"}, {"species": "", "timestamp": "2025-01-01T00:00:00Z"}],
            {},
        )
        assert stored == 0

    async def test_prune_removes_expired_rows(self, db_session):
        await activity_service.store_activity_logs(
            db_session,
            TEST_USER_ID,
            [_detection("Blue Jay", _at(200, 6)), _detection("Blue Jay", _at(2, 6))],
            {},
        )
        assert await activity_service.prune_activity_logs(db_session, TEST_USER_ID, retention_days=90) == 1
        assert await _count(db_session) == 1


class TestQueries:

    async def _seed(self, db):
        detections = []
        for day in range(1, 6):
            detections.append(_detection("Northern Cardinal", _at(day, 6)))
        for day in range(1, 4):
            detections.append(_detection("Northern Cardinal", _at(day, 7)))
        for day in range(1, 3):
            detections.append(_detection("Northern Cardinal", _at(day, 18)))
        detections.append(_detection("Blue Jay", _at(1, 12)))
        await activity_service.store_activity_logs(db, TEST_USER_ID, detections, {})

    async def test_species_pattern_peak_hours(self, db_session):
        await self._seed(db_session)
        result = await activity_service.get_species_pattern(db_session, TEST_USER_ID, "northern cardinal")

        pattern = result.pattern
        assert pattern.species_name == "Northern Cardinal"
        assert pattern.total_detections == 10
        assert pattern.peak_hours == [6, 7]
        assert pattern.hourly_breakdown[6].count == 5
        assert pattern.hourly_breakdown[6].percentage == pytest.approx(50.0)
        assert pattern.data_date_range.start < pattern.data_date_range.end

    async def test_species_pattern_not_found(self, db_session):
        await self._seed(db_session)
        with pytest.raises(NotFoundError, match="No activity data found"):
            await activity_service.get_species_pattern(db_session, TEST_USER_ID, "Snowy Owl")

    async def test_heatmap(self, db_session):
        await self._seed(db_session)
        result = await activity_service.get_heatmap(db_session, TEST_USER_ID, days=30)

        by_name = {row.species_name: row.hourly_data for row in result.heatmap}
        assert len(by_name["Northern Cardinal"]) == 24
        assert by_name["Northern Cardinal"][6] == 5
        assert by_name["Blue Jay"][12] == 1
        assert result.days_analyzed == 30

    async def test_active_now(self, db_session):
        hour = datetime.now(timezone.utc).hour
        await activity_service.store_activity_logs(
            db_session,
            TEST_USER_ID,
            [
                _detection("Blue Jay", _at(1, hour)),
                _detection("Blue Jay", _at(2, hour)),
                _detection("Carolina Wren", _at(3, hour)),
                _detection("Snowy Owl", _at(1, (hour + 6) % 24)),
            ],
            {},
        )
        result = await activity_service.get_active_now(db_session, TEST_USER_ID, hour_window=0)

        assert result.current_hour == hour
        assert [(s.species_name, s.recent_count) for s in result.active_species] == [
            ("Blue Jay", 2),
            ("Carolina Wren", 1),
        ]
