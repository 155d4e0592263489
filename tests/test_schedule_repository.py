"""Tests for ScheduleRepository: validated creation, calendar reads and cancel."""

from datetime import date, datetime, timedelta, timezone

import pytest

from crosspost.exceptions import (
    DatabaseError,
    MissingFieldError,
    OwnershipError,
    UnknownPlatformError,
    ValidationError,
)
from crosspost.scheduling.models import CreateScheduleRequest, ScheduleStatus
from crosspost.scheduling.schedule_repository import DateRangeTooLargeError, ScheduleRepository

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
POST_TEXT = "Sharing what our team shipped this week."


def at(minutes):
    return (NOW + timedelta(minutes=minutes)).isoformat()


@pytest.fixture
def repo(db, policy):
    return ScheduleRepository(db, policy=policy)


@pytest.fixture
def content(seed_content):
    return seed_content(user_id="user-1", content_id="content-1")


def payload(**overrides):
    body = {
        "content_id": "content-1",
        "unified_text": POST_TEXT,
        "selected_platforms": ["instagram_business", "linkedin"],
        "platform_texts": {"instagram_business": POST_TEXT, "linkedin": POST_TEXT},
        "scheduled_times": {"instagram_business": at(30), "linkedin": at(45)},
    }
    body.update(overrides)
    return body


# =============================================================================
# Create
# =============================================================================


class TestCreate:

    @pytest.mark.asyncio
    async def test_creates_one_pending_row_per_platform(self, repo, content, fake_client):
        records = await repo.create("user-1", payload(), now=NOW)

        assert [r.platform.value for r in records] == ["instagram_business", "linkedin"]
        rows = fake_client.rows("schedules")
        assert len(rows) == 2
        assert {row["status"] for row in rows} == {"pending"}
        assert {row["tries"] for row in rows} == {0}
        assert fake_client.statements.count(("schedules", "insert")) == 1

    @pytest.mark.asyncio
    async def test_accepts_parsed_request(self, repo, content):
        request = CreateScheduleRequest.from_dict(payload())
        records = await repo.create("user-1", request, now=NOW)
        assert len(records) == 2

    @pytest.mark.asyncio
    async def test_youtube_draft_structured_payload(self, repo, content, fake_client):
        draft = {"title": "Launch recap", "description": "Walkthrough of the new release"}
        records = await repo.create(
            "user-1",
            payload(
                selected_platforms=["youtube_draft"],
                platform_texts={"youtube_draft": draft},
                scheduled_times={"youtube_draft": at(10)},
            ),
            now=NOW,
        )
        assert records[0].platform_text == draft
        assert fake_client.rows("schedules")[0]["platform_text"] == draft

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "draft",
        [
            {"title": 123, "description": "Walkthrough"},
            {"title": "Launch recap", "description": ["Walkthrough"]},
            {"title": "   ", "description": "Walkthrough"},
            {"title": "Launch recap", "description": "\n\t"},
            "Launch recap",
        ],
        ids=["int-title", "list-description", "blank-title", "blank-description", "plain-string"],
    )
    async def test_youtube_malformed_draft(self, repo, content, fake_client, draft):
        with pytest.raises(MissingFieldError, match="YouTube title/description required") as exc_info:
            await repo.create(
                "user-1",
                payload(
                    selected_platforms=["youtube_draft"],
                    platform_texts={"youtube_draft": draft},
                    scheduled_times={"youtube_draft": at(10)},
                ),
                now=NOW,
            )
        assert exc_info.value.http_status == 422
        assert fake_client.rows("schedules") == []

    @pytest.mark.asyncio
    async def test_instagram_text_too_long_inserts_nothing(self, repo, content, fake_client):
        texts = {"instagram_business": "x" * 2300, "linkedin": POST_TEXT}
        with pytest.raises(ValidationError, match="ig text too long"):
            await repo.create("user-1", payload(platform_texts=texts), now=NOW)
        assert fake_client.rows("schedules") == []

    @pytest.mark.asyncio
    async def test_youtube_title_too_long(self, repo, content, fake_client):
        draft = {"title": "t" * 150, "description": "Walkthrough"}
        with pytest.raises(ValidationError, match="YouTube length exceeded"):
            await repo.create(
                "user-1",
                payload(
                    selected_platforms=["youtube_draft"],
                    platform_texts={"youtube_draft": draft},
                    scheduled_times={"youtube_draft": at(10)},
                ),
                now=NOW,
            )
        assert fake_client.rows("schedules") == []

    @pytest.mark.asyncio
    async def test_second_platform_invalid_inserts_nothing(self, repo, content, fake_client):
        texts = {"instagram_business": POST_TEXT, "linkedin": ""}
        with pytest.raises(MissingFieldError, match="Text required for linkedin"):
            await repo.create("user-1", payload(platform_texts=texts), now=NOW)
        assert fake_client.rows("schedules") == []

    @pytest.mark.asyncio
    async def test_empty_selection(self, repo, content):
        with pytest.raises(ValidationError, match="At least one platform must be selected"):
            await repo.create("user-1", payload(selected_platforms=[]), now=NOW)

    @pytest.mark.asyncio
    async def test_unknown_platform(self, repo, content):
        with pytest.raises(UnknownPlatformError):
            await repo.create("user-1", payload(selected_platforms=["myspace"]), now=NOW)

    @pytest.mark.asyncio
    async def test_duplicate_platform(self, repo, content):
        with pytest.raises(ValidationError, match="Each platform can be selected once"):
            await repo.create("user-1", payload(selected_platforms=["linkedin", "linkedin"]), now=NOW)

    @pytest.mark.asyncio
    async def test_forbidden_unified_text(self, repo, content):
        with pytest.raises(ValidationError, match="Content contains forbidden language"):
            await repo.create("user-1", payload(unified_text="Go vote"), now=NOW)

    @pytest.mark.asyncio
    async def test_content_owned_by_someone_else(self, repo, seed_content):
        seed_content(user_id="other-user", content_id="content-1")
        with pytest.raises(OwnershipError) as exc_info:
            await repo.create("user-1", payload(), now=NOW)
        assert exc_info.value.http_status == 403

    @pytest.mark.asyncio
    async def test_missing_time(self, repo, content):
        with pytest.raises(ValidationError, match="Scheduled time required for linkedin"):
            await repo.create("user-1", payload(scheduled_times={"instagram_business": at(30)}), now=NOW)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["now", "tomorrow-ish", 12345])
    async def test_unparseable_time(self, repo, content, value):
        times = {"instagram_business": at(30), "linkedin": value}
        with pytest.raises(ValidationError, match="Invalid scheduled time for linkedin"):
            await repo.create("user-1", payload(scheduled_times=times), now=NOW)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("minutes", [0, 0.5, -10])
    async def test_time_inside_minimum_lead(self, repo, content, minutes):
        times = {"instagram_business": at(30), "linkedin": at(minutes)}
        with pytest.raises(ValidationError, match="Invalid scheduled time for linkedin"):
            await repo.create("user-1", payload(scheduled_times=times), now=NOW)

    @pytest.mark.asyncio
    async def test_time_exactly_at_minimum_lead(self, repo, content):
        times = {"instagram_business": at(30), "linkedin": at(1)}
        records = await repo.create("user-1", payload(scheduled_times=times), now=NOW)
        assert len(records) == 2

    @pytest.mark.asyncio
    async def test_times_must_differ(self, repo, content, fake_client):
        times = {"instagram_business": at(30), "linkedin": at(30)}
        with pytest.raises(ValidationError, match="Times must differ per platform"):
            await repo.create("user-1", payload(scheduled_times=times), now=NOW)
        assert fake_client.rows("schedules") == []

    @pytest.mark.asyncio
    async def test_insert_failure_is_database_error(self, repo, content, fake_client):
        fake_client.fail_tables["schedules"] = "insert"
        with pytest.raises(DatabaseError, match="Unable to create schedule") as exc_info:
            await repo.create("user-1", payload(), now=NOW)
        assert exc_info.value.http_status == 500

    @pytest.mark.asyncio
    async def test_missing_content_id(self, repo):
        with pytest.raises(MissingFieldError) as exc_info:
            await repo.create("user-1", payload(content_id=None), now=NOW)
        assert exc_info.value.http_status == 422


# =============================================================================
# Reads
# =============================================================================


class TestReads:

    @pytest.mark.asyncio
    async def test_list_for_user_newest_first(self, repo, seed_schedule):
        older = seed_schedule(scheduled_time=NOW)
        newer = seed_schedule(scheduled_time=NOW + timedelta(days=1))
        seed_schedule(user_id="someone-else")

        records = await repo.list_for_user("user-1")

        assert [r.id for r in records] == [newer["id"], older["id"]]

    @pytest.mark.asyncio
    async def test_get_scoped_to_owner(self, repo, seed_schedule):
        row = seed_schedule(user_id="owner")
        assert (await repo.get("owner", row["id"])).id == row["id"]
        assert await repo.get("intruder", row["id"]) is None

    @pytest.mark.asyncio
    async def test_calendar_items(self, repo, seed_schedule):
        inside = seed_schedule(scheduled_time=datetime(2025, 6, 20, 23, 30, tzinfo=timezone.utc))
        seed_schedule(scheduled_time=datetime(2025, 7, 2, 9, 0, tzinfo=timezone.utc))
        youtube = seed_schedule(
            platform="youtube_draft",
            platform_text={"title": "Launch recap video", "description": "Walkthrough"},
            scheduled_time=datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc),
        )

        items = await repo.calendar("user-1", "2025-06-01", "2025-06-20")

        assert [item["id"] for item in items] == [youtube["id"], inside["id"]]
        assert items[1]["platform_text_preview"] == POST_TEXT[:20]
        assert items[0]["platform_text_preview"] == "Launch recap video"
        assert items[0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_calendar_accepts_dates(self, repo, seed_schedule):
        seed_schedule(scheduled_time=datetime(2025, 6, 10, tzinfo=timezone.utc))
        items = await repo.calendar("user-1", date(2025, 6, 1), date(2025, 6, 30))
        assert len(items) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "start, end, message",
        [
            (None, "2025-06-20", "Missing date range"),
            ("2025-06-01", "", "Missing date range"),
            ("06/01/2025", "2025-06-20", "Invalid date format"),
            ("2025-02-30", "2025-03-01", "Invalid date format"),
            ("2025-06-20", "2025-06-01", "Invalid date range"),
        ],
    )
    async def test_calendar_rejects_bad_ranges(self, repo, start, end, message):
        with pytest.raises(ValidationError, match=message):
            await repo.calendar("user-1", start, end)

    @pytest.mark.asyncio
    async def test_calendar_range_too_large(self, repo):
        with pytest.raises(DateRangeTooLargeError, match="Date range too large") as exc_info:
            await repo.calendar("user-1", "2025-01-01", "2025-03-15")
        assert exc_info.value.http_status == 422

    @pytest.mark.asyncio
    async def test_calendar_sixty_days_allowed(self, repo):
        assert await repo.calendar("user-1", "2025-01-01", "2025-03-02") == []


# =============================================================================
# Cancel
# =============================================================================


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_pending(self, repo, seed_schedule, fake_client):
        row = seed_schedule()
        record = await repo.cancel("user-1", row["id"])
        assert record.status is ScheduleStatus.CANCELLED
        assert fake_client.get("schedules", row["id"])["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_not_owner(self, repo, seed_schedule, fake_client):
        row = seed_schedule(user_id="owner")
        with pytest.raises(OwnershipError, match="Schedule not found"):
            await repo.cancel("intruder", row["id"])
        assert fake_client.get("schedules", row["id"])["status"] == "pending"

    @pytest.mark.asyncio
    async def test_cancel_published(self, repo, seed_schedule):
        row = seed_schedule(status="published")
        with pytest.raises(ValidationError, match="Only pending schedules can be cancelled"):
            await repo.cancel("user-1", row["id"])
