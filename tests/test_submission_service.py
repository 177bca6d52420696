"""Submission clients: retry/backoff, error translation, queries and the stub.

Invariants:
    - Transient failures are retried with initial_delay * multiplier^(attempt-1)
    - Unique violations are returned after one attempt
    - No operation raises; failures come back as ClientResult(success=False)
    - Unconfigured environments get the stub client
"""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from models.forms import CountFilters, FormData, RetryConfig
from services import submission_service
from services.submission_service import (
    RemoteClient,
    StubClient,
    create_submission_client,
    start_of_current_month,
)
from tests.fakes import FakeResponse, FakeSupabase, api_error, make_row
from utils.errors import SubmissionErrorCode


SANITIZED = FormData(name="John Doe", email="john@ex.com", subscribed_newsletter=True)


def _remote(fake, max_attempts=3, initial_delay_ms=100, multiplier=2):
    client = RemoteClient(fake, RetryConfig(max_attempts, initial_delay_ms, multiplier))
    client.slept = []

    async def record_sleep(seconds):
        client.slept.append(seconds)

    client._sleep = record_sleep
    return client


# ==============================================================================
# submit
# ==============================================================================


async def test_submit_inserts_payload_and_returns_record():
    fake = FakeSupabase([FakeResponse([make_row(id="abc")])])
    client = _remote(fake)

    result = await client.submit(SANITIZED, "hero_section")

    assert result.success
    assert result.error is None
    assert result.data.id == "abc"
    (payload,), _ = fake.executed[0].op("insert")
    assert fake.executed[0].table == "interest_submissions"
    assert payload["name"] == "John Doe"
    assert payload["email"] == "john@ex.com"
    assert payload["subscribed_newsletter"] is True
    assert payload["source"] == "hero_section"
    assert payload["message"] is None
    assert datetime.fromisoformat(payload["submitted_at"]).tzinfo is not None


async def test_submit_retries_twice_then_succeeds_with_backoff():
    fake = FakeSupabase([
        httpx.ConnectError("connection refused"),
        httpx.ConnectError("connection refused"),
        FakeResponse([make_row()]),
    ])
    client = _remote(fake, max_attempts=3, initial_delay_ms=100, multiplier=2)

    result = await client.submit(SANITIZED)

    assert result.success
    assert result.data.email == "john@ex.com"
    assert len(fake.executed) == 3
    assert client.slept == pytest.approx([0.1, 0.2])


async def test_submit_backoff_waits_in_real_time():
    fake = FakeSupabase([
        httpx.ConnectError("down"),
        httpx.ConnectError("down"),
        FakeResponse([make_row()]),
    ])
    client = RemoteClient(fake, RetryConfig(max_attempts=3, initial_delay_ms=100, backoff_multiplier=2))
    loop = asyncio.get_running_loop()

    started = loop.time()
    result = await client.submit(SANITIZED)
    elapsed = loop.time() - started

    assert result.success
    assert elapsed >= 0.29


async def test_submit_duplicate_email_is_not_retried():
    fake = FakeSupabase([api_error("23505", "duplicate key value violates unique constraint")])
    client = _remote(fake)

    result = await client.submit(SANITIZED)

    assert not result.success
    assert result.data is None
    assert result.error.code == SubmissionErrorCode.DUPLICATE_EMAIL
    assert result.error.message == "This email is already registered"
    assert len(fake.executed) == 1
    assert client.slept == []


@pytest.mark.parametrize("pg_code", ["23502", "23503", "42P01", "42501", "22P02", "PGRST204"])
async def test_submit_terminal_codes_are_not_retried(pg_code):
    fake = FakeSupabase([api_error(pg_code)])
    client = _remote(fake)

    result = await client.submit(SANITIZED)

    assert not result.success
    assert len(fake.executed) == 1


async def test_submit_returns_last_error_after_exhausting_retries():
    fake = FakeSupabase([
        httpx.ConnectError("first"),
        api_error("40001", "could not serialize access"),
        api_error(None, "still failing"),
    ])
    client = _remote(fake, max_attempts=3, initial_delay_ms=10, multiplier=3)

    result = await client.submit(SANITIZED)

    assert not result.success
    assert result.error.code == SubmissionErrorCode.UNKNOWN
    assert result.error.message == "still failing"
    assert len(fake.executed) == 3
    assert client.slept == pytest.approx([0.01, 0.03])


async def test_submit_empty_insert_response_is_an_error():
    fake = FakeSupabase([FakeResponse([])])
    client = _remote(fake, max_attempts=1)

    result = await client.submit(SANITIZED)

    assert not result.success
    assert result.error.message == "Failed to create submission"


async def test_client_without_supabase_reports_configuration_error():
    client = RemoteClient(None)
    result = await client.submit(SANITIZED)
    assert not result.success
    assert result.error.code == SubmissionErrorCode.CONFIGURATION_ERROR


# ==============================================================================
# check_email_exists
# ==============================================================================


async def test_check_email_exists_normalizes_and_finds_row():
    fake = FakeSupabase([FakeResponse([{"email": "john@ex.com"}])])
    client = _remote(fake)

    result = await client.check_email_exists("  John@EX.com ")

    assert result.success and result.data is True
    (column, value), _ = fake.executed[0].op("eq")
    assert (column, value) == ("email", "john@ex.com")


async def test_check_email_exists_false_when_no_rows():
    result = await _remote(FakeSupabase([FakeResponse([])])).check_email_exists("a@b.co")
    assert result.success and result.data is False


async def test_check_email_not_found_code_means_false():
    result = await _remote(FakeSupabase([api_error("PGRST116")])).check_email_exists("a@b.co")
    assert result.success and result.data is False


async def test_check_email_other_errors_fail():
    result = await _remote(FakeSupabase([api_error("42501")])).check_email_exists("a@b.co")
    assert not result.success
    assert result.error.code == SubmissionErrorCode.PERMISSION_DENIED


# ==============================================================================
# get_count / get_stats / recent
# ==============================================================================


async def test_get_count_applies_filters():
    fake = FakeSupabase([FakeResponse(count=7)])
    client = _remote(fake)
    date_from = datetime(2026, 10, 1, tzinfo=timezone.utc)
    date_to = datetime(2026, 10, 31, 23, 59, tzinfo=timezone.utc)

    result = await client.get_count(CountFilters(
        subscribed_newsletter=False, source="hero_section", date_from=date_from, date_to=date_to,
    ))

    assert result.success and result.data == 7
    query = fake.executed[0]
    assert query.op("select") == (("id",), {"count": "exact", "head": True})
    eqs = [args for name, args, _ in query.ops if name == "eq"]
    assert ("source", "hero_section") in eqs
    assert ("subscribed_newsletter", False) in eqs
    assert query.op("gte")[0] == ("submitted_at", date_from.isoformat())
    assert query.op("lte")[0] == ("submitted_at", date_to.isoformat())


async def test_get_count_without_filters_and_missing_count():
    fake = FakeSupabase([FakeResponse(count=None)])
    result = await _remote(fake).get_count()
    assert result.success and result.data == 0
    assert fake.executed[0].op("eq") is None


async def test_get_stats_aggregates_queries():
    def handler(query):
        columns, kwargs = query.op("select")
        if columns == ("source",):
            return FakeResponse([{"source": "landing_page"}, {"source": "hero_section"}, {"source": "landing_page"}])
        if query.op("eq"):
            return FakeResponse(count=2)
        if query.op("gte"):
            return FakeResponse(count=1)
        return FakeResponse(count=3)

    fake = FakeSupabase(handler=handler)
    result = await _remote(fake).get_stats()

    assert result.success
    assert result.data.total == 3
    assert result.data.newsletter_subscribers == 2
    assert result.data.this_month == 1
    assert result.data.source_breakdown == {"landing_page": 2, "hero_section": 1}

    month_query = next(q for q in fake.executed if q.op("gte"))
    (_, bound), _ = month_query.op("gte")
    assert bound == start_of_current_month().isoformat()


async def test_get_stats_source_breakdown_pages_through_all_rows():
    sources = ["landing_page", "api", "landing_page", "hero_section", "landing_page"]

    def handler(query):
        columns, _ = query.op("select")
        if columns == ("source",):
            (start, end), _ = query.op("range")
            return FakeResponse([{"source": s} for s in sources[start:end + 1]])
        return FakeResponse(count=len(sources))

    fake = FakeSupabase(handler=handler)
    client = _remote(fake)
    client.stats_page_size = 2

    result = await client.get_stats()

    assert result.data.source_breakdown == {"landing_page": 3, "api": 1, "hero_section": 1}
    assert sum(result.data.source_breakdown.values()) == result.data.total
    pages = [q.op("range")[0] for q in fake.executed if q.op("range")]
    assert pages == [(0, 1), (2, 3), (4, 5)]


def test_start_of_current_month_is_local_midnight_on_the_first():
    start = start_of_current_month()
    now = datetime.now().astimezone()
    assert start.tzinfo is not None
    assert (start.year, start.month, start.day) == (now.year, now.month, 1)
    assert (start.hour, start.minute, start.second, start.microsecond) == (0, 0, 0, 0)


async def test_get_recent_submissions_paginates():
    fake = FakeSupabase([FakeResponse([make_row(id="1"), make_row(id="2")])])
    result = await _remote(fake).get_recent_submissions(limit=2, offset=4)

    assert [r.id for r in result.data] == ["1", "2"]
    query = fake.executed[0]
    assert query.op("range")[0] == (4, 5)
    assert query.op("order") == (("submitted_at",), {"desc": True})


async def test_check_connection_does_not_retry():
    fake = FakeSupabase([httpx.ConnectError("down")])
    client = _remote(fake)

    result = await client.check_connection()

    assert not result.success
    assert result.error.code == SubmissionErrorCode.NETWORK_ERROR
    assert len(fake.executed) == 1


# ==============================================================================
# Stub client and selection
# ==============================================================================


async def test_stub_submit_is_deterministic():
    stub = StubClient()
    first = await stub.submit(SANITIZED, "api")
    second = await stub.submit(FormData(name="Ann Lee", email="ann@ex.com"))

    assert first.success and first.data.id == "mock-1"
    assert first.data.source == "api"
    assert second.data.id == "mock-2"


async def test_stub_known_emails_exist():
    stub = StubClient()
    assert (await stub.check_email_exists("Demo@Example.com")).data is True
    assert (await stub.check_email_exists("new@example.com")).data is False

    duplicate = await stub.submit(FormData(name="Test User", email="test@example.com"))
    assert duplicate.error.code == SubmissionErrorCode.DUPLICATE_EMAIL


async def test_stub_count_stats_and_recent():
    stub = StubClient()
    assert (await stub.get_count(CountFilters(source="api"))).data == 42
    stats = (await stub.get_stats()).data
    assert stats.total == 42
    assert stats.newsletter_subscribers == 28
    assert stats.this_month == 12
    assert stats.source_breakdown == {"landing_page": 25, "hero_section": 10, "api": 7}
    recent = (await stub.get_recent_submissions(limit=1)).data
    assert [r.id for r in recent] == ["mock-1"]
    assert (await stub.check_connection()).data is True


def test_factory_returns_stub_when_unconfigured():
    client = create_submission_client()
    assert isinstance(client, StubClient)
    assert client.is_stub


def test_factory_returns_remote_when_configured(monkeypatch):
    fake = FakeSupabase()
    monkeypatch.setattr(submission_service, "is_supabase_configured", lambda: True)
    monkeypatch.setattr(submission_service, "get_supabase", lambda: fake)

    client = create_submission_client(RetryConfig(max_attempts=5))

    assert isinstance(client, RemoteClient)
    assert client.supabase is fake
    assert client.retry_config.max_attempts == 5
    assert not client.is_stub
