"""Waitlist submission client: remote Supabase store or local stub.

Invariants:
    - Every operation returns a ClientResult; no exception escapes a client
    - Transient failures (network, unknown) are retried with exponential backoff
    - Terminal failures (duplicate email, missing fields, permission, missing
      table) are returned after the first attempt
    - The stub is chosen once, when Supabase is not configured

The supabase-py client is synchronous, so every query runs in a worker thread
via asyncio.to_thread to keep the event loop free for timers.
"""
import asyncio
import itertools
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from config.constants import (
    DEFAULT_SOURCE,
    STUB_EXISTING_EMAILS,
    STUB_RECENT_SUBMISSIONS,
    STUB_STATS,
    STUB_SUBMISSION_COUNT,
    SUBMISSIONS_TABLE,
)
from config.database import get_supabase, is_supabase_configured
from models.forms import (
    ClientResult,
    CountFilters,
    FormData,
    RetryConfig,
    SubmissionRecord,
    SubmissionStats,
)
from utils.errors import (
    SubmissionError,
    configuration_error,
    duplicate_email_error,
    is_not_found,
    translate_error,
)
from utils.logger import log_error, log_event, log_info, log_warning


def start_of_current_month() -> datetime:
    """First instant of the current calendar month in local time (timezone aware)"""
    now = datetime.now().astimezone()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def build_insert_payload(data: FormData, source: str, submitted_at: Optional[datetime] = None) -> Dict[str, Any]:
    submitted_at = submitted_at or datetime.now(timezone.utc)
    return {
        'name': data.name,
        'email': data.email,
        'subscribed_newsletter': data.subscribed_newsletter,
        'message': data.message,
        'company': data.company,
        'phone': data.phone,
        'source': source,
        'submitted_at': submitted_at.isoformat(),
    }


class SubmissionClient(ABC):
    """Operations against the submissions store"""

    @abstractmethod
    async def submit(self, data: FormData, source: str = DEFAULT_SOURCE) -> ClientResult[SubmissionRecord]:
        ...

    @abstractmethod
    async def check_email_exists(self, email: str) -> ClientResult[bool]:
        ...

    @abstractmethod
    async def get_count(self, filters: Optional[CountFilters] = None) -> ClientResult[int]:
        ...

    @abstractmethod
    async def get_stats(self) -> ClientResult[SubmissionStats]:
        ...

    @abstractmethod
    async def get_recent_submissions(
        self,
        limit: int = 10,
        offset: int = 0,
        order_by: str = 'submitted_at',
        descending: bool = True,
    ) -> ClientResult[List[SubmissionRecord]]:
        ...

    @abstractmethod
    async def check_connection(self) -> ClientResult[bool]:
        ...

    @property
    def is_stub(self) -> bool:
        return False


class RemoteClient(SubmissionClient):
    """Submission client backed by a Supabase table"""

    # rows per request when aggregating; at or below PostgREST's default max-rows
    stats_page_size = 1000

    def __init__(self, supabase, retry_config: Optional[RetryConfig] = None, table: str = SUBMISSIONS_TABLE):
        self.supabase = supabase
        self.retry_config = retry_config or RetryConfig()
        self.table = table

    async def submit(self, data: FormData, source: str = DEFAULT_SOURCE) -> ClientResult[SubmissionRecord]:
        payload = build_insert_payload(data, source)

        def insert():
            result = self.supabase.table(self.table).insert(payload).execute()
            if not result.data:
                raise SubmissionError("Failed to create submission")
            return SubmissionRecord.from_row(result.data[0])

        result = await self._run('submit', insert)
        if result.success:
            log_event("submission_created", id=result.data.id, email=data.email, source=source)
        return result

    async def check_email_exists(self, email: str) -> ClientResult[bool]:
        normalized = (email or '').strip().lower()

        def lookup():
            try:
                result = self.supabase.table(self.table).select('email').eq('email', normalized).limit(1).execute()
            except Exception as e:
                if is_not_found(e):
                    return False
                raise
            return bool(result.data)

        return await self._run('check_email_exists', lookup)

    async def get_count(self, filters: Optional[CountFilters] = None) -> ClientResult[int]:
        return await self._run('get_count', lambda: self._count(filters))

    async def get_stats(self) -> ClientResult[SubmissionStats]:
        def collect():
            return SubmissionStats(
                total=self._count(None),
                newsletter_subscribers=self._count(CountFilters(subscribed_newsletter=True)),
                this_month=self._count(CountFilters(date_from=start_of_current_month())),
                source_breakdown=self._source_breakdown(),
            )

        return await self._run('get_stats', collect)

    async def get_recent_submissions(
        self,
        limit: int = 10,
        offset: int = 0,
        order_by: str = 'submitted_at',
        descending: bool = True,
    ) -> ClientResult[List[SubmissionRecord]]:
        def fetch():
            result = (
                self.supabase.table(self.table)
                .select('*')
                .order(order_by, desc=descending)
                .range(offset, offset + limit - 1)
                .execute()
            )
            return [SubmissionRecord.from_row(row) for row in (result.data or [])]

        return await self._run('get_recent_submissions', fetch)

    async def check_connection(self) -> ClientResult[bool]:
        def probe():
            self.supabase.table(self.table).select('id').limit(1).execute()
            return True

        return await self._run('check_connection', probe, retry=False)

    def _source_breakdown(self) -> Dict[str, int]:
        """Count rows per source, paging past the PostgREST max-rows cap"""
        breakdown = Counter()
        start = 0
        while True:
            page = (
                self.supabase.table(self.table)
                .select('source')
                .order('id')
                .range(start, start + self.stats_page_size - 1)
                .execute()
            )
            rows = page.data or []
            breakdown.update(row.get('source') for row in rows)
            if len(rows) < self.stats_page_size:
                return dict(breakdown)
            start += self.stats_page_size

    def _count(self, filters: Optional[CountFilters]) -> int:
        query = self.supabase.table(self.table).select('id', count='exact', head=True)
        if filters:
            if filters.source:
                query = query.eq('source', filters.source)
            if filters.subscribed_newsletter is not None:
                query = query.eq('subscribed_newsletter', filters.subscribed_newsletter)
            if filters.date_from:
                query = query.gte('submitted_at', filters.date_from.isoformat())
            if filters.date_to:
                query = query.lte('submitted_at', filters.date_to.isoformat())
        result = query.execute()
        return result.count or 0

    async def _run(self, operation: str, fn: Callable[[], Any], retry: bool = True) -> ClientResult:
        """Run a blocking query with retry; translate the final failure"""
        if self.supabase is None:
            return ClientResult.failed(configuration_error())

        max_attempts = max(1, self.retry_config.max_attempts) if retry else 1
        last_error = None
        for attempt in range(1, max_attempts + 1):
            try:
                data = await asyncio.to_thread(fn)
                return ClientResult.ok(data)
            except Exception as e:
                last_error = translate_error(e)

            if not last_error.retryable:
                log_error(f"{operation} failed with non-retryable error: {last_error.code.value}", error=last_error)
                return ClientResult.failed(last_error)

            if attempt < max_attempts:
                delay_ms = self.retry_config.delay_ms(attempt)
                log_warning(
                    f"{operation} attempt {attempt}/{max_attempts} failed ({last_error.message}), "
                    f"retrying in {delay_ms:.0f}ms"
                )
                await self._sleep(delay_ms / 1000)

        log_error(f"{operation} failed after {max_attempts} attempts", error=last_error)
        return ClientResult.failed(last_error)

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class StubClient(SubmissionClient):
    """Deterministic synthetic client used when Supabase is not configured"""

    def __init__(self, delay_seconds: float = 0.0):
        self.delay_seconds = delay_seconds
        self._ids = itertools.count(1)

    @property
    def is_stub(self) -> bool:
        return True

    async def submit(self, data: FormData, source: str = DEFAULT_SOURCE) -> ClientResult[SubmissionRecord]:
        await self._simulate_latency()
        log_event("stub_submission", email=data.email, source=source)
        if (data.email or '').lower() in STUB_EXISTING_EMAILS:
            return ClientResult.failed(duplicate_email_error())
        row = build_insert_payload(data, source)
        row['id'] = f"mock-{next(self._ids)}"
        return ClientResult.ok(SubmissionRecord.from_row(row))

    async def check_email_exists(self, email: str) -> ClientResult[bool]:
        await self._simulate_latency()
        return ClientResult.ok((email or '').strip().lower() in STUB_EXISTING_EMAILS)

    async def get_count(self, filters: Optional[CountFilters] = None) -> ClientResult[int]:
        await self._simulate_latency()
        return ClientResult.ok(STUB_SUBMISSION_COUNT)

    async def get_stats(self) -> ClientResult[SubmissionStats]:
        await self._simulate_latency()
        return ClientResult.ok(SubmissionStats(
            total=STUB_STATS['total'],
            newsletter_subscribers=STUB_STATS['newsletter_subscribers'],
            this_month=STUB_STATS['this_month'],
            source_breakdown=dict(STUB_STATS['source_breakdown']),
        ))

    async def get_recent_submissions(
        self,
        limit: int = 10,
        offset: int = 0,
        order_by: str = 'submitted_at',
        descending: bool = True,
    ) -> ClientResult[List[SubmissionRecord]]:
        await self._simulate_latency()
        now = datetime.now(timezone.utc)
        records = []
        for fixture in STUB_RECENT_SUBMISSIONS:
            row = {k: v for k, v in fixture.items() if k != 'minutes_ago'}
            row['submitted_at'] = (now - timedelta(minutes=fixture['minutes_ago'])).isoformat()
            records.append(SubmissionRecord.from_row(row))
        return ClientResult.ok(records[offset:offset + limit])

    async def check_connection(self) -> ClientResult[bool]:
        return ClientResult.ok(True)

    async def _simulate_latency(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)


def create_submission_client(
    retry_config: Optional[RetryConfig] = None,
    stub_delay_seconds: float = 0.0,
) -> SubmissionClient:
    """Pick the remote client when Supabase is configured, the stub otherwise"""
    if not is_supabase_configured():
        log_info("Supabase not configured, using stub submission client")
        return StubClient(delay_seconds=stub_delay_seconds)
    return RemoteClient(get_supabase(), retry_config=retry_config)
