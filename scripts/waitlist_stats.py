#!/usr/bin/env python3
"""
Print waitlist counts and statistics from the submissions table.

Falls back to synthetic numbers when SUPABASE_URL / SUPABASE_ANON_KEY are not set.

Usage:
    python waitlist_stats.py [--source SOURCE] [--newsletter-only] [--since DATE] [--until DATE] [--recent N]

Examples:
    # Overall stats
    python waitlist_stats.py

    # Sign-ups from the hero section since the start of October
    python waitlist_stats.py --source hero_section --since 2026-10-01

    # Show the 5 most recent submissions as well
    python waitlist_stats.py --recent 5
"""

import sys
import os
import argparse
import asyncio

# Add parent directory to path to import services
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from models.forms import CountFilters
from services.submission_service import create_submission_client
from utils.validation import validate_iso_datetime


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Show course waitlist statistics")
    parser.add_argument('--source', help="Only count submissions from this source")
    parser.add_argument('--newsletter-only', action='store_true', help="Only count newsletter subscribers")
    parser.add_argument('--since', help="Inclusive lower bound on submitted_at (ISO date)")
    parser.add_argument('--until', help="Inclusive upper bound on submitted_at (ISO date)")
    parser.add_argument('--recent', type=int, default=0, help="Also list the N most recent submissions")
    return parser.parse_args(argv)


async def collect(args, client):
    filters = CountFilters(
        subscribed_newsletter=True if args.newsletter_only else None,
        source=args.source,
        date_from=validate_iso_datetime(args.since),
        date_to=validate_iso_datetime(args.until),
    )
    count, stats = await asyncio.gather(client.get_count(filters), client.get_stats())
    recent = await client.get_recent_submissions(limit=args.recent) if args.recent > 0 else None
    return count, stats, recent


def main(argv=None, client=None):
    try:
        args = parse_args(argv)
        client = client or create_submission_client()
        count, stats, recent = asyncio.run(collect(args, client))
    except ValueError as e:
        print(f"ERROR: {e}")
        return 2

    print(f"\n{'='*60}")
    if client.is_stub:
        print("Unconfigured mode: showing synthetic data")

    exit_code = 0
    if count.success:
        print(f"Matching submissions: {count.data}")
    else:
        print(f"  ✗ Count failed: {count.error.message}")
        exit_code = 1

    if stats.success:
        print(f"Total: {stats.data.total}")
        print(f"Newsletter subscribers: {stats.data.newsletter_subscribers}")
        print(f"This month: {stats.data.this_month}")
        print("Sources:")
        for source, total in sorted(stats.data.source_breakdown.items(), key=lambda item: -item[1]):
            print(f"  {source}: {total}")
    else:
        print(f"  ✗ Stats failed: {stats.error.message}")
        exit_code = 1

    if recent is not None:
        if recent.success:
            print("Recent submissions:")
            for record in recent.data:
                print(f"  {record.submitted_at}  {record.name} <{record.email}> ({record.source})")
        else:
            print(f"  ✗ Recent submissions failed: {recent.error.message}")
            exit_code = 1
    print(f"{'='*60}")
    return exit_code


if __name__ == '__main__':
    sys.exit(main())
