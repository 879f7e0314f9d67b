"""
Smoke check for a running Guest Check-in Backend
================================================
Prints health, stats and a sample guest search.

    checkin-verify --url http://localhost:8000 --query smith
"""

import argparse
import asyncio
import sys

from .backend_client import CheckinClient, DEFAULT_BACKEND_URL


async def verify(backend_url: str, query: str, db_path: str = None) -> bool:
    print("=" * 60)
    print("Guest Check-in Backend Check")
    print("=" * 60)

    async with CheckinClient(backend_url, db_path=db_path) as client:
        print("\n[1] Health check...")
        health = await client.health_check()
        if health.get('status') != 'online':
            print(f"    [X] Backend is offline: {health.get('error', 'Unknown error')}")
            return False
        print(f"    [OK] Backend is online (timezone {health.get('timezone')})")

        print("\n[2] Stats...")
        stats = await client.stats()
        if isinstance(stats, dict) and stats.get('success') is False:
            print(f"    [X] {stats.get('message')}: {stats.get('error')}")
            return False
        print(f"    Guests: {stats['total_guests']}")
        print(f"    Check-ins: {stats['total_check_ins']}, check-outs: {stats['total_check_outs']}")
        print(f"    Present now: {stats['currently_present']}")
        for host in stats['top_hosts']:
            print(f"    - {host['member_host']}: {host['present_guests']}/{host['total_guests']}")

        print(f"\n[3] Guest search {query!r}...")
        guests = await client.search_guests(query, limit=10)
        if isinstance(guests, dict):
            print(f"    [X] {guests.get('message')}: {guests.get('error')}")
            return False
        for guest in guests:
            state = "IN" if guest['is_checked_in'] else "out"
            print(f"    - [{state}] {guest['display_name']} ({guest.get('member_host') or 'no host'})")

    print("\n" + "=" * 60)
    print("All checks passed!")
    print("=" * 60)
    return True


def main():
    parser = argparse.ArgumentParser(description="Check a running Guest Check-in Backend")
    parser.add_argument("--url", type=str, default=DEFAULT_BACKEND_URL, help="Backend base URL")
    parser.add_argument("--query", type=str, default="", help="Guest search query")
    parser.add_argument("--db", type=str, default=None, help="Database path on the backend")

    args = parser.parse_args()
    success = asyncio.run(verify(args.url, args.query, args.db))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
