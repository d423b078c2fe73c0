#!/usr/bin/env python3
# =============================================================================
# Load Testing Script
# =============================================================================
"""
Load test for the ONDC On-Search Adapter.

Replays network-shaped traffic against /on-search:
- Heavy RET11 on_search catalogs (configurable item count)
- Small RET18 search requests
- A share of deliberately invalid payloads, which must come back 4xx

Usage:
    python load_test.py --url http://localhost:8080 --rpm 600 --duration 60 --items 2000

Requirements:
    pip install httpx
"""

import argparse
import asyncio
import json
import random
import string
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import httpx


# =============================================================================
# Configuration
# =============================================================================

CITIES = ["std:080", "std:011", "std:022", "std:044", "std:033"]

DISHES = [
    "Masala Dosa", "Idli Vada", "Paneer Tikka", "Veg Biryani", "Filter Coffee",
    "Chole Bhature", "Pav Bhaji", "Rava Upma", "Gulab Jamun", "Lassi",
]

SEARCH_TERMS = ["vitamin c", "paracetamol", "hand sanitizer", "protein powder", "bandage"]


@dataclass
class TestResult:
    """Result of a single test request."""
    success: bool
    status_code: int
    latency_ms: float
    kind: str
    size_bytes: int
    error: Optional[str] = None


# =============================================================================
# Test Data Generation
# =============================================================================

def _random_id(k: int = 12) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=k))


def _context(domain: str, action: str) -> dict:
    context = {
        "domain": domain,
        "action": action,
        "country": "IND",
        "city": random.choice(CITIES),
        "core_version": "1.2.0",
        "bap_id": "buyer.loadtest.example",
        "bap_uri": "https://buyer.loadtest.example/ondc",
        "transaction_id": str(uuid.uuid4()),
        "message_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "ttl": "PT30S",
    }
    if action.startswith("on_"):
        context["bpp_id"] = "seller.loadtest.example"
        context["bpp_uri"] = "https://seller.loadtest.example/ondc"
    return context


def generate_on_search(item_count: int) -> dict:
    """Generate a RET11 on_search catalog with ``item_count`` items."""
    items = [
        {
            "id": f"I{i}",
            "descriptor": {"name": random.choice(DISHES), "short_desc": _random_id(40)},
            "price": {"currency": "INR", "value": f"{random.randint(20, 900)}.00"},
            "quantity": {"available": {"count": "99"}, "maximum": {"count": "5"}},
            "category_id": "F&B",
            "fulfillment_id": "1",
            "location_id": "L1",
            "@ondc/org/returnable": False,
            "@ondc/org/cancellable": True,
            "@ondc/org/available_on_cod": False,
        }
        for i in range(item_count)
    ]
    return {
        "context": _context("ONDC:RET11", "on_search"),
        "message": {
            "catalog": {
                "bpp/fulfillments": [{"id": "1", "type": "Delivery"}],
                "bpp/descriptor": {"name": "Load Test Kitchens"},
                "bpp/providers": [
                    {
                        "id": f"P{_random_id(6)}",
                        "descriptor": {"name": "Load Test Kitchen"},
                        "locations": [{"id": "L1", "gps": "12.9716,77.5946"}],
                        "items": items,
                    }
                ],
            }
        },
    }


def generate_search() -> dict:
    """Generate a RET18 search request."""
    return {
        "context": _context("ONDC:RET18", "search"),
        "message": {
            "intent": {
                "item": {"descriptor": {"name": random.choice(SEARCH_TERMS)}},
                "fulfillment": {"type": "Delivery"},
            }
        },
    }


def generate_invalid() -> dict:
    """Generate a payload the adapter must reject."""
    payload = generate_on_search(1)
    if random.random() < 0.5:
        del payload["context"]["transaction_id"]
    else:
        del payload["message"]["catalog"]["bpp/providers"]
    return payload


# =============================================================================
# Load Test Runner
# =============================================================================

async def send_request(
    client: httpx.AsyncClient,
    url: str,
    kind: str,
    item_count: int,
) -> TestResult:
    """Send a single request to the adapter."""
    if kind == "on_search":
        body = json.dumps(generate_on_search(item_count)).encode()
    elif kind == "search":
        body = json.dumps(generate_search()).encode()
    else:
        body = json.dumps(generate_invalid()).encode()

    try:
        start = time.perf_counter()
        response = await client.post(
            f"{url}/on-search",
            content=body,
            headers={"Content-Type": "application/json"},
        )
        latency = (time.perf_counter() - start) * 1000

        expected = 400 <= response.status_code < 500 if kind == "invalid" else response.status_code == 202
        return TestResult(
            success=expected,
            status_code=response.status_code,
            latency_ms=latency,
            kind=kind,
            size_bytes=len(body),
        )

    except httpx.HTTPError as e:
        return TestResult(
            success=False,
            status_code=0,
            latency_ms=0,
            kind=kind,
            size_bytes=len(body),
            error=f"{type(e).__name__}: {e}",
        )


def choose_kind(invalid_ratio: float) -> str:
    roll = random.random()
    if roll < invalid_ratio:
        return "invalid"
    return "on_search" if roll < invalid_ratio + (1 - invalid_ratio) / 2 else "search"


async def run_load_test(
    url: str,
    rpm: int,
    duration_seconds: int,
    item_count: int,
    invalid_ratio: float,
) -> List[TestResult]:
    """Run the load test."""
    results: List[TestResult] = []
    interval = 60.0 / rpm

    print(f"\n{'='*60}")
    print("ONDC On-Search Adapter Load Test")
    print(f"{'='*60}")
    print(f"Target URL: {url}")
    print(f"Target RPM: {rpm}")
    print(f"Duration: {duration_seconds} seconds")
    print(f"Catalog items per on_search: {item_count}")
    print(f"Invalid payload ratio: {invalid_ratio:.0%}")
    print(f"{'='*60}\n")

    async with httpx.AsyncClient(timeout=60.0) as client:
        start_time = time.perf_counter()
        pending = []

        while (time.perf_counter() - start_time) < duration_seconds:
            kind = choose_kind(invalid_ratio)
            pending.append(asyncio.create_task(send_request(client, url, kind, item_count)))

            if len(pending) % 100 == 0:
                done = [t.result() for t in pending if t.done()]
                elapsed = time.perf_counter() - start_time
                success_rate = sum(1 for r in done if r.success) / len(done) * 100 if done else 0
                print(f"  Sent {len(pending)} requests | "
                      f"Actual RPM: {len(pending) / elapsed * 60:.0f} | "
                      f"Success: {success_rate:.1f}%")

            await asyncio.sleep(interval)

        results = list(await asyncio.gather(*pending))

    return results


def _percentile(values: List[float], q: float) -> float:
    if not values:
        return 0
    ordered = sorted(values)
    return ordered[min(int(len(ordered) * q), len(ordered) - 1)]


def print_results(results: List[TestResult]) -> None:
    """Print test results summary."""
    total = len(results)
    if not total:
        print("No requests sent.")
        return

    successful = sum(1 for r in results if r.success)
    latencies = [r.latency_ms for r in results if r.status_code]

    status_counts = {}
    kind_counts = {}
    for r in results:
        status_counts[r.status_code] = status_counts.get(r.status_code, 0) + 1
        kind_counts[r.kind] = kind_counts.get(r.kind, 0) + 1

    largest = max(r.size_bytes for r in results)

    print(f"\n{'='*60}")
    print("RESULTS SUMMARY")
    print(f"{'='*60}")
    print(f"\nTotal Requests:     {total}")
    print(f"As expected:        {successful} ({successful/total*100:.1f}%)")
    print(f"Unexpected:         {total - successful} ({(total - successful)/total*100:.1f}%)")
    print(f"Largest payload:    {largest / 1024:.1f} KiB")
    print("\nLatency (ms):")
    print(f"  Average:          {sum(latencies) / len(latencies) if latencies else 0:.1f}")
    print(f"  p50:              {_percentile(latencies, 0.50):.1f}")
    print(f"  p95:              {_percentile(latencies, 0.95):.1f}")
    print(f"  p99:              {_percentile(latencies, 0.99):.1f}")
    print("\nPayload Distribution:")
    for kind, count in sorted(kind_counts.items()):
        print(f"  {kind}: {count} ({count/total*100:.1f}%)")
    print("\nStatus Codes:")
    for code, count in sorted(status_counts.items()):
        print(f"  {code or 'no response'}: {count}")

    errors = [r for r in results if r.error]
    if errors:
        print(f"\nErrors ({len(errors)}):")
        error_types = {}
        for r in errors:
            error_types[r.error] = error_types.get(r.error, 0) + 1
        for error, count in error_types.items():
            print(f"  {error}: {count}")

    print(f"\n{'='*60}")
    if successful / total >= 0.99:
        print("PASS: >99% of responses as expected")
    else:
        print("FAIL: <99% of responses as expected")
    print(f"{'='*60}\n")


# =============================================================================
# Main
# =============================================================================

def main():
    parser = argparse.ArgumentParser(description="Load test for the ONDC On-Search Adapter")
    parser.add_argument("--url", required=True, help="Base URL of the adapter")
    parser.add_argument("--rpm", type=int, default=600, help="Requests per minute")
    parser.add_argument("--duration", type=int, default=60, help="Test duration in seconds")
    parser.add_argument("--items", type=int, default=500, help="Catalog items per on_search payload")
    parser.add_argument("--invalid-ratio", type=float, default=0.1, help="Share of invalid payloads")

    args = parser.parse_args()

    url = args.url.rstrip("/")

    results = asyncio.run(
        run_load_test(url, args.rpm, args.duration, args.items, args.invalid_ratio)
    )

    print_results(results)


if __name__ == "__main__":
    main()
