#!/usr/bin/env python3
"""Live trace.moe verification script — needs outbound network access.

Usage:
  python scripts/verify_trace_moe.py [IMAGE_URL]

Steps:
  Step 1: Show configuration
  Step 2: Single trace.moe request by URL
  Step 3: Router search (validate, retry, rank)
  Step 4: Same search again, must be served from cache
  Step 5: Cancel an in-flight search
"""

import asyncio
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

SAMPLE_IMAGE_URL = "https://images.plurk.com/32B15UXxymfSMwKGTObY5e.jpg"


def step_header(n: int, title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  Step {n}: {title}")
    print(f"{'='*60}\n")


def ok(msg: str) -> None:
    print(f"  ✅ {msg}")


def fail(msg: str) -> None:
    print(f"  ❌ {msg}")


def info(msg: str) -> None:
    print(f"  ℹ️  {msg}")


async def step1_show_config():
    step_header(1, "Configuration")
    from sauce_finder.config import settings

    ok(f"Service: {settings.trace_moe_base_url}")
    ok(f"Timeout: {settings.request_timeout_seconds}s | attempts: {settings.search_max_attempts}")
    ok(f"Cache: ttl={settings.cache_ttl_seconds}s max={settings.cache_max_entries}")
    ok(f"History backend: {settings.history_backend}")
    return True


async def step2_single_request(image_url: str):
    step_header(2, "trace.moe /search by URL")
    from sauce_finder.errors import SearchError
    from sauce_finder.integrations.trace_moe import TraceMoeClient
    from sauce_finder.orchestrator.schemas import UrlSource

    info(f"Image: {image_url}")
    try:
        matches = await TraceMoeClient().search(UrlSource(url=image_url))
    except SearchError as e:
        fail(f"{type(e).__name__}: {e}")
        return False

    if matches:
        ok(f"Got {len(matches)} matches")
        for m in matches[:3]:
            print(f"    - {m.similarity:.3f} | {m.filename} | ep {m.episode}")
        return True
    fail("No matches returned")
    return False


async def step3_router_search(router, image_url: str):
    step_header(3, "Router search")
    from sauce_finder.errors import SearchError
    from sauce_finder.orchestrator.schemas import UrlSource

    try:
        outcome = await router.route(UrlSource(url=image_url))
    except SearchError as e:
        fail(f"{type(e).__name__} after {e.attempts} attempts: {e}")
        return False

    ok(f"Ranked {len(outcome.results)}/{outcome.raw_count} | attempts={outcome.attempts} | {outcome.search_time_ms}ms")
    for r in outcome.results[:3]:
        print(f"    {r.rank}. {r.title} | {r.similarity_text} ({r.confidence.label})")
        print(f"       {r.episode_text} | {r.timestamp_text}")
    return bool(outcome.results)


async def step4_cached_search(router, image_url: str):
    step_header(4, "Repeat search (cache)")
    from sauce_finder.orchestrator.schemas import UrlSource

    outcome = await router.route(UrlSource(url=image_url))
    if outcome.cache_hit:
        ok(f"Served from cache in {outcome.search_time_ms}ms")
    else:
        fail("Expected a cache hit")
    snap = router.metrics.snapshot()
    info(f"hits={snap.cache_hits} misses={snap.cache_misses} hit_rate={snap.cache_hit_rate}%")
    return outcome.cache_hit


async def step5_cancel(router, image_url: str):
    step_header(5, "Cancel in-flight search")
    from sauce_finder.errors import Cancelled
    from sauce_finder.orchestrator.schemas import UrlSource

    # Distinct URL so the search cannot be answered from cache
    task = asyncio.create_task(router.route(UrlSource(url=f"{image_url}?verify"), slot_id="verify"))
    await asyncio.sleep(0.05)
    router.cancel("verify")
    try:
        await task
    except Cancelled:
        ok("Search cancelled")
        return True
    fail("Search finished before it could be cancelled")
    return False


async def main():
    image_url = sys.argv[1] if len(sys.argv) > 1 else SAMPLE_IMAGE_URL
    print("\n🔎 Sauce Finder — Live trace.moe Verification")
    print("=" * 60)

    from sauce_finder.orchestrator.router import SearchRouter

    router = SearchRouter()
    results = {}

    results[1] = await step1_show_config()
    results[2] = await step2_single_request(image_url)
    results[3] = await step3_router_search(router, image_url)
    results[4] = await step4_cached_search(router, image_url) if results[3] else False
    results[5] = await step5_cancel(router, image_url)

    # Summary
    print(f"\n{'='*60}")
    print("  SUMMARY")
    print(f"{'='*60}")
    for step_n, passed in sorted(results.items()):
        status = "✅ PASS" if passed else "❌ FAIL"
        print(f"  Step {step_n}: {status}")

    total_passed = sum(1 for v in results.values() if v)
    print(f"\n  {total_passed}/{len(results)} steps passed")
    print(f"{'='*60}\n")

    sys.exit(0 if all(results.values()) else 1)


if __name__ == "__main__":
    asyncio.run(main())
