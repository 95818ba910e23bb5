"""
Golden-set runner against a live agent server.

Start the API first (python -m ghostfolio_agent.main), then:
    python evals/run_golden_sets.py [base_url]

Each case in evals/golden_sets.yaml may declare expected_tools,
must_contain, must_contain_one_of, must_not_contain, min_confidence and
max_latency. Results are written to evals/golden_results.json.
"""

import asyncio
import json
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

import httpx
import yaml

HERE = Path(__file__).parent
BASE = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
DEFAULT_LATENCY_LIMIT = 30.0


def evaluate(case: dict, data: dict, elapsed: float) -> list[str]:
    failures = []
    response_text = data.get("message", "").lower()
    tools_used = [c["tool_name"] for c in data.get("tool_calls", [])]

    for tool in case.get("expected_tools", []):
        if tool not in tools_used:
            failures.append(f"TOOL SELECTION: expected '{tool}', got {tools_used}")

    for phrase in case.get("must_contain", []):
        if phrase.lower() not in response_text:
            failures.append(f"CONTENT: missing required phrase '{phrase}'")

    one_of = case.get("must_contain_one_of", [])
    if one_of and not any(p.lower() in response_text for p in one_of):
        failures.append(f"CONTENT: must contain one of {one_of}")

    for phrase in case.get("must_not_contain", []):
        if phrase.lower() in response_text:
            failures.append(f"NEGATIVE: contains forbidden phrase '{phrase}'")

    min_confidence = case.get("min_confidence")
    if min_confidence is not None and data.get("confidence", 0) < min_confidence:
        failures.append(f"CONFIDENCE: {data.get('confidence')} below {min_confidence}")

    limit = case.get("max_latency", DEFAULT_LATENCY_LIMIT)
    if elapsed > limit:
        failures.append(f"LATENCY: {elapsed:.1f}s exceeded {limit}s")
    return failures


async def run_check(client: httpx.AsyncClient, case: dict) -> dict:
    start = time.time()
    try:
        resp = await client.post(
            f"{BASE}/chat",
            json={"message": case["query"], "history": case.get("history", [])},
            timeout=DEFAULT_LATENCY_LIMIT + 5,
        )
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        return {
            "id": case["id"],
            "category": case.get("category", ""),
            "passed": False,
            "failures": [f"EXCEPTION: {e}"],
            "latency": 0,
            "tools_used": [],
        }

    elapsed = time.time() - start
    failures = evaluate(case, data, elapsed)
    return {
        "id": case["id"],
        "category": case.get("category", ""),
        "passed": not failures,
        "latency": round(elapsed, 2),
        "confidence": data.get("confidence"),
        "tools_used": [c["tool_name"] for c in data.get("tool_calls", [])],
        "failures": failures,
        "query": case["query"][:60],
    }


async def main():
    with open(HERE / "golden_sets.yaml") as f:
        golden = yaml.safe_load(f)

    print("=" * 60)
    print("GHOSTFOLIO AGENT — GOLDEN SETS")
    print("=" * 60)

    results = []
    async with httpx.AsyncClient() as client:
        for case in golden:
            r = await run_check(client, case)
            results.append(r)
            status = "PASS" if r["passed"] else "FAIL"
            print(f"{status} | {r['id']} | {r.get('latency', 0):.1f}s | tools: {r.get('tools_used', [])}")
            for failure in r["failures"]:
                print(f"       -> {failure}")

    passed = sum(r["passed"] for r in results)
    print(f"\nGOLDEN SETS: {passed}/{len(results)} passed")

    by_category = {}
    for r in results:
        by_category.setdefault(r.get("category") or "uncategorized", []).append(r["passed"])
    for category, outcomes in sorted(by_category.items()):
        print(f"  {category:20}: {sum(outcomes)}/{len(outcomes)}")

    with open(HERE / "golden_results.json", "w") as f:
        json.dump({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "base_url": BASE,
            "golden_sets": results,
            "summary": {"golden_pass_rate": f"{passed}/{len(results)}"},
        }, f, indent=2)
    print("Results -> evals/golden_results.json")
    return passed == len(results)


if __name__ == "__main__":
    sys.exit(0 if asyncio.run(main()) else 1)
