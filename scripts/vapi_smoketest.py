# scripts/vapi_smoketest.py
"""
Usage:
  python scripts/vapi_smoketest.py [--calls N]

Checks that VAPI_API_KEY can reach Vapi and lists what the key can see.

Notes:
- Reads VAPI_API_KEY / VAPI_BASE_URL / VAPI_TIMEOUT_S like the app.
- Does not touch the database.
"""

from __future__ import annotations

import asyncio
import sys

from services.vapi_client import VapiClient, VapiError, get_default_vapi_client


async def run(vapi: VapiClient, *, calls: int = 0) -> int:
    if not vapi.configured:
        print("VAPI_API_KEY not found in environment variables")
        return 2

    try:
        assistants = await vapi.list_assistants()
    except VapiError as e:
        print(f"Vapi connection failed (status={e.status_code}): {e}")
        return 1

    print(f"Vapi API connection successful: {len(assistants)} assistants")
    for a in assistants:
        print(f"  {a.get('id')}  {a.get('name') or ''}")

    if calls > 0:
        try:
            recent = await vapi.list_calls(limit=calls)
        except VapiError as e:
            print(f"Call listing failed (status={e.status_code}): {e}")
            return 1
        print(f"Recent calls: {len(recent)}")
        for c in recent:
            print(f"  {c.get('id')}  {c.get('status') or ''}  {c.get('endedReason') or ''}")

    return 0


def main() -> int:
    calls = 0
    args = sys.argv[1:]
    if args[:1] == ["--calls"]:
        if len(args) < 2 or not args[1].isdigit():
            print("--calls needs a number")
            return 2
        calls = int(args[1])
    return asyncio.run(run(get_default_vapi_client(), calls=calls))


if __name__ == "__main__":
    raise SystemExit(main())
