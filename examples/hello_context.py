"""
context_store — Hello World

Every scope is its own collection. Values can be anything serializable,
including plain function literals, which come back as callables.
"""

import asyncio

from context_store import ContextStore

# ─── Scopes the runtime still considers live ───

ACTIVE_FLOWS = ["flow-1"]


def on_get(error, *values) -> None:
    if error:
        print(f"  [ERROR] {error}")
    else:
        print(f"  callback received {values}")


async def main():
    # ──────────────────────────────────────
    #  1. Open the store (in-memory here; use "mongodb" or "sqlite" for real runs)
    # ──────────────────────────────────────
    store = ContextStore({"backend": "memory"})
    await store.open()

    # ──────────────────────────────────────
    #  2. Plain values and function values
    # ──────────────────────────────────────
    print("=== set / get ===\n")

    await store.set("global", "greeting", "hello")
    await store.set("flow-1", ["double", "limit"], [lambda x: x * 2, 10])

    double, limit = await store.get("flow-1", ["double", "limit"])
    print(f"  double(limit) = {double(limit)}")

    await store.get("global", "greeting", on_get)

    # ──────────────────────────────────────
    #  3. Padding: more keys than values
    # ──────────────────────────────────────
    print("\n=== padding ===\n")

    await store.set("flow-2", ["a", "b"], [1])
    print(f"  flow-2 keys: {sorted(await store.keys('flow-2'))}")
    print(f"  flow-2 b:    {await store.get('flow-2', 'b')}")

    # ──────────────────────────────────────
    #  4. Clean up scopes that are no longer active
    # ──────────────────────────────────────
    print("\n=== clean ===\n")

    swept = await store.clean(["global", *ACTIVE_FLOWS])
    print(f"  swept: {swept}")
    print(f"  flow-2 keys after clean: {await store.keys('flow-2')}")

    await store.close()


if __name__ == "__main__":
    asyncio.run(main())
