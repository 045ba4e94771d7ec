"""
Chaos Simulation Script

Drives the payment flow against a running API with high concurrency:
orders are created, paid with a random method, and bank transfers receive
several duplicate gateway callbacks at once. Afterwards every order is
checked for a consistent final state.

Run from project root (API in development mode): python scripts/simulate.py
"""

import asyncio
import sys
import random
import time
import argparse
from collections import Counter
from datetime import datetime
from typing import Any, Optional

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
DUPLICATE_CALLBACKS = 5

MENU_ITEMS = [
    {"name": "Iced Latte", "unitPrice": 45000},
    {"name": "Cold Brew", "unitPrice": 50000},
    {"name": "Matcha Latte", "unitPrice": 55000},
    {"name": "Croissant", "unitPrice": 30000},
    {"name": "Banh Mi", "unitPrice": 35000},
    {"name": "Cheesecake", "unitPrice": 40000},
]
PAYMENT_METHODS = ["cash", "bank-transfer", "bank-transfer", "internal"]
GATEWAY_OUTCOMES = ["COMPLETED", "COMPLETED", "COMPLETED", "FAILED", "CANCELLED"]


def generate_random_items() -> list[dict]:
    """Generate random order items."""
    items = []
    for _ in range(random.randint(1, 4)):
        item = random.choice(MENU_ITEMS).copy()
        item["quantity"] = random.randint(1, 3)
        items.append(item)
    return items


def generate_callback_payload(transaction_id: str, status: str) -> dict[str, Any]:
    """Gateway callback envelope for one transaction."""
    return {
        "requestTrace": f"sim-{random.randint(100000, 999999)}",
        "requestDateTime": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "requestParameters": {
            "request": {
                "requestParams": {
                    "transactions": [
                        {
                            "transactionEntityAttribute": {"traceNumber": transaction_id},
                            "transactionStatus": status,
                        }
                    ]
                }
            }
        },
    }


async def create_owner(client: httpx.AsyncClient) -> Optional[str]:
    """Create a user with a large balance for internal payments."""
    response = await client.post(
        f"{API_BASE_URL}/users",
        json={"name": "Simulation Owner", "balance": 1_000_000_000},
    )
    if response.status_code != 201:
        return None
    return response.json()["slug"]


# =============================================================================
# SINGLE ORDER FLOW
# =============================================================================

async def run_order_flow(
    client: httpx.AsyncClient,
    order_num: int,
    owner_slug: Optional[str],
) -> dict[str, Any]:
    """Create an order, pay for it and, for bank transfers, replay callbacks."""
    method = random.choice(PAYMENT_METHODS)
    result: dict[str, Any] = {"order_num": order_num, "method": method, "success": False}
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/orders",
            json={
                "ownerSlug": owner_slug if method == "internal" else None,
                "items": generate_random_items(),
            },
            timeout=30.0,
        )
        response.raise_for_status()
        order = response.json()
        result["order_slug"] = order["slug"]
        result["subtotal"] = order["subtotal"]

        response = await client.post(
            f"{API_BASE_URL}/payments",
            json={"orderSlug": order["slug"], "paymentMethod": method},
            timeout=30.0,
        )
        if response.status_code != 201:
            result["error"] = response.text[:100]
            return result
        payment = response.json()
        result["payment_slug"] = payment["slug"]

        expected = "paid"
        if method == "bank-transfer":
            outcome = random.choice(GATEWAY_OUTCOMES)
            result["outcome"] = outcome
            acks = await asyncio.gather(*[
                client.post(
                    f"{API_BASE_URL}/payments/callback",
                    json=generate_callback_payload(payment["transactionId"], outcome),
                    timeout=30.0,
                )
                for _ in range(DUPLICATE_CALLBACKS)
            ])
            references = {ack.json()["responseBody"]["referenceCode"] for ack in acks if ack.status_code == 200}
            if references != {payment["slug"]}:
                result["error"] = f"Unexpected acknowledgements: {references}"
                return result
            expected = "paid" if outcome == "COMPLETED" else "pending"

        response = await client.get(f"{API_BASE_URL}/orders/{order['slug']}", timeout=30.0)
        status = response.json()["status"]
        result["status"] = status
        result["success"] = status == expected
        if not result["success"]:
            result["error"] = f"Order {order['slug']} is {status}, expected {expected}"

    except Exception as e:
        result["error"] = str(e)[:100]

    result["time"] = round(time.time() - start_time, 3)
    return result


# =============================================================================
# CHAOS SIMULATION
# =============================================================================

async def run_chaos_simulation(num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """
    Fire ``num_orders`` payment flows concurrently and report the outcome.
    """
    print("=" * 70)
    print("🔥 CHAOS SIMULATION - PAYMENT RECONCILIATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🔁 Duplicate callbacks per bank transfer: {DUPLICATE_CALLBACKS}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        owner_slug = await create_owner(client)
        if owner_slug is None:
            print("⚠️ Could not create owner; internal payments will fail")

        tasks = [run_order_flow(client, i + 1, owner_slug) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Consistent Orders: {len(successful)}/{num_orders}")
    print(f"❌ Inconsistent Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    by_method = Counter(r["method"] for r in results)
    for method, count in sorted(by_method.items()):
        ok = len([r for r in successful if r["method"] == method])
        print(f"   {method}: {ok}/{count}")

    timed = [r for r in successful if "time" in r]
    if timed:
        avg_time = round(sum(r["time"] for r in timed) / len(timed), 3)
        print(f"\n📈 Average flow time: {avg_time}s")

    if failed:
        print("\n⚠️  Failure details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']} [{f['method']}]: {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def check_health() -> bool:
    """Pre-flight health check."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   ❌ API unreachable: {e}")
            return False

    data = response.json()
    print(f"   Status: {data.get('status')}")
    print(f"   Database: {data.get('database')}")
    print(f"   Redis: {data.get('redis')}")
    print(f"   Gateway: {data.get('gateway')}")
    return data.get("database") == "healthy"


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Payment Chaos Simulation")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url

    print("\n🧪 Pre-flight health check...")
    if not asyncio.run(check_health()):
        print("\n❌ Pre-flight check failed. Start the API first.")
        sys.exit(1)

    summary = asyncio.run(run_chaos_simulation(args.orders))
    sys.exit(0 if summary["failed"] == 0 else 1)
