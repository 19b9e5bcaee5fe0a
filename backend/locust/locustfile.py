"""
Locust Load Test Suite

Checkout is not part of this service, so seed a few pending orders (with
items and capacity slots) first and pass their numbers in:

  export LOAD_ORDER_NUMBERS=ORD-1,ORD-2,ORD-3
  export GATEWAY_SERVER_KEY=...   # same key the API uses

Run scenarios:
  locust -f locustfile.py --tags duplicates   # Same notification from many workers
  locust -f locustfile.py --tags ordering     # Stale pending after paid
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from locust import HttpUser, task, between, tag, events

from ticketing.services.gateway import compute_signature

SERVER_KEY = os.environ.get("GATEWAY_SERVER_KEY", "gateway-server-key-change-in-production")
ORDER_NUMBERS = [n for n in os.environ.get("LOAD_ORDER_NUMBERS", "").split(",") if n]
GROSS_AMOUNT = os.environ.get("LOAD_GROSS_AMOUNT", "50000.00")


def signed_notification(order_id, transaction_status, status_code="200", gross_amount=GROSS_AMOUNT, fraud_status=None):
    payload = {
        "order_id": order_id,
        "status_code": status_code,
        "gross_amount": gross_amount,
        "transaction_status": transaction_status,
        "signature_key": compute_signature(order_id, status_code, gross_amount, SERVER_KEY),
    }
    if fraud_status:
        payload["fraud_status"] = fraud_status
    return payload


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"SETUP: {len(ORDER_NUMBERS)} seeded orders")
    print("="*60)


class DuplicateDeliveryUser(HttpUser):
    """
    TEST 1: Idempotency - every user delivers the same settlement

    Run: locust -f locustfile.py --tags duplicates -u 100 -r 50 --run-time 30s

    After test, verify per order:
      SELECT COUNT(*) FROM purchased_tickets t JOIN order_items i ON i.id = t.order_item_id
      WHERE i.order_id = X;                       -- equals item count
      SELECT sold_capacity FROM capacity_slots ...; -- grew by item quantity once
    """
    wait_time = between(0, 0.1)

    @tag("duplicates")
    @task
    def deliver_settlement(self):
        if not ORDER_NUMBERS:
            return
        order_id = random.choice(ORDER_NUMBERS)
        with self.client.post("/api/v1/payments/webhook",
            json=signed_notification(order_id, "settlement"),
            name="/api/v1/payments/webhook [settlement]",
            catch_response=True
        ) as resp:
            if resp.status_code == 200:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class OutOfOrderUser(HttpUser):
    """
    TEST 2: Ordering - pending and capture notifications interleaved

    Run: locust -f locustfile.py --tags ordering -u 50 -r 10 --run-time 60s

    Orders must end paid; a late pending never downgrades them.
    """
    wait_time = between(0.05, 0.3)

    @tag("ordering")
    @task(3)
    def deliver_pending(self):
        if ORDER_NUMBERS:
            self.client.post("/api/v1/payments/webhook",
                json=signed_notification(random.choice(ORDER_NUMBERS), "pending", status_code="201"),
                name="/api/v1/payments/webhook [pending]")

    @tag("ordering")
    @task(1)
    def deliver_capture(self):
        if ORDER_NUMBERS:
            self.client.post("/api/v1/payments/webhook",
                json=signed_notification(random.choice(ORDER_NUMBERS), "capture", fraud_status="accept"),
                name="/api/v1/payments/webhook [capture]")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def bad_signature(self):
        payload = signed_notification("ORD-EDGE", "settlement")
        payload["signature_key"] = "0" * 128
        with self.client.post("/api/v1/payments/webhook", json=payload, catch_response=True) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_order(self):
        payload = signed_notification(f"ORD-MISSING-{random.randint(1, 10**9)}", "settlement")
        with self.client.post("/api/v1/payments/webhook", json=payload, catch_response=True) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/payments/webhook",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def bad_time_slot(self):
        with self.client.get("/api/v1/capacity/1/2026-01-01?time_slot=noon", catch_response=True) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")


class MonitoringUser(HttpUser):
    """Background health and metrics scrapes during every scenario."""
    wait_time = between(1, 3)

    @task(5)
    def health_check(self):
        self.client.get("/health")

    @task(1)
    def scrape_metrics(self):
        self.client.get("/metrics")
