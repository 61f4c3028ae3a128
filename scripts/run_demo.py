#!/usr/bin/env python3
"""
run_demo.py - End-to-end walkthrough against a running order service
- Mints customer and staff access tokens (same secret as the identity provider)
- Customer creates an order with the demo voucher, then edits a line item
- Staff marks the order PAID (stock taken) and then CANCELLED (stock restored)
- Shows the rejected cases: owner editing a PAID order, an invalid transition

Run scripts/seed.py first so the demo variants and voucher exist.
"""

import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import jwt
import requests

class DemoRunner:
    def __init__(self):
        self.base_url = os.getenv("ORDER_BASE", "http://localhost:8000")
        self.order_url = f"{self.base_url}/order/v1"
        self.jwt_secret = os.getenv("JWT_SECRET", "devsecret")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")

        self.cust_token = self.mint_token(user_id=1001, role="USER")
        self.staff_token = self.mint_token(user_id=1, role="STAFF")

    # ---------- helpers ----------
    def mint_token(self, user_id: int, role: str) -> str:
        exp = datetime.now(timezone.utc) + timedelta(minutes=15)
        payload = {"sub": str(user_id), "role": role, "exp": exp, "type": "access"}
        return jwt.encode(payload, self.jwt_secret, algorithm=self.jwt_algorithm)

    def show_step(self, title: str):
        print(f"\n=== {title} ===")

    def auth(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def call_api(
        self,
        method: str,
        url: str,
        headers: Optional[Dict] = None,
        data: Optional[Any] = None,
        expected_status: List[int] = [200, 201],
        timeout: int = 30,
    ):
        print(f"\n-> {method} {url}")
        if data is not None:
            print(f"   Body: {json.dumps(data, indent=2)}")
        try:
            resp = requests.request(method=method, url=url, headers=headers, json=data, timeout=timeout)
        except requests.exceptions.RequestException as e:
            print(f"   Error: \033[91m{e}\033[0m")
            return {"status": None, "data": None}
        status_color = "\033[92m" if resp.status_code in expected_status else "\033[93m"
        print(f"   Status: {status_color}{resp.status_code}\033[0m")
        try:
            js = resp.json()
        except ValueError:
            js = None
        if js is not None:
            print(json.dumps(js, indent=2))
        return {"status": resp.status_code, "data": js}

    # ---------- flow ----------
    def run_demo(self):
        print("Starting Order Service Demo")
        print("=" * 50)

        self.show_step("Preflight: health")
        self.call_api("GET", f"{self.base_url}/order/health")

        self.show_step("Catalog vouchers (public)")
        self.call_api("GET", f"{self.order_url}/vouchers")

        self.show_step("Customer: create order with voucher")
        created = self.call_api(
            "POST",
            f"{self.order_url}/orders",
            headers=self.auth(self.cust_token),
            data={
                "items": [{"variant_id": 1, "qty": 2}, {"variant_id": 2, "qty": 1}],
                "voucher_code": "WELCOME80",
                "customer_name": "Demo Customer",
                "phone": "000-000",
                "address": "1 Demo Street",
            },
            expected_status=[201],
        )
        order = created.get("data") or {}
        order_id = order.get("id")
        if not order_id:
            print("Order creation failed; is the database seeded?")
            return

        self.show_step("Customer: bump quantity on first line")
        first_item = order["items"][0]["id"]
        self.call_api("PUT", f"{self.order_url}/orders/{order_id}/items/{first_item}",
                      headers=self.auth(self.cust_token), data={"qty": 3})

        self.show_step("Staff: mark PAID (takes stock)")
        self.call_api("PUT", f"{self.order_url}/orders/{order_id}/status",
                      headers=self.auth(self.staff_token), data={"status": "PAID"})

        self.show_step("Customer: edit PAID order (expect 403)")
        self.call_api("PUT", f"{self.order_url}/orders/{order_id}/items/{first_item}",
                      headers=self.auth(self.cust_token), data={"qty": 1}, expected_status=[403])

        self.show_step("Staff: PAID -> PENDING (expect invalid_status)")
        self.call_api("PUT", f"{self.order_url}/orders/{order_id}/status",
                      headers=self.auth(self.staff_token), data={"status": "PENDING"}, expected_status=[400])

        self.show_step("Staff: mark CANCELLED (restores stock)")
        self.call_api("PUT", f"{self.order_url}/orders/{order_id}/status",
                      headers=self.auth(self.staff_token), data={"status": "CANCELLED"})

        self.show_step("Customer: my orders")
        self.call_api("GET", f"{self.order_url}/orders/my", headers=self.auth(self.cust_token))

        print("\nDemo complete.")

if __name__ == "__main__":
    DemoRunner().run_demo()
