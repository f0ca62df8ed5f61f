#!/usr/bin/env python3
"""
run_demo.py - End-to-end demo for the storefront order service
- Mints admin & customer tokens with the shared JWT secret
- Loads the seeded product and walks the flavor/weight selection
- Verifies a coupon, fills the cart and checks out
- Simulates payment, ships the order and posts tracking updates
- Places a second order and cancels it as the customer

Run `scripts/seed.py` first so the demo catalog exists.
"""

import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import jwt


class DemoRunner:
    def __init__(self):
        self.base_url = os.getenv("STOREFRONT_URL", "http://localhost:8000")
        self.jwt_secret = os.getenv("JWT_SECRET", "devsecret")
        self.internal_key = os.getenv("SVC_INTERNAL_KEY", "devkey")

        self.admin_email = "admin@example.com"
        self.cust_email = "cust@example.com"

        self.admin_hdrs = {"Authorization": f"Bearer {self.mint_token(self.admin_email, 'admin')}"}
        self.cust_hdrs = {"Authorization": f"Bearer {self.mint_token(self.cust_email, 'customer')}"}
        self.http = httpx.Client(base_url=self.base_url, timeout=30)

    # ---------- helpers ----------
    def mint_token(self, sub: str, role: str) -> str:
        payload = {
            "sub": sub,
            "role": role,
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm="HS256")

    def show_step(self, title: str):
        print(f"\n=== {title} ===")

    def call_api(
        self,
        method: str,
        path: str,
        headers: Optional[Dict] = None,
        data: Optional[Any] = None,
        params: Optional[Dict] = None,
        expected_status: List[int] = [200, 201],
    ):
        print(f"\n-> {method} {path}")
        if data is not None:
            print(f"   Body: {json.dumps(data, indent=2)}")
        try:
            resp = self.http.request(method, path, headers=headers, json=data, params=params)
        except httpx.HTTPError as e:
            print(f"   Error: \033[91m{e}\033[0m")
            return {"status": None, "data": None, "error": str(e)}

        status_color = "\033[92m" if resp.status_code in expected_status else "\033[93m"
        print(f"   Status: {status_color}{resp.status_code}\033[0m")
        try:
            js = resp.json()
        except json.JSONDecodeError:
            print(f"   Content: {resp.text}")
            return {"status": resp.status_code, "data": None}
        print(json.dumps(js, indent=2))
        return {"status": resp.status_code, "data": js}

    # ---------- flow ----------
    def run_demo(self):
        print("Starting Storefront Order Service Demo")
        print("=" * 50)

        self.show_step("Preflight: health")
        self.call_api("GET", "/storefront/health")

        self.show_step("Catalog: product detail")
        product = self.call_api("GET", "/public/products/whey-protein").get("data") or {}
        if not product.get("id"):
            print("\033[91mDemo catalog missing; run scripts/seed.py\033[0m")
            return
        flavors = {f["name"]: f["id"] for f in product["flavor_options"]}
        default = product["default_selection"]

        self.show_step("Catalog: switch flavor to Chocolate")
        sel = self.call_api(
            "POST",
            f"/public/products/{product['id']}/selection",
            data={"flavor_id": flavors["Chocolate"], "weight_id": default["weight_id"], "changed": "flavor"},
        ).get("data") or {}
        variant = sel.get("variant") or default["variant"]

        self.show_step("Admin: restock the selected variant (X-Internal-Key)")
        self.call_api(
            "POST",
            "/admin/inventory/restock",
            headers={"X-Internal-Key": self.internal_key},
            data={"items": [{"variant_id": variant["id"], "qty": 10}]},
        )

        self.show_step("Customer: verify coupon SAVE10")
        self.call_api(
            "POST",
            "/public/coupons/verify",
            data={"code": "save10", "cart_total_cents": variant["effective_price_cents"] * 2},
            expected_status=[200, 400],
        )

        self.show_step("Customer: add to cart")
        self.call_api("POST", "/cart/items", headers=self.cust_hdrs, data={"variant_id": variant["id"], "qty": 2})

        self.show_step("Customer: checkout")
        shipping_body = {
            "full_name": "Demo Customer",
            "address_line1": "1 Demo Street",
            "city": "Bengaluru",
            "state": "KA",
            "country": "IN",
            "postcode": "560001",
            "coupon_code": "SAVE10",
        }
        co = self.call_api("POST", "/payment/orders/checkout", headers=self.cust_hdrs, data=shipping_body)
        order_id = (co.get("data") or {}).get("order_id")
        if not order_id:
            print("Skipping fulfilment - no order")
            return

        self.show_step("Admin: mark paid, then ship")
        status_url = f"/admin/orders/{order_id}/status"
        self.call_api("PUT", status_url, headers=self.admin_hdrs, data={"status": "PAID", "notes": "Demo payment"})
        self.call_api("PUT", status_url, headers=self.admin_hdrs, data={"status": "SHIPPED", "carrier": "Delhivery"})

        self.show_step("Admin: tracking updates")
        tracking_url = f"/admin/orders/{order_id}/tracking"
        self.call_api("PUT", tracking_url, headers=self.admin_hdrs,
                      data={"status": "IN_TRANSIT", "location": "Bengaluru hub"})
        self.call_api("PUT", tracking_url, headers=self.admin_hdrs,
                      data={"status": "DELIVERED", "location": "Front door"})

        self.show_step("Customer: order page")
        self.call_api("GET", f"/payment/orders/{order_id}", headers=self.cust_hdrs)

        self.show_step("Customer: second order, then cancel it twice")
        self.call_api("POST", "/cart/items", headers=self.cust_hdrs, data={"variant_id": variant["id"], "qty": 1})
        co2 = self.call_api("POST", "/payment/orders/checkout", headers=self.cust_hdrs,
                            data={k: v for k, v in shipping_body.items() if k != "coupon_code"})
        second_id = (co2.get("data") or {}).get("order_id")
        if second_id:
            cancel_url = f"/payment/orders/{second_id}/cancel"
            self.call_api("POST", cancel_url, headers=self.cust_hdrs, data={"reason": "changed mind"})
            self.call_api("POST", cancel_url, headers=self.cust_hdrs, data={"reason": "changed mind"},
                          expected_status=[409])

        self.show_step("Admin: weekly stats")
        self.call_api("GET", "/admin/orders/stats", headers=self.admin_hdrs, params={"period": "week"})

        print("\n\033[92m=== DEMO COMPLETE ===\033[0m")


if __name__ == "__main__":
    DemoRunner().run_demo()
