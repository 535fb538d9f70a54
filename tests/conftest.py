"""
Shared fixtures: an in-memory Shopify (Storefront GraphQL + Admin REST) behind httpx.MockTransport,
services wired to it, and a TestClient with the app dependencies overridden.
"""
import itertools
import json
import os
import re

# Settings are read at import time
os.environ.setdefault("ENV", "DEV")
os.environ.setdefault("SHOPIFY_STORE_URL", "test-shop.myshopify.com")
os.environ.setdefault("SHOPIFY_STOREFRONT_ACCESS_TOKEN", "storefront-token")
os.environ.setdefault("SHOPIFY_ADMIN_ACCESS_TOKEN", "admin-token")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("CLIENT_ID", "storefront-web")
os.environ.setdefault("CLIENT_SECRET", "storefront-secret")

import httpx
import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_admin_client, get_cart_service, get_token_manager
from app.services.cart_service import CartService
from app.services.shopify_admin import ShopifyAdminClient
from app.services.storefront import StorefrontClient
from app.services.token_manager import TokenCache, TokenManager

STORE = "test-shop.myshopify.com"

VARIANTS = {
    "gid://shopify/ProductVariant/1": {"title": "Small", "price": "10.00", "product": "Linen Shirt"},
    "gid://shopify/ProductVariant/2": {"title": "Medium", "price": "12.50", "product": "Linen Shirt"},
    "gid://shopify/ProductVariant/3": {"title": "Default Title", "price": "4.00", "product": "Canvas Tote"},
    "gid://shopify/ProductVariant/4": {"title": "Default Title", "price": "25.00", "product": "Wool Scarf"},
}

OPERATION_RE = re.compile(r"(?:query|mutation)\s+(\w+)")


def _money(amount: float) -> dict:
    return {"amount": f"{amount:.2f}", "currencyCode": "USD"}


class FakeShopify:
    """Just enough of Shopify for the cart and customer flows. Every request is recorded in `calls`."""

    def __init__(self):
        self.carts: dict[str, dict] = {}
        self.customers: dict[int, dict] = {
            42: {
                "id": 42,
                "email": "ada@example.com",
                "first_name": "Ada",
                "last_name": "Lovelace",
                "phone": None,
                "orders_count": 3,
                "total_spent": "120.00",
                "verified_email": True,
                "default_address": None,
            },
            7: {"id": 7, "email": "guest@example.com", "first_name": "", "last_name": ""},
        }
        self.metafields: dict[int, list[dict]] = {42: [], 7: []}
        self.addresses: dict[int, dict[int, dict]] = {42: {}, 7: {}}
        self.fail_metafield_writes = False
        self.graphql_errors = None
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        if request.url.path.endswith("/graphql.json"):
            return self._graphql(body)
        return self._admin(request.method, request.url.path, body)

    # ---- Storefront GraphQL ----

    def _graphql(self, body: dict) -> httpx.Response:
        operation = OPERATION_RE.search(body["query"]).group(1)
        self.calls.append(("graphql", operation))
        if self.graphql_errors:
            return httpx.Response(200, json={"errors": [{"message": self.graphql_errors}]})
        variables = body.get("variables") or {}
        data = getattr(self, f"_op_{operation}")(variables)
        return httpx.Response(200, json={"data": data})

    def cart_payload(self, cart_id: str) -> dict:
        cart = self.carts[cart_id]
        edges = []
        subtotal = 0.0
        for line in cart["lines"]:
            variant = VARIANTS[line["variant_id"]]
            line_total = float(variant["price"]) * line["quantity"]
            subtotal += line_total
            edges.append({
                "node": {
                    "id": line["id"],
                    "quantity": line["quantity"],
                    "merchandise": {
                        "id": line["variant_id"],
                        "title": variant["title"],
                        "priceV2": _money(float(variant["price"])),
                        "image": None,
                        "product": {
                            "id": line["variant_id"].replace("ProductVariant", "Product"),
                            "title": variant["product"],
                            "handle": variant["product"].lower().replace(" ", "-"),
                            "featuredImage": {"url": "https://cdn.example.com/p.jpg", "altText": None},
                        },
                    },
                    "cost": {"totalAmount": _money(line_total)},
                }
            })
        return {
            "id": cart_id,
            "checkoutUrl": cart["checkout_url"],
            "createdAt": "2026-01-01T00:00:00Z",
            "updatedAt": "2026-01-01T00:00:00Z",
            "lines": {"edges": edges},
            "cost": {
                "totalAmount": _money(subtotal),
                "subtotalAmount": _money(subtotal),
                "totalTaxAmount": None,
            },
            "totalQuantity": sum(line["quantity"] for line in cart["lines"]),
        }

    def new_cart(self, buyer_identity: dict = None) -> str:
        n = next(self._ids)
        cart_id = f"gid://shopify/Cart/c{n}?key=k{n}"
        self.carts[cart_id] = {
            "lines": [],
            "buyer": buyer_identity or {},
            "checkout_url": f"https://{STORE}/cart/c/c{n}?key=k{n}",
        }
        return cart_id

    def add_line(self, cart_id: str, variant_id: str, quantity: int) -> str:
        line_id = f"gid://shopify/CartLine/l{next(self._ids)}"
        self.carts[cart_id]["lines"].append({"id": line_id, "variant_id": variant_id, "quantity": quantity})
        return line_id

    def _mutation_result(self, field: str, cart_id: str = None, error: str = None) -> dict:
        if error:
            return {field: {"cart": None, "userErrors": [{"field": ["lines"], "message": error}]}}
        return {field: {"cart": self.cart_payload(cart_id), "userErrors": []}}

    def _op_getCart(self, variables: dict) -> dict:
        cart_id = variables["cartId"]
        return {"cart": self.cart_payload(cart_id) if cart_id in self.carts else None}

    def _op_cartCreate(self, variables: dict) -> dict:
        cart_input = variables.get("input") or {}
        return self._mutation_result("cartCreate", self.new_cart(cart_input.get("buyerIdentity")))

    def _op_cartLinesAdd(self, variables: dict) -> dict:
        cart_id = variables["cartId"]
        if cart_id not in self.carts:
            return self._mutation_result("cartLinesAdd", error="The specified cart does not exist.")
        for line in variables["lines"]:
            if line["merchandiseId"] not in VARIANTS:
                return self._mutation_result(
                    "cartLinesAdd", error=f"The merchandise with id {line['merchandiseId']} does not exist."
                )
        lines = self.carts[cart_id]["lines"]
        for line in variables["lines"]:
            existing = next((l for l in lines if l["variant_id"] == line["merchandiseId"]), None)
            if existing:
                existing["quantity"] += line["quantity"]
            else:
                self.add_line(cart_id, line["merchandiseId"], line["quantity"])
        return self._mutation_result("cartLinesAdd", cart_id)

    def _op_cartLinesUpdate(self, variables: dict) -> dict:
        cart_id = variables["cartId"]
        if cart_id not in self.carts:
            return self._mutation_result("cartLinesUpdate", error="The specified cart does not exist.")
        lines = self.carts[cart_id]["lines"]
        for update in variables["lines"]:
            line = next((l for l in lines if l["id"] == update["id"]), None)
            if line is None:
                return self._mutation_result("cartLinesUpdate", error=f"The merchandise line with id {update['id']} does not exist.")
            line["quantity"] = update["quantity"]
        self.carts[cart_id]["lines"] = [l for l in lines if l["quantity"] > 0]
        return self._mutation_result("cartLinesUpdate", cart_id)

    def _op_cartLinesRemove(self, variables: dict) -> dict:
        cart_id = variables["cartId"]
        if cart_id not in self.carts:
            return self._mutation_result("cartLinesRemove", error="The specified cart does not exist.")
        lines = self.carts[cart_id]["lines"]
        known = {l["id"] for l in lines}
        for line_id in variables["lineIds"]:
            if line_id not in known:
                return self._mutation_result("cartLinesRemove", error=f"The merchandise line with id {line_id} does not exist.")
        self.carts[cart_id]["lines"] = [l for l in lines if l["id"] not in variables["lineIds"]]
        return self._mutation_result("cartLinesRemove", cart_id)

    def _op_cartBuyerIdentityUpdate(self, variables: dict) -> dict:
        cart_id = variables["cartId"]
        token = variables["buyerIdentity"].get("customerAccessToken")
        if cart_id not in self.carts:
            error = "The specified cart does not exist."
        elif token == "expired-token":
            error = "Customer access token is invalid"
        else:
            error = None
        if error:
            return {"cartBuyerIdentityUpdate": {"cart": None, "userErrors": [{"field": ["buyerIdentity"], "message": error}]}}
        cart = self.carts[cart_id]
        cart["buyer"] = {"email": "ada@example.com", "phone": None}
        return {
            "cartBuyerIdentityUpdate": {
                "cart": {"id": cart_id, "checkoutUrl": cart["checkout_url"], "buyerIdentity": cart["buyer"]},
                "userErrors": [],
            }
        }

    # ---- Admin REST ----

    def _admin(self, method: str, path: str, body: dict) -> httpx.Response:
        route = path.split("/admin/api/2025-01", 1)[1]
        self.calls.append(("admin", f"{method} {route}"))

        m = re.fullmatch(r"/customers/(\d+)(/.*)?\.json", route)
        if not m:
            return httpx.Response(404, json={"errors": "Not Found"})
        customer_id, rest = int(m.group(1)), m.group(2) or ""
        if customer_id not in self.customers:
            return httpx.Response(404, json={"errors": "Not Found"})

        if rest == "":
            if method == "GET":
                return httpx.Response(200, json={"customer": self.customers[customer_id]})
            return self._update_customer(customer_id, body["customer"])
        if rest == "/metafields":
            if method == "GET":
                return httpx.Response(200, json={"metafields": self.metafields[customer_id]})
            if self.fail_metafield_writes:
                return httpx.Response(503, text="Service Unavailable")
            return httpx.Response(201, json={"metafield": self.upsert_metafield(customer_id, body["metafield"])})
        if rest == "/addresses" and method == "POST":
            return self._create_address(customer_id, body["address"])

        m = re.fullmatch(r"/addresses/(\d+)(/default)?", rest)
        if not m or int(m.group(1)) not in self.addresses[customer_id]:
            return httpx.Response(404, json={"errors": "Not Found"})
        address = self.addresses[customer_id][int(m.group(1))]
        if m.group(2):
            for other in self.addresses[customer_id].values():
                other["default"] = False
            address["default"] = True
            return httpx.Response(200, json={"customer_address": address})
        if method == "DELETE":
            if address.get("default"):
                return httpx.Response(422, json={"errors": {"base": ["Cannot delete the customer's default address"]}})
            del self.addresses[customer_id][address["id"]]
            return httpx.Response(200, json={})
        address.update({k: v for k, v in body["address"].items() if k != "id"})
        return httpx.Response(200, json={"customer_address": address})

    def upsert_metafield(self, customer_id: int, metafield: dict) -> dict:
        for existing in self.metafields[customer_id]:
            if existing["namespace"] == metafield["namespace"] and existing["key"] == metafield["key"]:
                existing.update(metafield)
                return existing
        stored = {"id": next(self._ids), **metafield}
        self.metafields[customer_id].append(stored)
        return stored

    def _update_customer(self, customer_id: int, fields: dict) -> httpx.Response:
        if fields.get("email") == "taken@example.com":
            return httpx.Response(422, json={"errors": {"email": ["has already been taken"]}})
        customer = self.customers[customer_id]
        for metafield in fields.pop("metafields", []):
            self.upsert_metafield(customer_id, metafield)
        customer.update({k: v for k, v in fields.items() if k != "id"})
        return httpx.Response(200, json={"customer": customer})

    def _create_address(self, customer_id: int, fields: dict) -> httpx.Response:
        if not fields.get("zip") and fields.get("country") == "United States":
            return httpx.Response(422, json={"errors": {"zip": ["can't be blank"]}})
        address_id = next(self._ids)
        address = {"id": address_id, "customer_id": customer_id, "default": not self.addresses[customer_id], **fields}
        self.addresses[customer_id][address_id] = address
        return httpx.Response(201, json={"customer_address": address})


@pytest.fixture
def shopify():
    return FakeShopify()


@pytest.fixture
def storefront(shopify):
    return StorefrontClient(STORE, "storefront-token", transport=httpx.MockTransport(shopify.handler))


@pytest.fixture
def admin(shopify):
    return ShopifyAdminClient(STORE, "admin-token", transport=httpx.MockTransport(shopify.handler))


@pytest.fixture
def cart_service(storefront, admin):
    return CartService(storefront, admin)


@pytest.fixture
def token_manager():
    return TokenManager("test-secret", TokenCache(ttl_seconds=12 * 3600))


@pytest.fixture
def client(cart_service, admin, token_manager):
    from main import app

    app.dependency_overrides[get_cart_service] = lambda: cart_service
    app.dependency_overrides[get_admin_client] = lambda: admin
    app.dependency_overrides[get_token_manager] = lambda: token_manager
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(token_manager):
    token = token_manager.get_token("storefront-web")["token"]
    return {"Authorization": f"Bearer {token}"}
