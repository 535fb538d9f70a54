"""
Shopify Admin API service - customers, customer metafields and addresses.
REST endpoints under https://{store}/admin/api/{version}. Never expose the admin token to the frontend.
"""
import asyncio
import json
import logging
from typing import Any, Optional

import httpx

from app.errors import ShopifyNotFoundError, ShopifyUpstreamError, ShopifyUserError
from app.services.http_client import DEFAULT_TIMEOUT, create_async_client, send

DEFAULT_API_VERSION = "2025-01"
logger = logging.getLogger(__name__)

# Request-field -> Shopify REST field
CUSTOMER_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
}
ADDRESS_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "company": "company",
    "address1": "address1",
    "address2": "address2",
    "city": "city",
    "province": "province",
    "country": "country",
    "zip": "zip",
    "phone": "phone",
    "isDefault": "default",
}


def _admin_base_url(store_url: str, api_version: str) -> str:
    shop = (store_url or "").lower().strip().replace("https://", "").replace("http://", "").rstrip("/")
    if shop and not shop.endswith(".myshopify.com") and "." not in shop:
        shop = f"{shop}.myshopify.com"
    return f"https://{shop}/admin/api/{api_version}"


def _to_shopify_fields(data: dict, mapping: dict) -> dict:
    """Translate camelCase request fields, dropping the ones the caller did not send (None)."""
    return {mapping[k]: v for k, v in data.items() if k in mapping and v is not None}


class ShopifyAdminClient:
    """Admin REST client. One instance per app; shares a single AsyncClient."""

    def __init__(
        self,
        store_url: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = _admin_base_url(store_url, api_version)
        self._client = create_async_client(
            self.base_url,
            {"X-Shopify-Access-Token": access_token or ""},
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        resp = await send(self._client, method, path, **kwargs)
        if resp.status_code == 404:
            raise ShopifyNotFoundError(f"Shopify resource not found: {path}")
        if resp.status_code == 422:
            try:
                errors = resp.json().get("errors")
            except ValueError:
                errors = resp.text
            raise ShopifyUserError("Shopify rejected the request", errors=errors)
        if resp.status_code >= 400:
            raise ShopifyUpstreamError(
                f"Admin API responded with status {resp.status_code}",
                errors=resp.text[:500] if resp.text else None,
            )
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise ShopifyUpstreamError("Admin API returned a non-JSON response") from e

    # ---- customers ----

    async def get_customer(self, customer_id: int) -> dict:
        data = await self._request("GET", f"/customers/{customer_id}.json")
        return data.get("customer") or {}

    async def get_customer_metafields(self, customer_id: int) -> list[dict]:
        data = await self._request("GET", f"/customers/{customer_id}/metafields.json")
        return data.get("metafields") or []

    async def get_customer_with_metafields(self, customer_id: int) -> dict:
        """Customer and metafields fetched concurrently; metafields attached under `metafields`."""
        customer, metafields = await asyncio.gather(
            self.get_customer(customer_id),
            self.get_customer_metafields(customer_id),
        )
        customer["metafields"] = metafields
        return customer

    async def update_customer(self, customer_id: int, fields: dict, metafields: Optional[list[dict]] = None) -> dict:
        """
        PUT /customers/{id}.json with only the provided fields.
        Metafields are sent inline; Shopify creates or updates them by namespace+key.
        """
        body = {"id": customer_id, **_to_shopify_fields(fields, CUSTOMER_FIELDS)}
        if metafields:
            body["metafields"] = [
                {
                    "namespace": mf.get("namespace") or "custom",
                    "key": mf["key"],
                    "value": mf["value"] if isinstance(mf["value"], str) else json.dumps(mf["value"]),
                    "type": mf.get("type") or ("single_line_text_field" if isinstance(mf["value"], str) else "json"),
                }
                for mf in metafields
            ]
        data = await self._request("PUT", f"/customers/{customer_id}.json", json={"customer": body})
        return data.get("customer") or {}

    async def set_customer_metafield(
        self,
        customer_id: int,
        namespace: str,
        key: str,
        value: str,
        value_type: str = "single_line_text_field",
    ) -> dict:
        """Create or overwrite one customer metafield (Shopify upserts on namespace+key)."""
        data = await self._request(
            "POST",
            f"/customers/{customer_id}/metafields.json",
            json={"metafield": {"namespace": namespace, "key": key, "value": value, "type": value_type}},
        )
        return data.get("metafield") or {}

    # ---- addresses ----

    async def add_customer_address(self, customer_id: int, address: dict) -> dict:
        data = await self._request(
            "POST",
            f"/customers/{customer_id}/addresses.json",
            json={"address": _to_shopify_fields(address, ADDRESS_FIELDS)},
        )
        return data.get("customer_address") or {}

    async def update_customer_address(self, customer_id: int, address_id: int, address: dict) -> dict:
        data = await self._request(
            "PUT",
            f"/customers/{customer_id}/addresses/{address_id}.json",
            json={"address": {"id": address_id, **_to_shopify_fields(address, ADDRESS_FIELDS)}},
        )
        return data.get("customer_address") or {}

    async def delete_customer_address(self, customer_id: int, address_id: int) -> None:
        await self._request("DELETE", f"/customers/{customer_id}/addresses/{address_id}.json")

    async def set_default_address(self, customer_id: int, address_id: int) -> dict:
        data = await self._request("PUT", f"/customers/{customer_id}/addresses/{address_id}/default.json")
        return data.get("customer_address") or {}

    async def aclose(self) -> None:
        await self._client.aclose()


def format_metafields(metafields: Optional[list[dict]]) -> dict:
    """Group metafields by namespace: {namespace: {key: {value, type, id}}}. JSON values are decoded."""
    formatted: dict = {}
    for mf in metafields or []:
        namespace = mf.get("namespace") or "custom"
        value = mf.get("value")
        if mf.get("type") in ("json", "json_string") and isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                pass  # keep the raw string
        formatted.setdefault(namespace, {})[mf.get("key")] = {
            "value": value,
            "type": mf.get("type"),
            "id": mf.get("id"),
        }
    return formatted


def format_address(address: Optional[dict]) -> Optional[dict]:
    if not address:
        return None
    return {
        "id": address.get("id"),
        "customerId": address.get("customer_id"),
        "firstName": address.get("first_name") or "",
        "lastName": address.get("last_name") or "",
        "company": address.get("company"),
        "address1": address.get("address1"),
        "address2": address.get("address2"),
        "city": address.get("city"),
        "province": address.get("province"),
        "provinceCode": address.get("province_code"),
        "country": address.get("country"),
        "countryCode": address.get("country_code"),
        "zip": address.get("zip"),
        "phone": address.get("phone"),
        "isDefault": bool(address.get("default")),
    }


def format_customer(customer: dict) -> dict:
    first = customer.get("first_name") or ""
    last = customer.get("last_name") or ""
    return {
        "id": customer.get("id"),
        "email": customer.get("email"),
        "phone": customer.get("phone"),
        "firstName": first,
        "lastName": last,
        "fullName": f"{first} {last}".strip(),
        "createdAt": customer.get("created_at"),
        "updatedAt": customer.get("updated_at"),
        "ordersCount": customer.get("orders_count") or 0,
        "totalSpent": customer.get("total_spent") or "0.00",
        "verifiedEmail": bool(customer.get("verified_email")),
        "acceptsMarketing": bool(customer.get("accepts_marketing")),
        "defaultAddress": format_address(customer.get("default_address")),
        "metafields": format_metafields(customer.get("metafields")),
    }
