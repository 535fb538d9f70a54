"""
Cart session manager.

Carts live in Shopify (Storefront API). The only thing this service remembers about a user
is a pointer to their cart, stored as a customer metafield (custom.cart_id) via the Admin API.
Guest carts are merged into the user's cart at login by re-adding their lines.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from app.errors import ShopifyError, ShopifyUpstreamError, ShopifyUserError, first_user_error
from app.services.shopify_admin import ShopifyAdminClient
from app.services.storefront import (
    CART_BUYER_IDENTITY_UPDATE_MUTATION,
    CART_CREATE_MUTATION,
    CART_LINES_ADD_MUTATION,
    CART_LINES_REMOVE_MUTATION,
    CART_LINES_UPDATE_MUTATION,
    GET_CART_QUERY,
    StorefrontClient,
)

logger = logging.getLogger(__name__)

CART_METAFIELD_NAMESPACE = "custom"
CART_METAFIELD_KEY = "cart_id"
CART_METAFIELD_TYPE = "single_line_text_field"


def _money(node: Optional[dict]) -> Optional[dict]:
    if not node:
        return None
    return {"amount": float(node["amount"]), "currencyCode": node["currencyCode"]}


def _image(node: Optional[dict]) -> Optional[dict]:
    if not node:
        return None
    return {"url": node.get("url"), "altText": node.get("altText")}


def format_cart_line(line: dict) -> dict:
    merchandise = line.get("merchandise") or {}
    product = merchandise.get("product") or {}
    return {
        "lineId": line["id"],
        "quantity": line["quantity"],
        "variant": {
            "id": merchandise.get("id"),
            "title": merchandise.get("title"),
            "price": _money(merchandise.get("priceV2")),
            "image": _image(merchandise.get("image")),
        },
        "product": {
            "id": product.get("id"),
            "title": product.get("title"),
            "handle": product.get("handle"),
            "featuredImage": _image(product.get("featuredImage")),
        },
        "lineCost": _money((line.get("cost") or {}).get("totalAmount")),
    }


def format_cart(cart: dict) -> dict:
    """Flatten a Storefront cart into the shape the frontend consumes. Missing tax stays None, not 0."""
    edges = (cart.get("lines") or {}).get("edges") or []
    cost = cart.get("cost") or {}
    return {
        "cartId": cart["id"],
        "checkoutUrl": cart.get("checkoutUrl"),
        "createdAt": cart.get("createdAt"),
        "updatedAt": cart.get("updatedAt"),
        "totalQuantity": cart.get("totalQuantity") or 0,
        "items": [format_cart_line(edge["node"]) for edge in edges],
        "cost": {
            "subtotal": _money(cost.get("subtotalAmount")),
            "total": _money(cost.get("totalAmount")),
            "totalTax": _money(cost.get("totalTaxAmount")),
        },
    }


@dataclass
class MergeResult:
    cart: dict
    merged: bool
    items_merged: int
    message: str


class CartService:
    """Cart operations for one storefront. Stateless; safe to share across requests."""

    def __init__(
        self,
        storefront: StorefrontClient,
        admin: ShopifyAdminClient,
        metafield_namespace: str = CART_METAFIELD_NAMESPACE,
        metafield_key: str = CART_METAFIELD_KEY,
    ):
        self.storefront = storefront
        self.admin = admin
        self.metafield_namespace = metafield_namespace
        self.metafield_key = metafield_key

    async def _mutate_cart(self, mutation: str, field: str, variables: dict) -> dict:
        """Run a cart mutation; the first userError becomes a ShopifyUserError."""
        data = await self.storefront.execute(mutation, variables)
        result = data.get(field) or {}
        message = first_user_error(result.get("userErrors"))
        if message:
            raise ShopifyUserError(message, errors=result.get("userErrors"))
        if not result.get("cart"):
            raise ShopifyUpstreamError(f"{field} returned no cart")
        return result["cart"]

    # ---- carts by id ----

    async def create_cart(self, email: Optional[str] = None, customer_access_token: Optional[str] = None) -> dict:
        cart_input: dict = {}
        if email or customer_access_token:
            buyer_identity = {}
            if email:
                buyer_identity["email"] = email
            if customer_access_token:
                buyer_identity["customerAccessToken"] = customer_access_token
            cart_input["buyerIdentity"] = buyer_identity
        cart = await self._mutate_cart(CART_CREATE_MUTATION, "cartCreate", {"input": cart_input})
        logger.info("Created cart %s", cart["id"])
        return format_cart(cart)

    async def get_cart(self, cart_id: str) -> Optional[dict]:
        """None when Shopify no longer knows the cart (expired or deleted)."""
        data = await self.storefront.execute(GET_CART_QUERY, {"cartId": cart_id})
        cart = data.get("cart")
        if not cart:
            return None
        return format_cart(cart)

    async def add_line_items(self, cart_id: str, items: Iterable[dict]) -> dict:
        """items: [{variantId, quantity?}]; quantity defaults to 1."""
        lines = [
            {"merchandiseId": item["variantId"], "quantity": item.get("quantity") or 1}
            for item in items
        ]
        cart = await self._mutate_cart(CART_LINES_ADD_MUTATION, "cartLinesAdd", {"cartId": cart_id, "lines": lines})
        return format_cart(cart)

    async def update_line_items(self, cart_id: str, items: Iterable[dict]) -> dict:
        """items: [{lineId, quantity}]; quantity 0 removes the line."""
        lines = [{"id": item["lineId"], "quantity": item["quantity"]} for item in items]
        cart = await self._mutate_cart(
            CART_LINES_UPDATE_MUTATION, "cartLinesUpdate", {"cartId": cart_id, "lines": lines}
        )
        return format_cart(cart)

    async def remove_line_items(self, cart_id: str, line_ids: Iterable[str]) -> dict:
        cart = await self._mutate_cart(
            CART_LINES_REMOVE_MUTATION, "cartLinesRemove", {"cartId": cart_id, "lineIds": list(line_ids)}
        )
        return format_cart(cart)

    async def update_buyer_identity(self, cart_id: str, customer_access_token: str) -> dict:
        cart = await self._mutate_cart(
            CART_BUYER_IDENTITY_UPDATE_MUTATION,
            "cartBuyerIdentityUpdate",
            {"cartId": cart_id, "buyerIdentity": {"customerAccessToken": customer_access_token}},
        )
        return {
            "cartId": cart["id"],
            "checkoutUrl": cart.get("checkoutUrl"),
            "buyerIdentity": cart.get("buyerIdentity"),
        }

    async def checkout(self, cart_id: str, customer_access_token: Optional[str] = None) -> Optional[dict]:
        """
        Checkout URL for a cart. With a customer token the cart is bound to that buyer first,
        so Shopify pre-fills checkout. None when the cart does not exist.
        """
        if customer_access_token:
            result = await self.update_buyer_identity(cart_id, customer_access_token)
            return {"checkoutUrl": result["checkoutUrl"], "buyerIdentity": result["buyerIdentity"]}
        cart = await self.get_cart(cart_id)
        if cart is None:
            return None
        return {"checkoutUrl": cart["checkoutUrl"], "buyerIdentity": None}

    # ---- user <-> cart association ----

    async def get_user_cart_id(self, user_id: int) -> Optional[str]:
        """Cart id stored on the customer, or None (absent or cleared)."""
        metafields = await self.admin.get_customer_metafields(user_id)
        for mf in metafields:
            if mf.get("namespace") == self.metafield_namespace and mf.get("key") == self.metafield_key:
                return mf.get("value") or None
        return None

    async def save_user_cart_id(self, user_id: int, cart_id: str) -> bool:
        """
        Best effort: the cart is still usable for this request if the pointer cannot be saved,
        it just won't be found next time.
        """
        try:
            await self.admin.set_customer_metafield(
                user_id, self.metafield_namespace, self.metafield_key, cart_id, CART_METAFIELD_TYPE
            )
        except ShopifyError as e:
            logger.warning("Could not save cart %s for user %s: %s", cart_id, user_id, e.message)
            return False
        return True

    async def clear_user_cart(self, user_id: int) -> None:
        await self.admin.set_customer_metafield(
            user_id, self.metafield_namespace, self.metafield_key, "", CART_METAFIELD_TYPE
        )
        logger.info("Cleared cart pointer for user %s", user_id)

    async def resolve_user_cart(self, user_id: int, email: Optional[str] = None) -> dict:
        """
        The user's durable cart: the one the pointer names if Shopify still has it,
        otherwise a new cart (seeded with the email as buyer identity) whose id is saved.
        """
        existing_cart_id = await self.get_user_cart_id(user_id)
        if existing_cart_id:
            cart = await self.get_cart(existing_cart_id)
            if cart is not None:
                return cart
            logger.info("Cart %s for user %s no longer exists, creating a new one", existing_cart_id, user_id)

        # TODO: two first-time requests for the same user can both land here and create two carts;
        # needs a compare-and-set on the metafield (or a per-user lock) before creating.
        cart = await self.create_cart(email=email)
        await self.save_user_cart_id(user_id, cart["cartId"])
        return cart

    async def merge_carts_on_login(
        self, user_id: int, guest_cart_id: Optional[str] = None, email: Optional[str] = None
    ) -> MergeResult:
        """
        Re-add every guest-cart line to the user's cart. Purely additive: no dedup against
        lines already in the user cart, no rollback on partial failure, guest cart left as is.
        """
        guest_cart = await self.get_cart(guest_cart_id) if guest_cart_id else None
        user_cart = await self.resolve_user_cart(user_id, email)

        if not guest_cart or not guest_cart["items"]:
            return MergeResult(user_cart, False, 0, "No guest cart items to merge")

        if user_cart["cartId"] == guest_cart["cartId"]:
            return MergeResult(user_cart, False, 0, "Guest cart is already the user's cart")

        items = [
            {"variantId": item["variant"]["id"], "quantity": item["quantity"]}
            for item in guest_cart["items"]
        ]
        merged_cart = await self.add_line_items(user_cart["cartId"], items)
        logger.info("Merged %s line(s) from guest cart into cart %s for user %s", len(items), user_cart["cartId"], user_id)
        return MergeResult(
            merged_cart,
            True,
            len(items),
            f"Successfully merged {len(items)} item(s) from guest cart",
        )
