"""
Shopify Storefront API (GraphQL) client.
Cart operations live here as query strings; CartService decides what to do with the results.
"""
import logging
from typing import Optional

import httpx

from app.errors import ShopifyUpstreamError
from app.services.http_client import DEFAULT_TIMEOUT, create_async_client, send

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2025-01"

# Lines are capped at 100 per cart read, matching what the storefront renders
CART_FIELDS = """
fragment CartFields on Cart {
  id
  checkoutUrl
  createdAt
  updatedAt
  lines(first: 100) {
    edges {
      node {
        id
        quantity
        merchandise {
          ... on ProductVariant {
            id
            title
            priceV2 {
              amount
              currencyCode
            }
            image {
              url
              altText
            }
            product {
              id
              title
              handle
              featuredImage {
                url
                altText
              }
            }
          }
        }
        cost {
          totalAmount {
            amount
            currencyCode
          }
        }
      }
    }
  }
  cost {
    totalAmount {
      amount
      currencyCode
    }
    subtotalAmount {
      amount
      currencyCode
    }
    totalTaxAmount {
      amount
      currencyCode
    }
  }
  totalQuantity
}
"""

GET_CART_QUERY = """
query getCart($cartId: ID!) {
  cart(id: $cartId) {
    ...CartFields
  }
}
""" + CART_FIELDS

CART_CREATE_MUTATION = """
mutation cartCreate($input: CartInput!) {
  cartCreate(input: $input) {
    cart {
      ...CartFields
    }
    userErrors {
      field
      message
    }
  }
}
""" + CART_FIELDS

CART_LINES_ADD_MUTATION = """
mutation cartLinesAdd($cartId: ID!, $lines: [CartLineInput!]!) {
  cartLinesAdd(cartId: $cartId, lines: $lines) {
    cart {
      ...CartFields
    }
    userErrors {
      field
      message
    }
  }
}
""" + CART_FIELDS

CART_LINES_UPDATE_MUTATION = """
mutation cartLinesUpdate($cartId: ID!, $lines: [CartLineUpdateInput!]!) {
  cartLinesUpdate(cartId: $cartId, lines: $lines) {
    cart {
      ...CartFields
    }
    userErrors {
      field
      message
    }
  }
}
""" + CART_FIELDS

CART_LINES_REMOVE_MUTATION = """
mutation cartLinesRemove($cartId: ID!, $lineIds: [ID!]!) {
  cartLinesRemove(cartId: $cartId, lineIds: $lineIds) {
    cart {
      ...CartFields
    }
    userErrors {
      field
      message
    }
  }
}
""" + CART_FIELDS

CART_BUYER_IDENTITY_UPDATE_MUTATION = """
mutation cartBuyerIdentityUpdate($cartId: ID!, $buyerIdentity: CartBuyerIdentityInput!) {
  cartBuyerIdentityUpdate(cartId: $cartId, buyerIdentity: $buyerIdentity) {
    cart {
      id
      checkoutUrl
      buyerIdentity {
        email
        phone
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""


class StorefrontClient:
    """Executes GraphQL documents against https://{store}/api/{version}/graphql.json"""

    def __init__(
        self,
        store_url: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        store = (store_url or "").strip().replace("https://", "").replace("http://", "").rstrip("/")
        self.endpoint = f"https://{store}/api/{api_version}/graphql.json"
        self._client = create_async_client(
            "",
            {"X-Shopify-Storefront-Access-Token": access_token or ""},
            timeout=timeout,
            transport=transport,
        )

    async def execute(self, query: str, variables: Optional[dict] = None) -> dict:
        """
        Run one GraphQL operation and return its `data` object.
        Top-level GraphQL `errors` and non-2xx answers raise ShopifyUpstreamError;
        mutation `userErrors` are left for the caller to inspect.
        """
        payload = {"query": query}
        if variables is not None:
            payload["variables"] = variables
        resp = await send(self._client, "POST", self.endpoint, json=payload)
        if resp.status_code >= 400:
            raise ShopifyUpstreamError(
                f"Storefront API responded with status {resp.status_code}",
                errors=resp.text[:500] if resp.text else None,
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise ShopifyUpstreamError("Storefront API returned a non-JSON response") from e

        errors = body.get("errors")
        if errors:
            message = (errors[0] or {}).get("message") or "Storefront API error"
            raise ShopifyUpstreamError(message, errors=errors)
        return body.get("data") or {}

    async def aclose(self) -> None:
        await self._client.aclose()
