"""
Pydantic schemas for request validation (Http/Requests).
Bodies use the storefront's camelCase field names; unknown fields are rejected.
"""
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


def parse_positive_int(value: Any) -> Optional[int]:
    """Shopify numeric ids arrive as path params or JSON; anything but a positive integer is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


# Cart Schemas
class CreateCartRequest(RequestModel):
    email: Optional[str] = None
    customer_access_token: Optional[str] = Field(None, alias="customerAccessToken")


class CartLineAddItem(RequestModel):
    variant_id: str = Field(..., alias="variantId", min_length=1)
    quantity: Optional[int] = Field(None, ge=1)


class CartLineUpdateItem(RequestModel):
    line_id: str = Field(..., alias="lineId", min_length=1)
    quantity: int = Field(..., ge=0)


class AddCartItemsRequest(RequestModel):
    items: List[CartLineAddItem]

    @field_validator("items")
    @classmethod
    def validate_items(cls, v):
        if not v:
            raise ValueError("Items array is required and must not be empty")
        return v


class UpdateCartItemsRequest(RequestModel):
    items: List[CartLineUpdateItem]

    @field_validator("items")
    @classmethod
    def validate_items(cls, v):
        if not v:
            raise ValueError("Items array is required and must not be empty")
        return v


class RemoveCartItemsRequest(RequestModel):
    line_ids: List[str] = Field(..., alias="lineIds")

    @field_validator("line_ids")
    @classmethod
    def validate_line_ids(cls, v):
        if not v or any(not line_id for line_id in v):
            raise ValueError("lineIds array is required and must not be empty")
        return v


class MergeCartRequest(RequestModel):
    user_id: Optional[Union[int, str]] = Field(None, alias="userId")
    guest_cart_id: Optional[str] = Field(None, alias="guestCartId")


class CheckoutRequest(RequestModel):
    cart_id: str = Field(..., alias="cartId", min_length=1)
    customer_access_token: Optional[str] = Field(None, alias="customerAccessToken")


# Auth Schemas
class TokenRequest(RequestModel):
    client_id: str = Field(..., alias="clientId")
    client_secret: str = Field(..., alias="clientSecret")


class LogoutRequest(RequestModel):
    client_id: str = Field(..., alias="clientId", min_length=1)


# User Schemas
class MetafieldInput(RequestModel):
    namespace: Optional[str] = None
    key: str = Field(..., min_length=1)
    value: Any
    type: Optional[str] = None

    @field_validator("value")
    @classmethod
    def validate_value(cls, v):
        if v is None:
            raise ValueError("Each metafield must have 'key' and 'value' properties")
        return v


class UpdateUserRequest(RequestModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    metafields: Optional[List[MetafieldInput]] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if v is None:
            return v
        if "@" not in v or len(v.split("@")) != 2:
            raise ValueError("Invalid email format")
        return v.lower().strip()

    @model_validator(mode="after")
    def require_some_field(self):
        if not (self.first_name or self.last_name or self.email or self.phone or self.metafields):
            raise ValueError(
                "At least one field (firstName, lastName, email, phone) or metafields is required for update"
            )
        return self

    def customer_fields(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"metafields"}, exclude_none=True)


class AddressRequest(RequestModel):
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = Field(None, alias="isDefault")

    def address_fields(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class CreateAddressRequest(AddressRequest):
    @model_validator(mode="after")
    def require_location(self):
        if not (self.address1 and self.city and self.country):
            raise ValueError("address1, city, and country are required fields")
        return self


class UpdateAddressRequest(AddressRequest):
    @model_validator(mode="after")
    def require_some_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one address field is required for update")
        return self
