"""
Checkout and cart request bodies.

Only product ids, quantities and variant choices are accepted from the
client. Prices are always re-read from the database.
"""

from typing import List, Literal, Optional

from pydantic import Field

from schemas.base import BaseRequestModel, EMAIL_PATTERN

PaymentMethodType = Literal['mercadopago', 'cash', 'transfer']


class CartItemIn(BaseRequestModel):
    product_id: int = Field(validation_alias='productId', gt=0)
    quantity: int = Field(ge=1, le=99)
    size: Optional[str] = Field(default=None, max_length=30)
    color: Optional[str] = Field(default=None, max_length=60)


class CustomerIn(BaseRequestModel):
    name: str = Field(min_length=2, max_length=200)
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=60)
    address: Optional[str] = Field(default=None, max_length=500)
    street: Optional[str] = Field(default=None, max_length=200)
    number: Optional[str] = Field(default=None, max_length=20)
    floor: Optional[str] = Field(default=None, max_length=10)
    apartment: Optional[str] = Field(default=None, max_length=10)
    city: Optional[str] = Field(default=None, max_length=120)
    province: Optional[str] = Field(default=None, max_length=120)
    postal_code: Optional[str] = Field(default=None, validation_alias='postalCode', max_length=10)


class ShippingMethodIn(BaseRequestModel):
    id: str = Field(min_length=1, max_length=60)
    name: Optional[str] = Field(default=None, max_length=120)


class CheckoutRequest(BaseRequestModel):
    items: List[CartItemIn] = Field(min_length=1, max_length=50)
    customer: CustomerIn
    shipping_method: ShippingMethodIn = Field(validation_alias='shippingMethod')
    payment_method: PaymentMethodType = Field(validation_alias='paymentMethod')
    shipping_agency: Optional[str] = Field(default=None, validation_alias='shippingAgency', max_length=60)


class CartValidateRequest(BaseRequestModel):
    items: List[CartItemIn] = Field(min_length=1, max_length=50)
    shipping_method_id: Optional[str] = Field(default=None, validation_alias='shippingMethodId')
    postal_code: Optional[str] = Field(default=None, validation_alias='postalCode')
    payment_method: Optional[PaymentMethodType] = Field(default=None, validation_alias='paymentMethod')


class ShippingQuoteRequest(BaseRequestModel):
    carrier: Literal['correo-argentino', 'oca']
    postal_code: str = Field(validation_alias='postalCode', min_length=4, max_length=8)
    items: List[CartItemIn] = Field(min_length=1, max_length=50)
    delivered_type: Optional[Literal['D', 'S']] = Field(default=None, validation_alias='deliveredType')


class TrackingValidateRequest(BaseRequestModel):
    tracking_number: str = Field(validation_alias='trackingNumber', min_length=1, max_length=50)
