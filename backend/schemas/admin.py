"""
Back-office request bodies.
"""

from typing import List, Literal, Optional

from pydantic import Field, model_validator

from constants import MIN_PASSWORD_LENGTH
from schemas.base import BaseRequestModel, EMAIL_PATTERN


class LoginRequest(BaseRequestModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=1, max_length=200)


class MarkProcessedRequest(BaseRequestModel):
    tracking_number: Optional[str] = Field(default=None, validation_alias='trackingNumber', max_length=120)
    carrier: Optional[Literal['correo-argentino', 'oca', 'pickup', 'other']] = None


class CancelOrderRequest(BaseRequestModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class SendTestEmailRequest(BaseRequestModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)


# =============================================================================
# Back-office users
# =============================================================================

class UserCreate(BaseRequestModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    name: Optional[str] = Field(default=None, max_length=200)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=200)
    role: Literal['admin', 'viewer'] = 'admin'
    is_active: bool = Field(default=True, validation_alias='isActive')


class UserUpdate(BaseRequestModel):
    """Partial update; only the fields sent are changed."""
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    name: Optional[str] = Field(default=None, max_length=200)
    password: Optional[str] = Field(default=None, min_length=MIN_PASSWORD_LENGTH, max_length=200)
    role: Optional[Literal['admin', 'viewer']] = None
    is_active: Optional[bool] = Field(default=None, validation_alias='isActive')


class ForgotPasswordRequest(BaseRequestModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)


class ResetPasswordRequest(BaseRequestModel):
    token: str = Field(min_length=20, max_length=200)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=200)


# =============================================================================
# Store settings
# =============================================================================

class ShippingSettingsIn(BaseRequestModel):
    free_shipping: Optional[bool] = Field(default=None, alias='freeShipping')
    free_shipping_threshold: Optional[float] = Field(default=None, ge=0, alias='freeShippingThreshold')


class StockSettingsIn(BaseRequestModel):
    low_stock_threshold: Optional[int] = Field(default=None, ge=0, le=1000, alias='lowStockThreshold')


class PaymentSettingsIn(BaseRequestModel):
    cash_discount: Optional[float] = Field(default=None, ge=0, le=1, alias='cashDiscount')
    transfer_discount: Optional[float] = Field(default=None, ge=0, le=1, alias='transferDiscount')
    mp_discount: Optional[float] = Field(default=None, ge=0, le=1, alias='mpDiscount')
    cash_expiration_hours: Optional[int] = Field(default=None, ge=1, le=720, alias='cashExpirationHours')
    transfer_expiration_hours: Optional[int] = Field(default=None, ge=1, le=720, alias='transferExpirationHours')
    mp_expiration_minutes: Optional[int] = Field(default=None, ge=5, le=10080, alias='mpExpirationMinutes')
    bank_name: Optional[str] = Field(default=None, max_length=120, alias='bankName')
    bank_cbu: Optional[str] = Field(default=None, pattern=r'^\d{22}$', alias='bankCbu')
    bank_alias: Optional[str] = Field(default=None, max_length=60, alias='bankAlias')
    bank_holder: Optional[str] = Field(default=None, max_length=120, alias='bankHolder')
    bank_cuit: Optional[str] = Field(default=None, max_length=20, alias='bankCuit')


class StoreSettingsUpdate(BaseRequestModel):
    """
    Partial store settings. Fields left out keep their stored (or default)
    value; model_dump(by_alias=True, exclude_unset=True) gives the patch.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    admin_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255, alias='adminEmail')
    support_email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255, alias='supportEmail')
    shipping: Optional[ShippingSettingsIn] = None
    stock: Optional[StockSettingsIn] = None
    payments: Optional[PaymentSettingsIn] = None


class ShippingOptionIn(BaseRequestModel):
    id: str = Field(pattern=r'^[a-z0-9][a-z0-9-]{0,39}$')
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=300)
    price: float = Field(ge=0)
    estimated_days: Optional[str] = Field(default=None, max_length=40, alias='estimatedDays')


class ShippingOptionsUpdate(BaseRequestModel):
    options: List[ShippingOptionIn] = Field(min_length=1, max_length=20)

    @model_validator(mode='after')
    def unique_ids(self):
        ids = [option.id for option in self.options]
        if len(ids) != len(set(ids)):
            raise ValueError('shipping option ids must be unique')
        return self
