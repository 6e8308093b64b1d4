"""
Catalog request bodies (admin product/category management, public reviews).
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator

from schemas.base import BaseRequestModel


class ProductCreate(BaseRequestModel):
    name: str = Field(min_length=2, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    sale_price: Optional[Decimal] = Field(default=None, validation_alias='salePrice', ge=0, max_digits=12, decimal_places=2)
    on_sale: bool = Field(default=False, validation_alias='onSale')
    stock: int = Field(default=0, ge=0)
    category_id: Optional[int] = Field(default=None, validation_alias='categoryId')
    images: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    weight_grams: Optional[int] = Field(default=None, validation_alias='weightGrams', gt=0)
    is_active: bool = Field(default=True, validation_alias='isActive')

    @model_validator(mode='after')
    def _sale_price_below_price(self):
        if self.on_sale and self.sale_price is not None and self.sale_price >= self.price:
            raise ValueError('salePrice must be lower than price')
        return self


class ProductUpdate(BaseRequestModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    sale_price: Optional[Decimal] = Field(default=None, validation_alias='salePrice', ge=0, max_digits=12, decimal_places=2)
    on_sale: Optional[bool] = Field(default=None, validation_alias='onSale')
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = Field(default=None, validation_alias='categoryId')
    images: Optional[List[str]] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    weight_grams: Optional[int] = Field(default=None, validation_alias='weightGrams', gt=0)
    is_active: Optional[bool] = Field(default=None, validation_alias='isActive')


class CategoryIn(BaseRequestModel):
    name: str = Field(min_length=2, max_length=120)
    slug: Optional[str] = Field(default=None, pattern=r'^[a-z0-9]+(?:-[a-z0-9]+)*$', max_length=140)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, validation_alias='imageUrl', max_length=512)
    is_active: bool = Field(default=True, validation_alias='isActive')


class VariantIn(BaseRequestModel):
    color: Optional[str] = Field(default=None, max_length=60)
    size: Optional[str] = Field(default=None, max_length=30)
    stock: int = Field(ge=0)
    sku: Optional[str] = Field(default=None, max_length=80)


class VariantsIn(BaseRequestModel):
    variants: List[VariantIn] = Field(min_length=1, max_length=200)


class ReviewIn(BaseRequestModel):
    author_name: str = Field(validation_alias='authorName', min_length=2, max_length=120)
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=10, max_length=1000)
