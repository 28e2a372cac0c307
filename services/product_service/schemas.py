from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    stock_quantity: int = Field(default=0, ge=0)
    image_url: Optional[str] = None
    is_featured: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    price: Decimal
    stock_quantity: int
    image_url: Optional[str] = None
    is_active: bool
    is_featured: bool
    created_at: Optional[datetime] = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    hasMore: bool


class ProductListResponse(BaseModel):
    products: List[ProductResponse]
    pagination: Pagination


class ProductEnvelope(BaseModel):
    product: ProductResponse


class ProductMutationResponse(BaseModel):
    success: bool = True
    product: ProductResponse
