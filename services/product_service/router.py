from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import get_current_admin

from .schemas import (
    ProductCreate,
    ProductEnvelope,
    ProductListResponse,
    ProductMutationResponse,
    ProductResponse,
    ProductUpdate,
)
from .service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])
admin_router = APIRouter(prefix="/products", tags=["Products"], dependencies=[Depends(get_current_admin)])


@router.get("", response_model=ProductListResponse)
async def list_products(
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await ProductService.list_products(db, category, search, limit, offset)


@router.get("/featured")
async def featured_products(db: AsyncSession = Depends(get_db)):
    products = await ProductService.list_featured(db)
    return {"products": [ProductResponse.model_validate(p) for p in products]}


@router.get("/{product_id}", response_model=ProductEnvelope)
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)):
    product = await ProductService.get_product(db, product_id)
    return ProductEnvelope(product=ProductResponse.model_validate(product))


@admin_router.post("", response_model=ProductMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_product(product: ProductCreate, db: AsyncSession = Depends(get_db)):
    created = await ProductService.create_product(db, product)
    return ProductMutationResponse(product=ProductResponse.model_validate(created))


@admin_router.put("/{product_id}", response_model=ProductMutationResponse)
async def update_product(product_id: str, changes: ProductUpdate, db: AsyncSession = Depends(get_db)):
    updated = await ProductService.update_product(db, product_id, changes)
    return ProductMutationResponse(product=ProductResponse.model_validate(updated))


@admin_router.delete("/{product_id}")
async def delete_product(product_id: str, db: AsyncSession = Depends(get_db)):
    await ProductService.deactivate_product(db, product_id)
    return {"success": True, "message": "Product deactivated"}
