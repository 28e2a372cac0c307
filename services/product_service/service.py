from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFound

from .models import Product
from .repository import ProductRepository
from .schemas import Pagination, ProductCreate, ProductListResponse, ProductResponse, ProductUpdate


class ProductService:

    @staticmethod
    async def create_product(db: AsyncSession, data: ProductCreate):
        product = Product(**data.model_dump())
        return await ProductRepository.create_product(db, product)

    @staticmethod
    async def list_products(
        db: AsyncSession,
        category: Optional[str],
        search: Optional[str],
        limit: int,
        offset: int,
    ) -> ProductListResponse:
        products, total = await ProductRepository.list_products(db, category, search, limit, offset)
        return ProductListResponse(
            products=[ProductResponse.model_validate(p) for p in products],
            pagination=Pagination(total=total, limit=limit, offset=offset, hasMore=offset + limit < total),
        )

    @staticmethod
    async def list_featured(db: AsyncSession):
        return await ProductRepository.list_featured(db)

    @staticmethod
    async def get_product(db: AsyncSession, product_id: str) -> Product:
        product = await ProductRepository.get_active_product(db, product_id)
        if not product:
            raise NotFound("Product not found")
        return product

    @staticmethod
    async def update_product(db: AsyncSession, product_id: str, data: ProductUpdate) -> Product:
        product = await ProductRepository.get_product_by_id(db, product_id)
        if not product:
            raise NotFound("Product not found")
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(product, field, value)
        return await ProductRepository.update_product(db, product)

    @staticmethod
    async def deactivate_product(db: AsyncSession, product_id: str) -> Product:
        # Soft delete: order items keep pointing at the row
        product = await ProductRepository.get_product_by_id(db, product_id)
        if not product:
            raise NotFound("Product not found")
        product.is_active = False
        return await ProductRepository.update_product(db, product)
