from typing import Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product


class ProductRepository:

    @staticmethod
    async def create_product(db: AsyncSession, product: Product):
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product

    @staticmethod
    def _filtered(stmt, category: Optional[str], search: Optional[str]):
        stmt = stmt.where(Product.is_active.is_(True))
        if category:
            stmt = stmt.where(Product.category.ilike(f"%{category}%"))
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        return stmt

    @staticmethod
    async def list_products(
        db: AsyncSession,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[Product], int]:
        stmt = ProductRepository._filtered(select(Product), category, search)
        stmt = stmt.order_by(Product.created_at.desc()).limit(limit).offset(offset)
        products = (await db.execute(stmt)).scalars().all()

        count_stmt = ProductRepository._filtered(select(func.count(Product.id)), category, search)
        total = (await db.execute(count_stmt)).scalar_one()
        return products, total

    @staticmethod
    async def list_featured(db: AsyncSession, limit: int = 8):
        stmt = (
            select(Product)
            .where(Product.is_active.is_(True), Product.is_featured.is_(True))
            .order_by(Product.created_at.desc())
            .limit(limit)
        )
        return (await db.execute(stmt)).scalars().all()

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: str):
        result = await db.execute(select(Product).where(Product.id == product_id))
        return result.scalars().first()

    @staticmethod
    async def get_active_product(db: AsyncSession, product_id: str):
        result = await db.execute(
            select(Product).where(Product.id == product_id, Product.is_active.is_(True))
        )
        return result.scalars().first()

    @staticmethod
    async def update_product(db: AsyncSession, product: Product):
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product

    @staticmethod
    async def decrement_stock(db: AsyncSession, product_id: str, quantity: int) -> bool:
        """Atomically take `quantity` units. Returns False when not enough stock is left.

        Does not commit: the caller owns the surrounding transaction.
        """
        result = await db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.is_active.is_(True),
                Product.stock_quantity >= quantity,
            )
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def get_stock(db: AsyncSession, product_id: str) -> int:
        result = await db.execute(select(Product.stock_quantity).where(Product.id == product_id))
        return result.scalar_one_or_none() or 0
