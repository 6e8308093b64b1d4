"""
Catalog Service - product listing queries

Filtering, sorting and pagination run in SQL. The effective price (sale
price while on sale, list price otherwise) is a SQL expression so price
filters and sorts agree with what checkout charges.

Usage:
    from services.catalog_service import ProductFilters, list_products

    products, total = list_products(ProductFilters(search="remera", sort="price-asc"))
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import and_, case, func, or_

from constants import DEFAULT_PAGE_SIZE
from models.catalog import Category, Product, Review
from models.database import db
from models.order import OrderItem

effective_price = case(
    (and_(Product.on_sale.is_(True), Product.sale_price.isnot(None)), Product.sale_price),
    else_=Product.price,
)


@dataclass
class ProductFilters:
    category: Optional[str] = None
    search: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    in_stock: bool = False
    on_sale: bool = False
    sort: str = 'relevance'
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE


def slugify(text: str) -> str:
    folded = unicodedata.normalize('NFKD', text).encode('ascii', 'ignore').decode('ascii')
    return re.sub(r'[^a-z0-9]+', '-', folded.lower()).strip('-')


def find_category(ref) -> Optional[Category]:
    """Category by numeric id or slug."""
    if ref is None:
        return None
    ref = str(ref)
    if ref.isdigit():
        return db.session.get(Category, int(ref))
    return Category.query.filter_by(slug=ref).first()


def _rating_subquery():
    return (
        db.session.query(Review.product_id, func.avg(Review.rating).label('avg_rating'))
        .filter(Review.is_approved.is_(True))
        .group_by(Review.product_id)
        .subquery()
    )


def list_products(filters: ProductFilters) -> Tuple[List[Product], int]:
    query = Product.query.filter(Product.is_active.is_(True))

    if filters.category:
        category = find_category(filters.category)
        if category is None:
            return [], 0
        query = query.filter(Product.category_id == category.id)
    if filters.search:
        pattern = f"%{filters.search.lower()}%"
        query = query.filter(or_(
            func.lower(Product.name).like(pattern),
            func.lower(Product.description).like(pattern),
        ))
    if filters.min_price is not None:
        query = query.filter(effective_price >= filters.min_price)
    if filters.max_price is not None:
        query = query.filter(effective_price <= filters.max_price)
    if filters.in_stock:
        query = query.filter(Product.stock > 0)
    if filters.on_sale:
        query = query.filter(Product.on_sale.is_(True))

    total = query.count()

    sort = filters.sort
    if sort == 'price-asc':
        query = query.order_by(effective_price.asc(), Product.id.asc())
    elif sort == 'price-desc':
        query = query.order_by(effective_price.desc(), Product.id.asc())
    elif sort == 'name-asc':
        query = query.order_by(Product.name.asc())
    elif sort == 'name-desc':
        query = query.order_by(Product.name.desc())
    elif sort == 'rating-desc':
        ratings = _rating_subquery()
        query = (
            query.outerjoin(ratings, ratings.c.product_id == Product.id)
            .order_by(func.coalesce(ratings.c.avg_rating, 0).desc(), Product.id.asc())
        )
    elif sort == 'createdAt-desc':
        query = query.order_by(Product.created_at.desc(), Product.id.desc())
    else:
        # relevance: featured sales first, then newest
        query = query.order_by(Product.on_sale.desc(), Product.created_at.desc(), Product.id.desc())

    products = query.offset((filters.page - 1) * filters.limit).limit(filters.limit).all()
    return products, total


def category_product_counts() -> dict:
    rows = (
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.is_active.is_(True))
        .group_by(Product.category_id)
        .all()
    )
    return {category_id: count for category_id, count in rows}


def product_has_orders(product_id: int) -> bool:
    return db.session.query(OrderItem.id).filter(OrderItem.product_id == product_id).first() is not None
