"""
Catalog Models - categories, products, variants and reviews

Stock lives on the product; products that are sold by color/size also
carry per-variant stock, which checkout checks and decrements alongside
the product total.
"""
from decimal import Decimal

from sqlalchemy import func

from models.database import db, utcnow, iso, money


class Category(db.Model):
    __tablename__ = 'categories'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(140), unique=True, nullable=False, index=True)
    description = db.Column(db.Text)
    image_url = db.Column(db.String(512))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    products = db.relationship('Product', back_populates='category', lazy='dynamic')

    def to_dict(self, product_count=None):
        result = {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'imageUrl': self.image_url,
            'isActive': self.is_active,
            'createdAt': iso(self.created_at),
        }
        if product_count is not None:
            result['productCount'] = product_count
        return result


class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey('categories.id'), index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    sale_price = db.Column(db.Numeric(12, 2))
    on_sale = db.Column(db.Boolean, default=False, nullable=False)
    stock = db.Column(db.Integer, default=0, nullable=False)
    images = db.Column(db.JSON, default=list)
    sizes = db.Column(db.JSON, default=list)
    colors = db.Column(db.JSON, default=list)
    weight_grams = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    category = db.relationship('Category', back_populates='products')
    variants = db.relationship(
        'ProductVariant', back_populates='product',
        cascade='all, delete-orphan', order_by='ProductVariant.id'
    )
    reviews = db.relationship('Review', back_populates='product', cascade='all, delete-orphan', lazy='dynamic')

    @property
    def effective_price(self) -> Decimal:
        """Sale price when the product is on sale, list price otherwise."""
        if self.on_sale and self.sale_price is not None:
            return Decimal(self.sale_price)
        return Decimal(self.price)

    def find_variant(self, color, size):
        for variant in self.variants:
            if (variant.color or None) == (color or None) and (variant.size or None) == (size or None):
                return variant
        return None

    def rating_summary(self):
        avg, count = (
            db.session.query(func.avg(Review.rating), func.count(Review.id))
            .filter(Review.product_id == self.id, Review.is_approved.is_(True))
            .one()
        )
        return (round(float(avg), 2) if avg is not None else None), count

    def to_dict(self, include_variants=False, include_rating=False):
        result = {
            'id': self.id,
            'categoryId': self.category_id,
            'categoryName': self.category.name if self.category else None,
            'name': self.name,
            'description': self.description,
            'price': money(self.price),
            'salePrice': money(self.sale_price),
            'onSale': self.on_sale,
            'effectivePrice': float(self.effective_price),
            'stock': self.stock,
            'images': self.images or [],
            'sizes': self.sizes or [],
            'colors': self.colors or [],
            'weightGrams': self.weight_grams,
            'isActive': self.is_active,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
        }
        if include_variants:
            result['variants'] = [v.to_dict() for v in self.variants]
        if include_rating:
            rating, count = self.rating_summary()
            result['rating'] = rating
            result['reviewCount'] = count
        return result


class ProductVariant(db.Model):
    __tablename__ = 'product_variants'
    __table_args__ = (
        db.UniqueConstraint('product_id', 'color', 'size', name='uq_variant_product_color_size'),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    color = db.Column(db.String(60))
    size = db.Column(db.String(30))
    stock = db.Column(db.Integer, default=0, nullable=False)
    sku = db.Column(db.String(80))

    product = db.relationship('Product', back_populates='variants')

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'color': self.color,
            'size': self.size,
            'stock': self.stock,
            'sku': self.sku,
        }


class Review(db.Model):
    __tablename__ = 'reviews'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    author_name = db.Column(db.String(120), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=False)
    is_approved = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    product = db.relationship('Product', back_populates='reviews')

    def to_dict(self):
        return {
            'id': self.id,
            'productId': self.product_id,
            'authorName': self.author_name,
            'rating': self.rating,
            'comment': self.comment,
            'isApproved': self.is_approved,
            'createdAt': iso(self.created_at),
        }
