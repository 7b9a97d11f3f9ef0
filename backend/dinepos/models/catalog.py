from __future__ import annotations

from ..extensions import db
from dinepos.time_utils import to_utc_z


class Category(db.Model):
    """
    Menu category, scoped to a restaurant.

    Names are unique per restaurant; two tenants may both have "Drinks".
    A category can only be deleted once no subcategory references it.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "name", name="uq_categories_restaurant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Subcategory(db.Model):
    __tablename__ = "subcategories"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "category_id", "name", name="uq_subcategories_restaurant_category_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Sellable product.

    category / subcategory are stored by name. quantity is the declared
    stock for products sold without variants; it stays NULL when stock is
    tracked per variant instead. Inactive products are hidden from the sale
    screen but remain editable.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "sku", name="uq_products_restaurant_sku"),
        db.Index("ix_products_restaurant_status", "restaurant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False)
    base_price_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    category = db.Column(db.String(120), nullable=True, index=True)
    subcategory = db.Column(db.String(120), nullable=True, index=True)

    main_image_url = db.Column(db.String(500), nullable=True)

    quantity = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    gallery = db.relationship(
        "ProductImage",
        order_by="ProductImage.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    variants = db.relationship(
        "Variant",
        order_by="Variant.id",
        cascade="all, delete-orphan",
        back_populates="product",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} restaurant_id={self.restaurant_id}>"

    def to_dict(self, include_variants: bool = False) -> dict:
        data = {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "name": self.name,
            "sku": self.sku,
            "base_price_cents": self.base_price_cents,
            "description": self.description,
            "status": self.status,
            "category": self.category,
            "subcategory": self.subcategory,
            "main_image_url": self.main_image_url,
            "gallery": [image.url for image in self.gallery],
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variants"] = [variant.to_dict() for variant in self.variants]
        return data


class ProductImage(db.Model):
    """Ordered gallery image of a product."""
    __tablename__ = "product_images"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    url = db.Column(db.String(500), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)


class Variant(db.Model):
    """
    A sellable variation of a product (e.g. Size=Large) with its own
    price and declared stock.
    """
    __tablename__ = "variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)
    image_url = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="variants")
    attributes = db.relationship(
        "VariantAttribute",
        order_by="VariantAttribute.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "restaurant_id": self.restaurant_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "image_url": self.image_url,
            "attributes": [attr.to_dict() for attr in self.attributes],
            "created_at": to_utc_z(self.created_at),
        }


class VariantAttribute(db.Model):
    __tablename__ = "variant_attributes"

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    key = db.Column(db.String(64), nullable=False)
    value = db.Column(db.String(255), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value}
