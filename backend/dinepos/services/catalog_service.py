# backend/dinepos/services/catalog_service.py
"""
Catalog Service with Multi-Tenant Support

MULTI-TENANT: Every query filters by restaurant_id, which callers take
from the resolved auth context (g.tenant_id). An id belonging to another
restaurant behaves exactly like an id that does not exist.

Delete preconditions:
- a category with subcategories cannot be deleted
- a subcategory referenced by any product (by name) cannot be deleted
- deleting a product removes its variants, their attributes and every image
"""
from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import Category, Subcategory, Product, ProductImage, Variant, VariantAttribute
from ..validation import ConflictError, NotFoundError, ValidationError
from . import image_store

logger = logging.getLogger(__name__)

CATEGORY_MUTABLE_FIELDS = {"name", "description"}
SUBCATEGORY_MUTABLE_FIELDS = {"name", "description", "category_id"}
PRODUCT_MUTABLE_FIELDS = {
    "name", "sku", "base_price_cents", "description", "status",
    "category", "subcategory", "main_image_url", "quantity",
}
VARIANT_MUTABLE_FIELDS = {"name", "price_cents", "stock", "image_url"}


def apply_patch(obj, patch: dict, fields: set[str]) -> None:
    for k, v in patch.items():
        if k not in fields:
            continue
        setattr(obj, k, v)


def _reload_inventory(restaurant_id: int) -> None:
    registry = current_app.extensions.get("dinepos.inventory")
    if registry is not None:
        registry.reload(restaurant_id)


# ----------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------

def list_categories(restaurant_id: int) -> list[Category]:
    return (
        db.session.query(Category)
        .filter(Category.restaurant_id == restaurant_id)
        .order_by(Category.name.asc(), Category.id.asc())
        .all()
    )


def get_category(restaurant_id: int, category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id, restaurant_id=restaurant_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def _ensure_unique_category(restaurant_id: int, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(
        Category.restaurant_id == restaurant_id,
        db.func.lower(Category.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError("A category with this name already exists")


def create_category(restaurant_id: int, patch: dict) -> Category:
    _ensure_unique_category(restaurant_id, patch["name"])
    category = Category(restaurant_id=restaurant_id)
    apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(restaurant_id: int, category_id: int, patch: dict) -> Category:
    category = get_category(restaurant_id, category_id)
    old_name = category.name
    if patch.get("name") and patch["name"] != old_name:
        _ensure_unique_category(restaurant_id, patch["name"], exclude_id=category.id)

    apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)

    # Products reference categories by name
    if category.name != old_name:
        db.session.query(Product).filter(
            Product.restaurant_id == restaurant_id,
            Product.category == old_name,
        ).update({Product.category: category.name}, synchronize_session=False)

    db.session.commit()
    return category


def delete_category(restaurant_id: int, category_id: int) -> None:
    category = get_category(restaurant_id, category_id)
    in_use = db.session.query(Subcategory.id).filter_by(
        restaurant_id=restaurant_id, category_id=category.id
    ).count()
    if in_use:
        raise ConflictError(
            "Cannot delete category: it has subcategories. Delete them first.",
            details={"subcategories": in_use},
        )
    db.session.delete(category)
    db.session.commit()


# ----------------------------------------------------------------------
# Subcategories
# ----------------------------------------------------------------------

def list_subcategories(restaurant_id: int, category_id: int | None = None) -> list[Subcategory]:
    query = db.session.query(Subcategory).filter(Subcategory.restaurant_id == restaurant_id)
    if category_id is not None:
        query = query.filter(Subcategory.category_id == category_id)
    return query.order_by(Subcategory.name.asc(), Subcategory.id.asc()).all()


def get_subcategory(restaurant_id: int, subcategory_id: int) -> Subcategory:
    sub = db.session.query(Subcategory).filter_by(id=subcategory_id, restaurant_id=restaurant_id).first()
    if not sub:
        raise NotFoundError("Subcategory not found")
    return sub


def _ensure_unique_subcategory(restaurant_id: int, category_id: int, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Subcategory).filter(
        Subcategory.restaurant_id == restaurant_id,
        Subcategory.category_id == category_id,
        db.func.lower(Subcategory.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Subcategory.id != exclude_id)
    if query.first():
        raise ConflictError("A subcategory with this name already exists in this category")


def create_subcategory(restaurant_id: int, patch: dict) -> Subcategory:
    # The parent must belong to the same restaurant
    category = get_category(restaurant_id, patch["category_id"])
    _ensure_unique_subcategory(restaurant_id, category.id, patch["name"])

    sub = Subcategory(restaurant_id=restaurant_id)
    apply_patch(sub, patch, SUBCATEGORY_MUTABLE_FIELDS)
    db.session.add(sub)
    db.session.commit()
    return sub


def update_subcategory(restaurant_id: int, subcategory_id: int, patch: dict) -> Subcategory:
    sub = get_subcategory(restaurant_id, subcategory_id)
    old_name = sub.name
    old_category_name = sub.category.name

    category_id = patch.get("category_id", sub.category_id)
    if category_id != sub.category_id:
        get_category(restaurant_id, category_id)
    name = patch.get("name") or sub.name
    if name != old_name or category_id != sub.category_id:
        _ensure_unique_subcategory(restaurant_id, category_id, name, exclude_id=sub.id)

    apply_patch(sub, patch, SUBCATEGORY_MUTABLE_FIELDS)

    if sub.name != old_name:
        db.session.query(Product).filter(
            Product.restaurant_id == restaurant_id,
            Product.category == old_category_name,
            Product.subcategory == old_name,
        ).update({Product.subcategory: sub.name}, synchronize_session=False)

    db.session.commit()
    return sub


def delete_subcategory(restaurant_id: int, subcategory_id: int) -> None:
    sub = get_subcategory(restaurant_id, subcategory_id)
    # Subcategory names are unique per category only
    in_use = db.session.query(Product.id).filter_by(
        restaurant_id=restaurant_id, category=sub.category.name, subcategory=sub.name
    ).count()
    if in_use:
        raise ConflictError(
            "Cannot delete subcategory: products are assigned to it.",
            details={"products": in_use},
        )
    db.session.delete(sub)
    db.session.commit()


# ----------------------------------------------------------------------
# Products
# ----------------------------------------------------------------------

def list_products(
    restaurant_id: int,
    *,
    category: str | None = None,
    subcategory: str | None = None,
    active_only: bool = False,
    search: str | None = None,
) -> list[Product]:
    """active_only is the POS sale listing: inactive products are hidden."""
    query = db.session.query(Product).filter(Product.restaurant_id == restaurant_id)
    if category:
        query = query.filter(Product.category == category)
    if subcategory:
        query = query.filter(Product.subcategory == subcategory)
    if active_only:
        query = query.filter(Product.status == "active")
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(
            db.or_(db.func.lower(Product.name).like(term), db.func.lower(Product.sku).like(term))
        )
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(restaurant_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, restaurant_id=restaurant_id).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def _ensure_unique_sku(restaurant_id: int, sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(Product.restaurant_id == restaurant_id, Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists for this restaurant.")


def _validate_gallery(gallery) -> list[str]:
    if gallery is None:
        return []
    if not isinstance(gallery, list) or not all(isinstance(u, str) and u.strip() for u in gallery):
        raise ValidationError("gallery must be a list of image URLs")
    return [u.strip() for u in gallery]


def _set_gallery(product: Product, urls: list[str]) -> list[str]:
    """Replace the gallery; returns the dropped URLs for deletion after commit."""
    keep = set(urls)
    dropped = [image.url for image in product.gallery if image.url not in keep]
    product.gallery = [ProductImage(url=url, position=i) for i, url in enumerate(urls)]
    return dropped


def create_product(restaurant_id: int, patch: dict, gallery=None) -> Product:
    urls = _validate_gallery(gallery)
    _ensure_unique_sku(restaurant_id, patch["sku"])

    product = Product(restaurant_id=restaurant_id)
    apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
    product.gallery = [ProductImage(url=url, position=i) for i, url in enumerate(urls)]

    db.session.add(product)
    db.session.commit()
    _reload_inventory(restaurant_id)
    return product


def update_product(restaurant_id: int, product_id: int, patch: dict, gallery=None) -> Product:
    product = get_product(restaurant_id, product_id)
    if patch.get("sku") and patch["sku"] != product.sku:
        _ensure_unique_sku(restaurant_id, patch["sku"], exclude_id=product.id)

    # Replaced files are removed only once the new references are committed
    stale = []
    if "main_image_url" in patch and patch["main_image_url"] != product.main_image_url:
        stale.append(product.main_image_url)

    apply_patch(product, patch, PRODUCT_MUTABLE_FIELDS)
    if gallery is not None:
        stale.extend(_set_gallery(product, _validate_gallery(gallery)))

    db.session.commit()
    image_store.delete_urls(stale)
    _reload_inventory(restaurant_id)
    return product


def delete_product(restaurant_id: int, product_id: int) -> None:
    """Hard delete with cascade to variants, attributes and all images."""
    product = get_product(restaurant_id, product_id)
    urls = image_store.product_image_urls(product)
    db.session.delete(product)
    db.session.commit()
    image_store.delete_urls(urls)
    _reload_inventory(restaurant_id)


# ----------------------------------------------------------------------
# Variants
# ----------------------------------------------------------------------

def _validate_attributes(attributes) -> list[dict]:
    if attributes is None:
        return []
    if not isinstance(attributes, list):
        raise ValidationError("attributes must be a list of {key, value} objects")
    cleaned = []
    for i, attr in enumerate(attributes):
        if not isinstance(attr, dict):
            raise ValidationError(f"attributes[{i}] must be an object")
        key = str(attr.get("key") or "").strip()
        value = str(attr.get("value") or "").strip()
        if not key or not value:
            raise ValidationError(f"attributes[{i}] needs a key and a value")
        cleaned.append({"key": key, "value": value})
    return cleaned


def _set_attributes(variant: Variant, attributes: list[dict]) -> None:
    variant.attributes = [
        VariantAttribute(restaurant_id=variant.restaurant_id, key=a["key"], value=a["value"], position=i)
        for i, a in enumerate(attributes)
    ]


def list_variants(restaurant_id: int, product_id: int) -> list[Variant]:
    product = get_product(restaurant_id, product_id)
    return list(product.variants)


def get_variant(restaurant_id: int, variant_id: int) -> Variant:
    variant = db.session.query(Variant).filter_by(id=variant_id, restaurant_id=restaurant_id).first()
    if not variant:
        raise NotFoundError("Variant not found")
    return variant


def create_variant(restaurant_id: int, product_id: int, patch: dict, attributes=None) -> Variant:
    product = get_product(restaurant_id, product_id)
    attrs = _validate_attributes(attributes)

    variant = Variant(restaurant_id=restaurant_id, product_id=product.id)
    apply_patch(variant, patch, VARIANT_MUTABLE_FIELDS)
    _set_attributes(variant, attrs)

    db.session.add(variant)
    db.session.commit()
    _reload_inventory(restaurant_id)
    return variant


def update_variant(restaurant_id: int, variant_id: int, patch: dict, attributes=None) -> Variant:
    variant = get_variant(restaurant_id, variant_id)
    stale = None
    if "image_url" in patch and patch["image_url"] != variant.image_url:
        stale = variant.image_url

    apply_patch(variant, patch, VARIANT_MUTABLE_FIELDS)
    if attributes is not None:
        _set_attributes(variant, _validate_attributes(attributes))

    db.session.commit()
    image_store.delete_url(stale)
    _reload_inventory(restaurant_id)
    return variant


def delete_variant(restaurant_id: int, variant_id: int) -> None:
    variant = get_variant(restaurant_id, variant_id)
    url = variant.image_url
    db.session.delete(variant)
    db.session.commit()
    image_store.delete_url(url)
    _reload_inventory(restaurant_id)
