# Overview: Flask API routes for the restaurant catalog; parses input and returns JSON responses.

# backend/dinepos/routes/catalog.py
"""
Catalog routes: categories, subcategories, products, variants, images.

MULTI-TENANT: Every operation is scoped to g.tenant_id (set by
@require_pos_auth). Ids from another restaurant answer 404.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..services import catalog_service, image_store
from ..models import Category, Subcategory, Product, Variant
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    enforce_rules_variant,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..decorators import require_pos_auth

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

SUBCATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category_id"},
    required_on_create={"name", "category_id"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "sku", "base_price_cents", "description", "status",
        "category", "subcategory", "main_image_url", "quantity",
    },
    required_on_create={"name", "sku", "base_price_cents"},
)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price_cents", "stock", "image_url"},
    required_on_create={"name", "price_cents"},
)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/pos")


def _error(e, status: int):
    body = {"error": str(e)}
    details = getattr(e, "details", None)
    if details:
        body["details"] = details
    return jsonify(body), status


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
@require_pos_auth
def list_categories_route():
    categories = catalog_service.list_categories(g.tenant_id)
    return jsonify({"categories": [c.to_dict() for c in categories], "count": len(categories)}), 200


@catalog_bp.post("/categories")
@require_pos_auth
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(g.tenant_id, patch)
        return jsonify({"category": category.to_dict()}), 201
    except ValidationError as e:
        return _error(e, 400)
    except ConflictError as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/categories/<int:category_id>")
@require_pos_auth
def update_category_route(category_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(g.tenant_id, category_id, patch)
        return jsonify({"category": category.to_dict()}), 200
    except ValidationError as e:
        return _error(e, 400)
    except ConflictError as e:
        return _error(e, 409)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/categories/<int:category_id>")
@require_pos_auth
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(g.tenant_id, category_id)
        return jsonify({"message": "Category deleted"}), 200
    except ConflictError as e:
        return _error(e, 409)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SUBCATEGORIES
# =============================================================================

@catalog_bp.get("/subcategories")
@require_pos_auth
def list_subcategories_route():
    category_id = request.args.get("category_id", type=int)
    subs = catalog_service.list_subcategories(g.tenant_id, category_id=category_id)
    return jsonify({"subcategories": [s.to_dict() for s in subs], "count": len(subs)}), 200


@catalog_bp.post("/subcategories")
@require_pos_auth
def create_subcategory_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Subcategory, payload=payload, policy=SUBCATEGORY_POLICY, partial=False)
        sub = catalog_service.create_subcategory(g.tenant_id, patch)
        return jsonify({"subcategory": sub.to_dict()}), 201
    except ValidationError as e:
        return _error(e, 400)
    except ConflictError as e:
        return _error(e, 409)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to create subcategory")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/subcategories/<int:subcategory_id>")
@require_pos_auth
def update_subcategory_route(subcategory_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Subcategory, payload=payload, policy=SUBCATEGORY_POLICY, partial=True)
        sub = catalog_service.update_subcategory(g.tenant_id, subcategory_id, patch)
        return jsonify({"subcategory": sub.to_dict()}), 200
    except ValidationError as e:
        return _error(e, 400)
    except ConflictError as e:
        return _error(e, 409)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to update subcategory")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/subcategories/<int:subcategory_id>")
@require_pos_auth
def delete_subcategory_route(subcategory_id: int):
    try:
        catalog_service.delete_subcategory(g.tenant_id, subcategory_id)
        return jsonify({"message": "Subcategory deleted"}), 200
    except ConflictError as e:
        return _error(e, 409)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to delete subcategory")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.get("/products")
@require_pos_auth
def list_products_route():
    """
    Query params:
    - category, subcategory: filter by name
    - active_only: "true" for the sale screen (hides inactive products)
    - search: name or SKU contains
    - include_variants: "true" to embed variants
    """
    active_only = request.args.get("active_only", "").lower() in ("1", "true", "yes")
    include_variants = request.args.get("include_variants", "").lower() in ("1", "true", "yes")
    products = catalog_service.list_products(
        g.tenant_id,
        category=request.args.get("category"),
        subcategory=request.args.get("subcategory"),
        active_only=active_only,
        search=request.args.get("search"),
    )
    return jsonify({
        "products": [p.to_dict(include_variants=include_variants) for p in products],
        "count": len(products),
    }), 200


@catalog_bp.get("/products/<int:product_id>")
@require_pos_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(g.tenant_id, product_id)
    except NotFoundError as e:
        return _error(e, 404)
    return jsonify({"product": product.to_dict(include_variants=True)}), 200


@catalog_bp.post("/products")
@require_pos_auth
def create_product_route():
    payload = dict(request.get_json(silent=True) or {})
    gallery = payload.pop("gallery", None)
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(g.tenant_id, patch, gallery=gallery)
        return jsonify({"product": product.to_dict(include_variants=True)}), 201
    except ValidationError as e:
        return _error(e, 400)
    except ConflictError as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/products/<int:product_id>")
@require_pos_auth
def update_product_route(product_id: int):
    payload = dict(request.get_json(silent=True) or {})
    gallery = payload.pop("gallery", None)
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(g.tenant_id, product_id, patch, gallery=gallery)
        return jsonify({"product": product.to_dict(include_variants=True)}), 200
    except ValidationError as e:
        return _error(e, 400)
    except ConflictError as e:
        return _error(e, 409)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/products/<int:product_id>")
@require_pos_auth
def delete_product_route(product_id: int):
    """Deletes the product with its variants, attributes and images."""
    try:
        catalog_service.delete_product(g.tenant_id, product_id)
        return jsonify({"message": "Product deleted"}), 200
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# VARIANTS
# =============================================================================

@catalog_bp.get("/products/<int:product_id>/variants")
@require_pos_auth
def list_variants_route(product_id: int):
    try:
        variants = catalog_service.list_variants(g.tenant_id, product_id)
    except NotFoundError as e:
        return _error(e, 404)
    return jsonify({"variants": [v.to_dict() for v in variants], "count": len(variants)}), 200


@catalog_bp.post("/products/<int:product_id>/variants")
@require_pos_auth
def create_variant_route(product_id: int):
    payload = dict(request.get_json(silent=True) or {})
    attributes = payload.pop("attributes", None)
    try:
        patch = validate_payload(model=Variant, payload=payload, policy=VARIANT_POLICY, partial=False)
        enforce_rules_variant(patch)
        variant = catalog_service.create_variant(g.tenant_id, product_id, patch, attributes=attributes)
        return jsonify({"variant": variant.to_dict()}), 201
    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to create variant")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/variants/<int:variant_id>")
@require_pos_auth
def update_variant_route(variant_id: int):
    payload = dict(request.get_json(silent=True) or {})
    attributes = payload.pop("attributes", None)
    try:
        patch = validate_payload(model=Variant, payload=payload, policy=VARIANT_POLICY, partial=True)
        enforce_rules_variant(patch)
        variant = catalog_service.update_variant(g.tenant_id, variant_id, patch, attributes=attributes)
        return jsonify({"variant": variant.to_dict()}), 200
    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to update variant")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/variants/<int:variant_id>")
@require_pos_auth
def delete_variant_route(variant_id: int):
    try:
        catalog_service.delete_variant(g.tenant_id, variant_id)
        return jsonify({"message": "Variant deleted"}), 200
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to delete variant")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# IMAGES
# =============================================================================

@catalog_bp.post("/images")
@require_pos_auth
def upload_image_route():
    """
    multipart/form-data: file, prefix (product_main | product_gallery | variant)

    Returns the URL to store on the product or variant.
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    prefix = request.form.get("prefix") or "product_main"
    if prefix not in ("product_main", "product_gallery", "variant"):
        return jsonify({"error": "Invalid image prefix"}), 400

    try:
        image_id = image_store.generate_image_id(prefix)
        url = image_store.save(image_id, request.files["file"])
        return jsonify({"image_id": image_id, "url": url}), 201
    except ValidationError as e:
        return _error(e, 400)
    except Exception:
        current_app.logger.exception("Failed to store image")
        return jsonify({"error": "Internal server error"}), 500
