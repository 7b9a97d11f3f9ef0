# Overview: Pytest coverage for catalog CRUD, delete preconditions and image cleanup.

import io
import os

import pytest
from dinepos.extensions import db
from dinepos.models import Product, Subcategory, Variant, VariantAttribute
from dinepos.services import catalog_service, image_store
from dinepos.services.inventory_manager import get_inventory_registry
from dinepos.validation import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def uploads(app, tmp_path, monkeypatch):
    monkeypatch.setitem(app.config, "UPLOAD_FOLDER", str(tmp_path))
    return tmp_path


def _store_image(uploads, image_id):
    (uploads / f"{image_id}.png").write_bytes(b"png")
    return f"/uploads/{image_id}.png"


class TestCategories:

    def test_names_unique_case_insensitive(self, db_session, restaurant_a):
        catalog_service.create_category(restaurant_a.id, {"name": "Drinks"})
        with pytest.raises(ConflictError):
            catalog_service.create_category(restaurant_a.id, {"name": "drinks"})

    def test_delete_blocked_by_subcategories(self, db_session, restaurant_a):
        category = catalog_service.create_category(restaurant_a.id, {"name": "Drinks"})
        catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": category.id})
        catalog_service.create_subcategory(restaurant_a.id, {"name": "Cold", "category_id": category.id})

        with pytest.raises(ConflictError) as exc:
            catalog_service.delete_category(restaurant_a.id, category.id)
        assert exc.value.details == {"subcategories": 2}
        assert catalog_service.get_category(restaurant_a.id, category.id).name == "Drinks"

    def test_delete_empty_category(self, db_session, restaurant_a):
        category = catalog_service.create_category(restaurant_a.id, {"name": "Drinks"})
        catalog_service.delete_category(restaurant_a.id, category.id)
        with pytest.raises(NotFoundError):
            catalog_service.get_category(restaurant_a.id, category.id)

    def test_rename_follows_products(self, db_session, restaurant_a):
        category = catalog_service.create_category(restaurant_a.id, {"name": "Drinks"})
        product = catalog_service.create_product(restaurant_a.id, {
            "name": "Chai", "sku": "CH", "base_price_cents": 200, "category": "Drinks",
        })

        catalog_service.update_category(restaurant_a.id, category.id, {"name": "Beverages"})

        db.session.expire_all()
        assert db.session.get(Product, product.id).category == "Beverages"


class TestSubcategories:

    @pytest.fixture
    def drinks(self, db_session, restaurant_a):
        return catalog_service.create_category(restaurant_a.id, {"name": "Drinks"})

    def test_delete_blocked_by_products(self, restaurant_a, drinks):
        sub = catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": drinks.id})
        catalog_service.create_product(restaurant_a.id, {
            "name": "Chai", "sku": "CH", "base_price_cents": 200,
            "category": "Drinks", "subcategory": "Hot",
        })

        with pytest.raises(ConflictError) as exc:
            catalog_service.delete_subcategory(restaurant_a.id, sub.id)
        assert exc.value.details == {"products": 1}
        assert db.session.get(Subcategory, sub.id) is not None

    def test_same_name_in_another_category_does_not_block_delete(self, restaurant_a, drinks):
        food = catalog_service.create_category(restaurant_a.id, {"name": "Food"})
        drinks_hot = catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": drinks.id})
        food_hot = catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": food.id})
        catalog_service.create_product(restaurant_a.id, {
            "name": "Vindaloo", "sku": "VN", "base_price_cents": 900,
            "category": "Food", "subcategory": "Hot",
        })

        catalog_service.delete_subcategory(restaurant_a.id, drinks_hot.id)
        assert db.session.get(Subcategory, drinks_hot.id) is None

        with pytest.raises(ConflictError):
            catalog_service.delete_subcategory(restaurant_a.id, food_hot.id)

    def test_rename_only_touches_its_own_category(self, restaurant_a, drinks):
        food = catalog_service.create_category(restaurant_a.id, {"name": "Food"})
        drinks_hot = catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": drinks.id})
        catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": food.id})
        chai = catalog_service.create_product(restaurant_a.id, {
            "name": "Chai", "sku": "CH", "base_price_cents": 200, "category": "Drinks", "subcategory": "Hot",
        })
        curry = catalog_service.create_product(restaurant_a.id, {
            "name": "Vindaloo", "sku": "VN", "base_price_cents": 900, "category": "Food", "subcategory": "Hot",
        })

        catalog_service.update_subcategory(restaurant_a.id, drinks_hot.id, {"name": "Warm"})
        db.session.expire_all()

        assert db.session.get(Product, chai.id).subcategory == "Warm"
        assert db.session.get(Product, curry.id).subcategory == "Hot"

    def test_unique_within_category(self, restaurant_a, drinks):
        catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": drinks.id})
        with pytest.raises(ConflictError):
            catalog_service.create_subcategory(restaurant_a.id, {"name": "HOT", "category_id": drinks.id})

        food = catalog_service.create_category(restaurant_a.id, {"name": "Food"})
        assert catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": food.id})

    def test_list_filtered_by_category(self, restaurant_a, drinks):
        food = catalog_service.create_category(restaurant_a.id, {"name": "Food"})
        catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": drinks.id})
        catalog_service.create_subcategory(restaurant_a.id, {"name": "Mains", "category_id": food.id})

        names = [s.name for s in catalog_service.list_subcategories(restaurant_a.id, category_id=food.id)]
        assert names == ["Mains"]

    def test_delete_route_conflict(self, client, pos_headers_a, restaurant_a, drinks):
        sub = catalog_service.create_subcategory(restaurant_a.id, {"name": "Hot", "category_id": drinks.id})
        catalog_service.create_product(restaurant_a.id, {
            "name": "Chai", "sku": "CH", "base_price_cents": 200,
            "category": "Drinks", "subcategory": "Hot",
        })
        resp = client.delete(f"/api/pos/subcategories/{sub.id}", headers=pos_headers_a)
        assert resp.status_code == 409
        assert resp.get_json()["details"] == {"products": 1}


class TestProducts:

    def test_sku_unique_per_restaurant(self, db_session, restaurant_a):
        catalog_service.create_product(restaurant_a.id, {"name": "Chai", "sku": "CH", "base_price_cents": 200})
        with pytest.raises(ConflictError):
            catalog_service.create_product(restaurant_a.id, {"name": "Other", "sku": "CH", "base_price_cents": 1})

    def test_active_only_hides_inactive(self, db_session, restaurant_a):
        catalog_service.create_product(restaurant_a.id, {"name": "Chai", "sku": "CH", "base_price_cents": 200})
        catalog_service.create_product(restaurant_a.id, {
            "name": "Old Soda", "sku": "OS", "base_price_cents": 150, "status": "inactive",
        })

        assert len(catalog_service.list_products(restaurant_a.id)) == 2
        assert [p.sku for p in catalog_service.list_products(restaurant_a.id, active_only=True)] == ["CH"]

    def test_search_by_name_or_sku(self, db_session, restaurant_a):
        catalog_service.create_product(restaurant_a.id, {"name": "Masala Chai", "sku": "MC-1", "base_price_cents": 200})
        catalog_service.create_product(restaurant_a.id, {"name": "Lassi", "sku": "LS-1", "base_price_cents": 250})

        assert [p.name for p in catalog_service.list_products(restaurant_a.id, search="chai")] == ["Masala Chai"]
        assert [p.name for p in catalog_service.list_products(restaurant_a.id, search="ls-")] == ["Lassi"]

    def test_create_route_validates(self, client, pos_headers_a):
        missing = client.post("/api/pos/products", headers=pos_headers_a, json={"name": "Chai"})
        assert missing.status_code == 400

        negative = client.post("/api/pos/products", headers=pos_headers_a, json={
            "name": "Chai", "sku": "CH", "base_price_cents": -5,
        })
        assert negative.status_code == 400

        bad_status = client.post("/api/pos/products", headers=pos_headers_a, json={
            "name": "Chai", "sku": "CH", "base_price_cents": 5, "status": "archived",
        })
        assert bad_status.status_code == 400

    def test_create_route_with_gallery(self, client, pos_headers_a):
        resp = client.post("/api/pos/products", headers=pos_headers_a, json={
            "name": "Chai", "sku": "CH", "base_price_cents": 200,
            "gallery": ["/uploads/g1.png", "/uploads/g2.png"],
        })
        assert resp.status_code == 201
        assert resp.get_json()["product"]["gallery"] == ["/uploads/g1.png", "/uploads/g2.png"]

    def test_new_product_appears_in_live_stock_view(self, db_session, restaurant_a):
        manager = get_inventory_registry().get(restaurant_a.id)
        product = catalog_service.create_product(restaurant_a.id, {
            "name": "Chai", "sku": "CH", "base_price_cents": 200, "quantity": 12,
        })
        assert manager.get_stock(product.id).available_stock == 12

        catalog_service.delete_product(restaurant_a.id, product.id)
        assert manager.get_stock(product.id) is None


class TestVariants:

    @pytest.fixture
    def shake(self, db_session, restaurant_a):
        return catalog_service.create_product(restaurant_a.id, {"name": "Shake", "sku": "SH", "base_price_cents": 300})

    def test_attributes_kept_in_order(self, restaurant_a, shake):
        variant = catalog_service.create_variant(
            restaurant_a.id, shake.id,
            {"name": "Large Chocolate", "price_cents": 450, "stock": 3},
            attributes=[{"key": "Size", "value": "Large"}, {"key": "Flavor", "value": "Chocolate"}],
        )
        assert [a.to_dict() for a in variant.attributes] == [
            {"key": "Size", "value": "Large"},
            {"key": "Flavor", "value": "Chocolate"},
        ]

    def test_bad_attributes(self, restaurant_a, shake):
        with pytest.raises(ValidationError):
            catalog_service.create_variant(
                restaurant_a.id, shake.id, {"name": "Odd", "price_cents": 1}, attributes=[{"key": "Size"}],
            )

    def test_update_replaces_attributes(self, restaurant_a, shake):
        variant = catalog_service.create_variant(
            restaurant_a.id, shake.id, {"name": "Small", "price_cents": 250},
            attributes=[{"key": "Size", "value": "Small"}],
        )
        catalog_service.update_variant(
            restaurant_a.id, variant.id, {"price_cents": 275},
            attributes=[{"key": "Size", "value": "Regular"}],
        )
        refreshed = catalog_service.get_variant(restaurant_a.id, variant.id)
        assert refreshed.price_cents == 275
        assert [a.value for a in refreshed.attributes] == ["Regular"]

    def test_delete_product_cascades(self, restaurant_a, shake):
        variant = catalog_service.create_variant(
            restaurant_a.id, shake.id, {"name": "Small", "price_cents": 250},
            attributes=[{"key": "Size", "value": "Small"}],
        )
        catalog_service.delete_product(restaurant_a.id, shake.id)

        assert db.session.get(Variant, variant.id) is None
        assert db.session.query(VariantAttribute).filter_by(variant_id=variant.id).count() == 0

    def test_variant_route_rejects_negative_stock(self, client, pos_headers_a, shake):
        resp = client.post(f"/api/pos/products/{shake.id}/variants", headers=pos_headers_a,
                           json={"name": "Small", "price_cents": 250, "stock": -1})
        assert resp.status_code == 400


class TestImages:

    def test_upload_route(self, client, pos_headers_a, uploads):
        resp = client.post(
            "/api/pos/images",
            headers=pos_headers_a,
            data={"file": (io.BytesIO(b"fake png"), "photo.png"), "prefix": "product_main"},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["image_id"].startswith("product_main_")
        assert body["url"] == f"/uploads/{body['image_id']}.png"
        assert os.path.exists(uploads / f"{body['image_id']}.png")

    def test_upload_rejects_other_files(self, client, pos_headers_a, uploads):
        resp = client.post(
            "/api/pos/images",
            headers=pos_headers_a,
            data={"file": (io.BytesIO(b"#!/bin/sh"), "script.sh")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_replacing_main_image_deletes_old_file(self, db_session, restaurant_a, uploads):
        old_url = _store_image(uploads, "product_main_1_old")
        new_url = _store_image(uploads, "product_main_2_new")
        product = catalog_service.create_product(restaurant_a.id, {
            "name": "Chai", "sku": "CH", "base_price_cents": 200, "main_image_url": old_url,
        })

        catalog_service.update_product(restaurant_a.id, product.id, {"main_image_url": new_url})

        assert not (uploads / "product_main_1_old.png").exists()
        assert (uploads / "product_main_2_new.png").exists()

    def test_gallery_replacement_deletes_dropped_images(self, db_session, restaurant_a, uploads):
        keep = _store_image(uploads, "product_gallery_1_keep")
        drop = _store_image(uploads, "product_gallery_2_drop")
        product = catalog_service.create_product(
            restaurant_a.id, {"name": "Chai", "sku": "CH", "base_price_cents": 200}, gallery=[keep, drop],
        )

        catalog_service.update_product(restaurant_a.id, product.id, {}, gallery=[keep])

        assert (uploads / "product_gallery_1_keep.png").exists()
        assert not (uploads / "product_gallery_2_drop.png").exists()
        assert [i.url for i in catalog_service.get_product(restaurant_a.id, product.id).gallery] == [keep]

    def test_delete_product_removes_every_image(self, db_session, restaurant_a, uploads):
        main = _store_image(uploads, "product_main_1_a")
        gallery = _store_image(uploads, "product_gallery_1_b")
        variant_image = _store_image(uploads, "variant_1_c")
        product = catalog_service.create_product(
            restaurant_a.id,
            {"name": "Chai", "sku": "CH", "base_price_cents": 200, "main_image_url": main},
            gallery=[gallery],
        )
        catalog_service.create_variant(
            restaurant_a.id, product.id, {"name": "Large", "price_cents": 300, "image_url": variant_image},
        )

        catalog_service.delete_product(restaurant_a.id, product.id)

        assert list(uploads.iterdir()) == []

    def test_failed_commit_keeps_image_files(self, db_session, restaurant_a, uploads, monkeypatch):
        main = _store_image(uploads, "product_main_1_keep")
        new = _store_image(uploads, "product_main_2_new")
        product = catalog_service.create_product(restaurant_a.id, {
            "name": "Chai", "sku": "CH", "base_price_cents": 200, "main_image_url": main,
        })

        def failing_commit():
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(db.session, "commit", failing_commit)
        with pytest.raises(RuntimeError):
            catalog_service.update_product(restaurant_a.id, product.id, {"main_image_url": new})
        with pytest.raises(RuntimeError):
            catalog_service.delete_product(restaurant_a.id, product.id)
        db.session.rollback()

        assert (uploads / "product_main_1_keep.png").exists()
        assert (uploads / "product_main_2_new.png").exists()

    def test_external_urls_are_left_alone(self, app, uploads):
        assert image_store.delete_url("https://cdn.example.com/a.png") is False
        assert image_store.image_id_from_url("/uploads/variant_1_x.webp") == "variant_1_x"
