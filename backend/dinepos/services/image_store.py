# Overview: Local-disk image store for product, gallery and variant images.

"""
Images are saved under UPLOAD_FOLDER as "<image_id><ext>" and served at
/uploads/<filename>. The image id is recoverable from the URL, which is how
replaced or deleted images are cleaned up.
"""

from __future__ import annotations

import logging
import os
import re
import secrets
import time
from pathlib import Path

from flask import current_app
from werkzeug.utils import secure_filename

from ..validation import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}
URL_PREFIX = "/uploads/"

_ID_FROM_URL = re.compile(r"/([^/]+)\.[a-zA-Z]+$")


def upload_dir() -> str:
    folder = current_app.config.get("UPLOAD_FOLDER", "uploads")
    if not os.path.isabs(folder):
        folder = os.path.join(current_app.instance_path, folder)
    os.makedirs(folder, exist_ok=True)
    return folder


def generate_image_id(prefix: str) -> str:
    """e.g. product_main_1718000000000_k3j9x2ab"""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def image_id_from_url(url: str | None) -> str | None:
    if not url:
        return None
    match = _ID_FROM_URL.search(url)
    return match.group(1) if match else None


def save(image_id: str, file) -> str:
    """Store an uploaded werkzeug FileStorage; returns its public URL."""
    if not file or not file.filename:
        raise ValidationError("No file selected")

    ext = Path(secure_filename(file.filename)).suffix.lower()
    if ext not in ALLOWED_IMAGE_EXTS:
        raise ValidationError("Only jpg, jpeg, png, webp and gif images are allowed")

    filename = f"{secure_filename(image_id)}{ext}"
    file.save(os.path.join(upload_dir(), filename))
    return f"{URL_PREFIX}{filename}"


def delete(image_id: str | None) -> bool:
    """Remove every stored file for image_id. Missing files are not an error."""
    if not image_id:
        return False
    folder = upload_dir()
    safe_id = secure_filename(image_id)
    removed = False
    for ext in ALLOWED_IMAGE_EXTS:
        path = os.path.join(folder, f"{safe_id}{ext}")
        if os.path.exists(path):
            os.remove(path)
            removed = True
    return removed


def delete_url(url: str | None) -> bool:
    # Only our own uploads can be deleted; external URLs are left alone
    if not url or not url.startswith(URL_PREFIX):
        return False
    try:
        return delete(image_id_from_url(url))
    except OSError:
        logger.warning("Could not delete image %s", url, exc_info=True)
        return False


def delete_urls(urls) -> None:
    for url in urls:
        delete_url(url)


def product_image_urls(product) -> list[str]:
    """Main image, gallery and every variant image of a product."""
    urls = [product.main_image_url]
    urls.extend(image.url for image in product.gallery)
    urls.extend(variant.image_url for variant in product.variants)
    return [url for url in urls if url]
