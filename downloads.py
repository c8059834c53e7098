"""
Download fulfillment: turn a paid and delivered order into a download link
(the product file itself, or a ZIP bundle with previews and a watermark),
stamp a 30 day expiry on the order and email the customer.
"""
import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from starlette.concurrency import run_in_threadpool

from database import as_utc_naive, db, to_obj_id, utcnow
from errors import InternalError, InvalidState, NotFound, ValidationError
import mailer
import orders
import storage

logger = logging.getLogger(__name__)

WATERMARK_EXTENSIONS = (".png", ".jpg", ".jpeg")
DEFAULT_WATERMARK_STEM = "default-watermark"


@dataclass
class CustomWatermark:
    filename: str
    content: bytes


@dataclass
class DownloadResult:
    download_url: str
    expires_at: datetime
    notification: mailer.NotificationResult

    def to_dict(self) -> Dict[str, Any]:
        if self.notification.sent:
            message = "Download link generated and email sent successfully"
        else:
            message = "Download link generated; email notification failed"
        return {
            "message": message,
            "download_url": self.download_url,
            "expires_at": self.expires_at,
            "notification": self.notification.to_dict(),
        }


def default_watermark_path() -> Optional[Path]:
    stem = storage.public_dir() / "watermarks" / DEFAULT_WATERMARK_STEM
    return storage.first_existing(stem, WATERMARK_EXTENSIONS)


async def _stage_custom_watermark(custom: CustomWatermark) -> Path:
    ext = storage.file_extension(custom.filename, default="png")
    return await storage.save_bytes(f"temp/watermark_{storage.timestamp_ms()}.{ext}", custom.content)


def build_archive(product: Dict[str, Any], order_id: str, watermark_path: Optional[Path],
                  watermark_option: str) -> str:
    """Write the ZIP bundle for an order and return its public url."""
    zip_name = f"{storage.sanitize_name(product['title'])}_{order_id}.zip"
    zip_path = storage.public_dir() / "downloads" / zip_name
    zip_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            main_file = storage.resolve_public_path(product.get("file_url"))
            if main_file:
                archive.write(main_file, f"{product['title']}.{storage.file_extension(main_file.name)}")
            else:
                logger.warning("Product file %s not found; bundle for order %s has no main file",
                               product.get("file_url"), order_id)

            for index, image_url in enumerate(product.get("preview_images") or [], start=1):
                image = storage.resolve_public_path(image_url)
                if image:
                    archive.write(image, f"preview_{index}.{storage.file_extension(image.name)}")

            if watermark_path and watermark_path.exists():
                label = "custom_watermark" if watermark_option == "custom" else "default_watermark"
                archive.write(watermark_path, f"{label}.{storage.file_extension(watermark_path.name)}")
    except (OSError, zipfile.BadZipFile) as e:
        logger.error("Failed to build archive %s: %s", zip_path, e, exc_info=True)
        raise InternalError("Failed to generate download archive")

    return storage.public_url(zip_path)


def _load_fulfillable(order_id: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    order = orders.find_order(order_id)
    product = db.products.find_one({"_id": to_obj_id(order["product_id"])})
    if not product:
        raise NotFound("Product not found")
    if not orders.is_fulfillable(order):
        raise InvalidState("Order must be paid and delivered to generate download")
    return order, product


def _persist_link(order: Dict[str, Any], download_url: str) -> datetime:
    """Store the link on the order, provided it is still paid and delivered."""
    expires_at = utcnow() + orders.DOWNLOAD_TTL
    res = db.orders.update_one(
        {"_id": order["_id"], "payment_status": "paid", "delivery_status": "delivered"},
        {"$set": {"download_link": download_url, "download_expires": expires_at, "updated_at": utcnow()}},
    )
    if res.matched_count == 0:
        raise InvalidState("Order must be paid and delivered to generate download")
    orders.record_fulfillment(order)
    return expires_at


async def generate_download(order_id: str, download_type: str = "url", watermark_option: str = "default",
                            custom_watermark: Optional[CustomWatermark] = None) -> DownloadResult:
    """Build the download for an order and notify the customer.

    Database, archive and SMTP work runs in the threadpool so a slow mail
    server or a large bundle does not stall the event loop.
    """
    if download_type not in ("url", "zip"):
        raise ValidationError("download_type must be 'url' or 'zip'")
    if watermark_option not in ("default", "none", "custom"):
        raise ValidationError("watermark_option must be 'default', 'none' or 'custom'")

    order, product = await run_in_threadpool(_load_fulfillable, order_id)

    if download_type == "zip":
        staged = None
        try:
            if watermark_option == "custom" and custom_watermark is not None:
                staged = await _stage_custom_watermark(custom_watermark)
                watermark_path = staged
            elif watermark_option == "default":
                watermark_path = default_watermark_path()
            else:
                watermark_path = None
            download_url = await run_in_threadpool(build_archive, product, order_id, watermark_path, watermark_option)
        finally:
            storage.delete_quietly(staged)
    else:
        download_url = product["file_url"]

    expires_at = await run_in_threadpool(_persist_link, order, download_url)
    logger.info("Download for order %s ready at %s (expires %s)", order_id, download_url, expires_at.isoformat())

    # Url downloads hand out the product file as is; no watermark applies
    applied_watermark = watermark_option if download_type == "zip" else None
    notification = await run_in_threadpool(
        mailer.send_download_ready, order, product, download_url, expires_at, applied_watermark,
    )
    return DownloadResult(download_url=download_url, expires_at=expires_at, notification=notification)


def check_download_status(order_id: str) -> Dict[str, Any]:
    order = orders.find_order(order_id)
    product = db.products.find_one({"_id": to_obj_id(order["product_id"])}, {"title": 1})
    expires = order.get("download_expires")
    is_expired = bool(expires) and utcnow() > as_utc_naive(expires)
    return {
        "has_download": bool(order.get("download_link")),
        "download_url": order.get("download_link"),
        "expires_at": expires,
        "is_expired": is_expired,
        "product_title": product["title"] if product else None,
    }
