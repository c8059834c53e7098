"""
Site appearance: backgrounds, logo, profile image and the default download
watermark.

Which background is active is held in one pointer document
(site_settings/_id="active_background"), so switching is a single-document
write and two backgrounds can never be active at once.
"""
import logging
import shutil
from typing import Any, Dict, Optional

from pymongo import DESCENDING
from starlette.concurrency import run_in_threadpool

from database import create_document, db, pagination_meta, serialize_doc, to_obj_id, utcnow
from errors import NotFound, ValidationError
from schemas import BackgroundUpdate, Backgrounds
import downloads
import storage

logger = logging.getLogger(__name__)

ACTIVE_BACKGROUND_KEY = "active_background"
MAX_BACKGROUND_SIZE = 10 * 1024 * 1024  # 10MB

BACKGROUND_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/svg+xml"}
LOGO_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/svg+xml"}
PROFILE_TYPES = {"image/png", "image/jpeg", "image/jpg"}
WATERMARK_TYPES = {"image/png", "image/jpeg", "image/jpg"}

LOGO_FILES = ("logo.png", "logo.svg", "logo.jpg", "logo.jpeg")
PROFILE_PLACEHOLDER = "/uploads/profile-placeholder.svg"


def _require_type(content_type: Optional[str], allowed: set, message: str):
    if content_type not in allowed:
        raise ValidationError(message)


# -----------------------------
# Backgrounds
# -----------------------------

def active_background_id() -> Optional[str]:
    pointer = db.site_settings.find_one({"_id": ACTIVE_BACKGROUND_KEY})
    return pointer.get("background_id") if pointer else None


def _point_at(background_id: Optional[str]):
    db.site_settings.update_one(
        {"_id": ACTIVE_BACKGROUND_KEY},
        {"$set": {"background_id": background_id, "updated_at": utcnow()}},
        upsert=True,
    )


def _clear_pointer_if(background_id: str):
    db.site_settings.update_one(
        {"_id": ACTIVE_BACKGROUND_KEY, "background_id": background_id},
        {"$set": {"background_id": None, "updated_at": utcnow()}},
    )


def _present_background(doc: Dict[str, Any], active_id: Optional[str]) -> Dict[str, Any]:
    item = serialize_doc(doc)
    item["is_active"] = item["id"] == active_id
    return item


def find_background(background_id: str) -> Dict[str, Any]:
    background = db.backgrounds.find_one({"_id": to_obj_id(background_id)})
    if not background:
        raise NotFound("Background not found")
    return background


def get_active_background() -> Optional[Dict[str, Any]]:
    active_id = active_background_id()
    if not active_id:
        return None
    background = db.backgrounds.find_one({"_id": to_obj_id(active_id)})
    return _present_background(background, active_id) if background else None


def list_backgrounds(page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """Active background first, then newest first."""
    active = get_active_background()
    total = db.backgrounds.count_documents({})

    items = []
    skip = (page - 1) * limit
    rest_query: Dict[str, Any] = {}
    if active:
        rest_query = {"_id": {"$ne": to_obj_id(active["id"])}}
        if page == 1:
            items.append(active)
        else:
            skip -= 1
    remaining = limit - len(items)
    if remaining > 0:
        cursor = (db.backgrounds.find(rest_query)
                  .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
                  .skip(skip).limit(remaining))
        items += [_present_background(b, None) for b in cursor]

    return {"backgrounds": items, "pagination": pagination_meta(page, limit, total)}


def _store_background(background: Backgrounds, set_active: bool) -> Dict[str, Any]:
    bid = create_document("backgrounds", background)
    if not set_active:
        logger.info("setActive=false ignored for background %s; new uploads always become active", bid)
    _point_at(bid)
    logger.info("Background %s uploaded and activated (%s)", bid, background.image_url)
    return _present_background(find_background(bid), bid)


async def upload_background(content: bytes, filename: str, content_type: Optional[str], name: str,
                            set_active: bool = True) -> Dict[str, Any]:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Background name is required")
    _require_type(content_type, BACKGROUND_TYPES, "Invalid file type. Only JPEG, PNG, WebP, and SVG are allowed.")
    if len(content) > MAX_BACKGROUND_SIZE:
        raise ValidationError("File size too large. Maximum 10MB allowed.")

    stored_name = f"{storage.timestamp_ms()}_{storage.sanitize_name(name)}.{storage.file_extension(filename, 'jpg')}"
    path = await storage.save_bytes(f"uploads/backgrounds/{stored_name}", content)
    background = Backgrounds(
        name=name,
        image_url=storage.public_url(path),
        file_size=len(content),
        file_type=content_type,
    )
    return await run_in_threadpool(_store_background, background, set_active)


def update_background(background_id: str, patch: BackgroundUpdate) -> Dict[str, Any]:
    changes = {k: v for k, v in patch.changes().items() if v is not None}
    if not changes:
        raise ValidationError("No valid fields to update")
    background = find_background(background_id)

    if "name" in changes:
        db.backgrounds.update_one({"_id": background["_id"]},
                                  {"$set": {"name": changes["name"].strip(), "updated_at": utcnow()}})
    if changes.get("is_active") is True:
        _point_at(background_id)
    elif changes.get("is_active") is False:
        _clear_pointer_if(background_id)

    return _present_background(find_background(background_id), active_background_id())


def delete_background(background_id: str):
    res = db.backgrounds.delete_one({"_id": to_obj_id(background_id)})
    if res.deleted_count == 0:
        raise NotFound("Background not found")
    _clear_pointer_if(background_id)
    # The image file stays on disk
    logger.info("Background %s deleted", background_id)


# -----------------------------
# Logo
# -----------------------------

def get_logo() -> Dict[str, Any]:
    for filename in LOGO_FILES:
        path = storage.public_dir() / "uploads" / filename
        if path.exists() and path.stat().st_size > 0:
            return {"logo_url": f"/uploads/{filename}", "has_custom_logo": True}
    return {"logo_url": None, "has_custom_logo": False}


async def upload_logo(content: bytes, content_type: Optional[str]) -> Dict[str, Any]:
    _require_type(content_type, LOGO_TYPES, "Invalid file type. Only PNG, JPG, JPEG, and SVG are allowed.")
    is_svg = content_type == "image/svg+xml"
    # Only one logo at a time
    remove_logo()
    path = await storage.save_bytes(f"uploads/logo.{'svg' if is_svg else 'png'}", content)
    if not is_svg:
        shutil.copyfile(path, storage.public_dir() / "favicon.ico")
    return {"message": "Logo uploaded successfully", "logo_url": storage.public_url(path)}


def remove_logo() -> int:
    removed = 0
    for filename in LOGO_FILES:
        if storage.delete_quietly(storage.public_dir() / "uploads" / filename):
            removed += 1
    return removed


# -----------------------------
# Profile image
# -----------------------------

def get_profile_image() -> Dict[str, str]:
    for filename in ("profile.png", "profile.jpg"):
        if (storage.public_dir() / "uploads" / filename).exists():
            return {"profile_image": f"/uploads/{filename}"}
    return {"profile_image": PROFILE_PLACEHOLDER}


async def upload_profile_image(content: bytes, content_type: Optional[str]) -> Dict[str, str]:
    _require_type(content_type, PROFILE_TYPES, "Only PNG, JPG, and JPEG files are allowed")
    extension = "png" if content_type == "image/png" else "jpg"
    for filename in ("profile.png", "profile.jpg"):
        storage.delete_quietly(storage.public_dir() / "uploads" / filename)
    path = await storage.save_bytes(f"uploads/profile.{extension}", content)
    return {"message": "Profile image uploaded successfully", "profile_image": storage.public_url(path)}


# -----------------------------
# Default watermark
# -----------------------------

def get_watermark() -> Dict[str, Any]:
    path = downloads.default_watermark_path()
    return {
        "watermark_url": storage.public_url(path) if path else "",
        "has_default_watermark": path is not None,
    }


def _remove_default_watermarks() -> bool:
    stem = downloads.DEFAULT_WATERMARK_STEM
    removed = False
    for ext in downloads.WATERMARK_EXTENSIONS:
        if storage.delete_quietly(storage.public_dir() / "watermarks" / f"{stem}{ext}"):
            removed = True
    return removed


async def upload_watermark(content: bytes, content_type: Optional[str]) -> Dict[str, Any]:
    _require_type(content_type, WATERMARK_TYPES, "Invalid file type. Only PNG, JPG, and JPEG are allowed.")
    _remove_default_watermarks()
    extension = ".png" if content_type == "image/png" else ".jpg"
    path = await storage.save_bytes(f"watermarks/{downloads.DEFAULT_WATERMARK_STEM}{extension}", content)
    return {"message": "Watermark uploaded successfully", "watermark_url": storage.public_url(path)}


def remove_watermark():
    if not _remove_default_watermarks():
        raise NotFound("No watermark found to remove")


# -----------------------------
# Placeholder images
# -----------------------------

PLACEHOLDER_SIZE = 300
PLACEHOLDER_MAX_SIZE = 4000


def placeholder_svg(width: int = PLACEHOLDER_SIZE, height: int = PLACEHOLDER_SIZE) -> str:
    """Gradient SVG used where artwork or product images are still missing."""
    if not (0 < width <= PLACEHOLDER_MAX_SIZE and 0 < height <= PLACEHOLDER_MAX_SIZE):
        raise ValidationError(f"Placeholder size must be between 1 and {PLACEHOLDER_MAX_SIZE}")
    return (
        f'<svg width="{width}" height="{height}" xmlns="http://www.w3.org/2000/svg">'
        '<defs><linearGradient id="grad" x1="0%" y1="0%" x2="100%" y2="100%">'
        '<stop offset="0%" style="stop-color:#8B5CF6;stop-opacity:1" />'
        '<stop offset="100%" style="stop-color:#EC4899;stop-opacity:1" />'
        '</linearGradient></defs>'
        '<rect width="100%" height="100%" fill="url(#grad)" />'
        '<circle cx="50%" cy="40%" r="25%" fill="white" opacity="0.3" />'
        f'<path d="M{width * 0.3:g} {height * 0.7:g} Q{width * 0.5:g} {height * 0.6:g} {width * 0.7:g} {height * 0.7:g} '
        f'L{width * 0.7:g} {height} L{width * 0.3:g} {height} Z" fill="white" opacity="0.3" />'
        '</svg>'
    )
