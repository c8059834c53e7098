import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaError
from pymongo import ASCENDING, DESCENDING

from database import create_document, db, pagination_meta, serialize_doc, to_obj_id, utcnow
from errors import NotFound, ValidationError
from orders import final_price
from schemas import ArtworkUpdate, Artworks, Products, ProductUpdate

logger = logging.getLogger(__name__)

PRODUCT_SORT_KEYS = ("created_at", "price", "downloads", "title")
RELATED_PRODUCTS_LIMIT = 8
RELATED_ARTWORKS_LIMIT = 6


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def text_filter(search: str, fields: List[str]) -> Dict[str, Any]:
    pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
    return {"$or": [{f: pattern} for f in fields]}


# -----------------------------
# Products
# -----------------------------

def _present_product(doc: Dict[str, Any], hide_file: bool = False) -> Dict[str, Any]:
    item = serialize_doc(doc)
    item["final_price"] = final_price(doc)
    if hide_file:
        item.pop("file_url", None)
    return item


def _product_facets() -> Dict[str, Any]:
    base = {"active": True}
    price_range = list(db.products.aggregate([
        {"$match": base},
        {"$group": {"_id": None, "minPrice": {"$min": "$price"}, "maxPrice": {"$max": "$price"}}},
    ]))
    if price_range:
        bounds = {"minPrice": price_range[0]["minPrice"], "maxPrice": price_range[0]["maxPrice"]}
    else:
        bounds = {"minPrice": 0, "maxPrice": 0}
    return {
        "categories": sorted(db.products.distinct("category", base)),
        "tags": sorted(db.products.distinct("tags", base)),
        "priceRange": bounds,
    }


def list_products(page: int = 1, limit: int = 12, search: Optional[str] = None,
                  category: Optional[str] = None, tags: Optional[List[str]] = None,
                  min_price: Optional[int] = None, max_price: Optional[int] = None,
                  sort_by: str = "created_at", sort_order: str = "desc") -> Dict[str, Any]:
    if sort_by not in PRODUCT_SORT_KEYS:
        raise ValidationError(f"sortBy must be one of: {', '.join(PRODUCT_SORT_KEYS)}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sortOrder must be 'asc' or 'desc'")

    query: Dict[str, Any] = {"active": True}
    if search:
        query.update(text_filter(search, ["title", "description", "tags"]))
    if category:
        query["category"] = category
    if tags:
        query["tags"] = {"$in": tags}
    if min_price is not None or max_price is not None:
        price_query = {}
        if min_price is not None:
            price_query["$gte"] = min_price
        if max_price is not None:
            price_query["$lte"] = max_price
        query["price"] = price_query

    direction = DESCENDING if sort_order == "desc" else ASCENDING
    skip = (page - 1) * limit
    cursor = db.products.find(query).sort([(sort_by, direction), ("_id", direction)]).skip(skip).limit(limit)
    products = [_present_product(p) for p in cursor]
    total = db.products.count_documents(query)
    return {
        "products": products,
        "pagination": pagination_meta(page, limit, total),
        "filters": _product_facets(),
    }


def find_product(product_id: str, active_only: bool = True) -> Dict[str, Any]:
    query: Dict[str, Any] = {"_id": to_obj_id(product_id)}
    if active_only:
        query["active"] = True
    product = db.products.find_one(query)
    if not product:
        raise NotFound("Product not found")
    return product


def get_product(product_id: str) -> Dict[str, Any]:
    product = find_product(product_id)
    related = db.products.find({
        "_id": {"$ne": product["_id"]},
        "active": True,
        "$or": [{"category": product.get("category")}, {"tags": {"$in": product.get("tags", [])}}],
    }).sort([("downloads", DESCENDING), ("created_at", DESCENDING)]).limit(RELATED_PRODUCTS_LIMIT)
    return {
        "product": _present_product(product, hide_file=True),
        "relatedProducts": [_present_product(p, hide_file=True) for p in related],
    }


def create_product(payload: Products) -> Dict[str, Any]:
    pid = create_document("products", payload)
    logger.info("Product %s created: %s", pid, payload.title)
    return _present_product(find_product(pid, active_only=False))


def update_product(product_id: str, patch: ProductUpdate) -> Dict[str, Any]:
    product = find_product(product_id, active_only=False)
    changes = {k: v for k, v in patch.changes().items() if v is not None}
    if not changes:
        raise ValidationError("No fields to update")

    merged = {k: v for k, v in product.items() if k in Products.model_fields}
    merged.update(changes)
    try:
        validated = Products(**merged)
    except SchemaError as e:
        raise ValidationError(e.errors()[0]["msg"])

    update = validated.model_dump(include=set(changes) | {"original_price"})
    update["updated_at"] = utcnow()
    db.products.update_one({"_id": product["_id"]}, {"$set": update})
    logger.info("Product %s updated: %s", product_id, sorted(changes))
    return _present_product(find_product(product_id, active_only=False))


def deactivate_product(product_id: str):
    """Soft delete: the product leaves the catalog but the record stays."""
    res = db.products.update_one({"_id": to_obj_id(product_id)}, {"$set": {"active": False, "updated_at": utcnow()}})
    if res.matched_count == 0:
        raise NotFound("Product not found")
    logger.info("Product %s deactivated", product_id)


# -----------------------------
# Artworks
# -----------------------------

ARTWORK_SORT = [("featured", DESCENDING), ("created_at", DESCENDING), ("_id", DESCENDING)]


def list_artworks(page: int = 1, limit: int = 12, search: Optional[str] = None,
                  tags: Optional[List[str]] = None, featured: bool = False) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if search:
        query.update(text_filter(search, ["title", "description", "tags"]))
    if tags:
        query["tags"] = {"$in": tags}
    if featured:
        query["featured"] = True

    skip = (page - 1) * limit
    artworks = [serialize_doc(a) for a in db.artworks.find(query).sort(ARTWORK_SORT).skip(skip).limit(limit)]
    total = db.artworks.count_documents(query)
    return {
        "artworks": artworks,
        "pagination": pagination_meta(page, limit, total),
        "filters": {"tags": sorted(db.artworks.distinct("tags"))},
    }


def find_artwork(artwork_id: str) -> Dict[str, Any]:
    artwork = db.artworks.find_one({"_id": to_obj_id(artwork_id)})
    if not artwork:
        raise NotFound("Artwork not found")
    return artwork


def get_artwork(artwork_id: str) -> Dict[str, Any]:
    artwork = find_artwork(artwork_id)
    related = list(db.artworks.find({
        "_id": {"$ne": artwork["_id"]},
        "tags": {"$in": artwork.get("tags", [])},
    }).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(RELATED_ARTWORKS_LIMIT))

    if len(related) < RELATED_ARTWORKS_LIMIT:
        seen = [artwork["_id"]] + [a["_id"] for a in related]
        related += list(db.artworks.find({"_id": {"$nin": seen}})
                        .sort([("created_at", DESCENDING), ("_id", DESCENDING)])
                        .limit(RELATED_ARTWORKS_LIMIT - len(related)))

    return {
        "artwork": serialize_doc(artwork),
        "relatedArtworks": [serialize_doc(a) for a in related],
    }


def create_artwork(payload: Artworks) -> Dict[str, Any]:
    aid = create_document("artworks", payload)
    logger.info("Artwork %s created: %s", aid, payload.title)
    return serialize_doc(find_artwork(aid))


def update_artwork(artwork_id: str, patch: ArtworkUpdate) -> Dict[str, Any]:
    artwork = find_artwork(artwork_id)
    changes = {k: v for k, v in patch.changes().items() if v is not None}
    if not changes:
        raise ValidationError("No fields to update")
    changes["updated_at"] = utcnow()
    db.artworks.update_one({"_id": artwork["_id"]}, {"$set": changes})
    logger.info("Artwork %s updated", artwork_id)
    return serialize_doc(find_artwork(artwork_id))


def delete_artwork(artwork_id: str):
    res = db.artworks.delete_one({"_id": to_obj_id(artwork_id)})
    if res.deleted_count == 0:
        raise NotFound("Artwork not found")
    logger.info("Artwork %s deleted", artwork_id)
