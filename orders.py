"""
Order lifecycle.

An order's payment and delivery statuses are stored as two fields, but they
only ever move together through the states below. Admin status updates are
checked against TRANSITIONS; anything else is rejected with InvalidState.

    awaiting_payment -> paid | payment_failed
    paid             -> processing | delivered | delivery_failed | refunded
    processing       -> delivered | delivery_failed | refunded
    delivered        -> refunded
    payment_failed   -> refunded
    delivery_failed  -> refunded
"""
import logging
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument

from auth import Principal, is_admin
from database import create_document, db, pagination_meta, serialize_doc, to_obj_id, utcnow
from errors import InvalidState, NotFound, Unauthorized, ValidationError
from schemas import OrderCreate, Orders, OrderStatusPatch

logger = logging.getLogger(__name__)

DOWNLOAD_TTL = timedelta(days=30)
PRODUCT_SUMMARY_FIELDS = ("title", "price", "watermark_url", "category")


class OrderState(str, Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    PAYMENT_FAILED = "payment_failed"
    DELIVERY_FAILED = "delivery_failed"
    REFUNDED = "refunded"


_STATE_BY_PAIR = {
    ("pending", "pending"): OrderState.AWAITING_PAYMENT,
    ("paid", "pending"): OrderState.PAID,
    ("paid", "processing"): OrderState.PROCESSING,
    ("paid", "delivered"): OrderState.DELIVERED,
    ("failed", "pending"): OrderState.PAYMENT_FAILED,
    ("paid", "failed"): OrderState.DELIVERY_FAILED,
}

TRANSITIONS = {
    OrderState.AWAITING_PAYMENT: {OrderState.PAID, OrderState.PAYMENT_FAILED},
    OrderState.PAID: {OrderState.PROCESSING, OrderState.DELIVERED, OrderState.DELIVERY_FAILED, OrderState.REFUNDED},
    OrderState.PROCESSING: {OrderState.DELIVERED, OrderState.DELIVERY_FAILED, OrderState.REFUNDED},
    OrderState.DELIVERED: {OrderState.REFUNDED},
    OrderState.PAYMENT_FAILED: {OrderState.REFUNDED},
    OrderState.DELIVERY_FAILED: {OrderState.REFUNDED},
    OrderState.REFUNDED: set(),
}


def state_of(payment_status: str, delivery_status: str) -> Optional[OrderState]:
    """Map a status pair onto its state; None for combinations no valid path reaches."""
    if payment_status == "refunded":
        return OrderState.REFUNDED
    return _STATE_BY_PAIR.get((payment_status, delivery_status))


def order_state(order: Dict[str, Any]) -> Optional[OrderState]:
    return state_of(order.get("payment_status", "pending"), order.get("delivery_status", "pending"))


def is_fulfillable(order: Dict[str, Any]) -> bool:
    return order_state(order) == OrderState.DELIVERED


def plan_transition(payment_status: str, delivery_status: str,
                    new_payment: Optional[str], new_delivery: Optional[str]) -> Tuple[str, str]:
    """Validate a status change, applying payment first, then delivery.

    Returns the resulting (payment_status, delivery_status) pair.
    """
    current = state_of(payment_status, delivery_status)
    steps = []
    if new_payment is not None and new_payment != payment_status:
        payment_status = new_payment
        steps.append((payment_status, delivery_status))
    if new_delivery is not None and new_delivery != delivery_status:
        delivery_status = new_delivery
        steps.append((payment_status, delivery_status))

    # Every step changes a field, so a state with no outgoing edges (refunded) rejects it
    for pair in steps:
        target = state_of(*pair)
        if current is None or target is None or target not in TRANSITIONS[current]:
            raise InvalidState(
                f"Cannot move order from '{current.value if current else 'unknown'}' "
                f"to payment '{pair[0]}' / delivery '{pair[1]}'"
            )
        current = target
    return payment_status, delivery_status


# -----------------------------
# Pricing
# -----------------------------

def final_price(product: Dict[str, Any]) -> int:
    price = int(product.get("price", 0))
    discount = int(product.get("discount", 0) or 0)
    return price - (price * discount) // 100


# -----------------------------
# Reads
# -----------------------------

def _product_summaries(product_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    oids = []
    for pid in set(product_ids):
        try:
            oids.append(to_obj_id(pid))
        except ValidationError:
            continue
    projection = {field: 1 for field in PRODUCT_SUMMARY_FIELDS}
    return {str(p["_id"]): serialize_doc(p) for p in db.products.find({"_id": {"$in": oids}}, projection)}


def _with_product(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    summaries = _product_summaries([o.get("product_id") for o in orders])
    result = []
    for order in orders:
        item = serialize_doc(order)
        item["product"] = summaries.get(order.get("product_id"))
        state = order_state(order)
        item["state"] = state.value if state else None
        result.append(item)
    return result


def find_order(order_id: str) -> Dict[str, Any]:
    order = db.orders.find_one({"_id": to_obj_id(order_id)})
    if not order:
        raise NotFound("Order not found")
    return order


def get_order(order_id: str) -> Dict[str, Any]:
    return _with_product([find_order(order_id)])[0]


def list_orders(principal: Optional[Principal], email: Optional[str] = None,
                delivery_status: Optional[str] = None, payment_status: Optional[str] = None,
                page: int = 1, limit: int = 10) -> Dict[str, Any]:
    if principal is None:
        raise Unauthorized()

    query: Dict[str, Any] = {}
    if is_admin(principal):
        if email:
            query["customer_email"] = email.strip().lower()
    else:
        # Non-admin callers are always scoped to their own account email
        query["customer_email"] = principal.email.lower()
    if delivery_status:
        query["delivery_status"] = delivery_status
    if payment_status:
        query["payment_status"] = payment_status

    skip = (page - 1) * limit
    cursor = db.orders.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).skip(skip).limit(limit)
    orders = _with_product(list(cursor))
    total = db.orders.count_documents(query)
    return {"orders": orders, "pagination": pagination_meta(page, limit, total)}


# -----------------------------
# Writes
# -----------------------------

def create_order(payload: OrderCreate) -> Dict[str, Any]:
    product = db.products.find_one({"_id": to_obj_id(payload.product_id)})
    if not product or not product.get("active", True):
        raise NotFound("Product not found or inactive")

    order = Orders(
        customer_name=payload.customer_name,
        customer_email=payload.customer_email.lower(),
        customer_phone=payload.customer_phone,
        customer_address=payload.customer_address,
        product_id=str(product["_id"]),
        quantity=payload.quantity,
        total_amount=final_price(product) * payload.quantity,
        notes=payload.notes,
        payment_proof=payload.payment_proof,
    )
    oid = create_document("orders", order)
    logger.info("Order %s created for product %s (qty %d, total %d)",
                oid, order.product_id, order.quantity, order.total_amount)
    return get_order(oid)


def record_fulfillment(order: Dict[str, Any]) -> bool:
    """Credit the product's download counter once per delivered order.

    The order is claimed with a conditional update first, so repeated calls
    (status update, then download generation) increment at most once.
    """
    claimed = db.orders.find_one_and_update(
        {
            "_id": order["_id"],
            "payment_status": "paid",
            "delivery_status": "delivered",
            "downloads_counted": {"$ne": True},
        },
        {"$set": {"downloads_counted": True}},
    )
    if not claimed:
        return False
    db.products.update_one(
        {"_id": to_obj_id(claimed["product_id"])},
        {"$inc": {"downloads": claimed.get("quantity", 1)}},
    )
    logger.info("Order %s fulfilled; product %s downloads +%d",
                claimed["_id"], claimed["product_id"], claimed.get("quantity", 1))
    return True


def update_order_status(order_id: str, patch: OrderStatusPatch) -> Dict[str, Any]:
    order = find_order(order_id)
    changes = patch.changes()
    if not changes:
        raise ValidationError("No fields to update")
    payment_status = order.get("payment_status", "pending")
    delivery_status = order.get("delivery_status", "pending")

    new_payment, new_delivery = plan_transition(
        payment_status, delivery_status,
        changes.get("payment_status"), changes.get("delivery_status"),
    )
    entering_delivered = (
        state_of(new_payment, new_delivery) == OrderState.DELIVERED
        and state_of(payment_status, delivery_status) != OrderState.DELIVERED
    )

    update: Dict[str, Any] = {
        "payment_status": new_payment,
        "delivery_status": new_delivery,
        "updated_at": utcnow(),
    }
    if changes.get("download_link") is not None:
        if state_of(new_payment, new_delivery) != OrderState.DELIVERED:
            raise InvalidState("Order must be paid and delivered before a download link is set")
        update["download_link"] = changes["download_link"]
        update["download_expires"] = utcnow() + DOWNLOAD_TTL
    if "notes" in changes:
        update["notes"] = changes["notes"]
    if entering_delivered and "download_expires" not in update:
        update["download_expires"] = utcnow() + DOWNLOAD_TTL

    # Only apply if nobody changed the statuses since we read them
    updated = db.orders.find_one_and_update(
        {"_id": order["_id"], "payment_status": payment_status, "delivery_status": delivery_status},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise InvalidState("Order was modified concurrently; reload and retry")

    logger.info("Order %s: %s/%s -> %s/%s", order_id, payment_status, delivery_status, new_payment, new_delivery)
    if entering_delivered:
        record_fulfillment(updated)
    return get_order(order_id)


def delete_order(order_id: str):
    res = db.orders.delete_one({"_id": to_obj_id(order_id)})
    if res.deleted_count == 0:
        raise NotFound("Order not found")
    logger.info("Order %s deleted", order_id)
