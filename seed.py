"""
Fill an empty database with demo users, artworks, products and orders.

Run with `python seed.py`. Existing users, artworks, products and orders are
removed first, so running it twice leaves one copy of everything.
"""
import logging
from typing import Dict

from werkzeug.security import generate_password_hash

from config import setup_logging
from database import create_document, db, to_obj_id, utcnow
from schemas import Artworks, Orders, Products, Users
import orders

logger = logging.getLogger(__name__)

SEEDED_COLLECTIONS = ("users", "artworks", "products", "orders")

USERS = [
    {"username": "admin", "email": "admin@seratus.com", "password": "admin123", "role": "admin"},
    {"username": "user1", "email": "user1@example.com", "password": "password123", "role": "user"},
    {"username": "artist", "email": "artist@seratus.com", "password": "artist123", "role": "user"},
]

ARTWORKS = [
    {
        "title": "Digital Abstract #001",
        "description": "A mesmerizing digital abstract artwork featuring flowing geometric patterns "
                       "and vibrant color gradients.",
        "images": ["/api/placeholder/800/1200"],
        "tags": ["abstract", "digital", "geometric", "colorful"],
        "process_steps": ["Concept Development", "Digital Sketching", "Color Exploration", "Final Composition"],
        "creative_process_images": [
            {"title": "Initial Concept Sketch",
             "description": "Early conceptual sketches exploring geometric forms and composition ideas.",
             "image_url": "/api/placeholder/800/600"},
            {"title": "Color Palette Development",
             "description": "Experimenting with different color combinations and gradients.",
             "image_url": "/api/placeholder/800/600"},
        ],
        "featured": True,
    },
    {
        "title": "Neon Dreams",
        "description": "Cyberpunk-inspired artwork with neon lights and futuristic elements.",
        "images": ["/api/placeholder/800/1200"],
        "tags": ["cyberpunk", "neon", "futuristic", "digital"],
        "process_steps": ["Mood Board Creation", "3D Modeling", "Lighting Setup", "Post Processing"],
        "featured": True,
    },
    {
        "title": "Minimalist Landscape",
        "description": "Clean and simple landscape composition with a muted palette.",
        "images": ["/api/placeholder/800/1200"],
        "tags": ["minimalist", "landscape", "nature"],
        "process_steps": ["Reference Study", "Shape Blocking", "Color Grading"],
    },
    {
        "title": "Urban Architecture",
        "description": "Geometric study of city buildings at dusk.",
        "images": ["/api/placeholder/800/1200"],
        "tags": ["architecture", "urban", "geometric"],
    },
    {
        "title": "Color Explosion",
        "description": "Bursts of saturated color layered over a dark background.",
        "images": ["/api/placeholder/800/1200"],
        "tags": ["abstract", "colorful"],
    },
    {
        "title": "Digital Portrait Series",
        "description": "A series of stylised digital portraits exploring light and mood.",
        "images": ["/api/placeholder/800/1200", "/api/placeholder/800/1000"],
        "tags": ["portrait", "digital", "series"],
    },
]

PRODUCTS = [
    {
        "title": "Premium Digital Art Pack #1",
        "description": "High resolution abstract pieces ready for print and screen.",
        "price": 150000, "original_price": 200000, "discount": 10,
        "category": "Digital Art",
        "file_url": "/uploads/products/digital-art-pack-1.zip",
        "watermark_url": "/api/placeholder/800/600",
        "preview_images": ["/api/placeholder/800/600"],
        "tags": ["abstract", "digital", "print"],
    },
    {
        "title": "Abstract Illustration Set",
        "description": "Colorful abstract illustrations for web and print design.",
        "price": 100000,
        "category": "Illustrations",
        "file_url": "/uploads/products/abstract-illustrations.zip",
        "watermark_url": "/api/placeholder/800/600",
        "tags": ["abstract", "illustration", "colorful"],
    },
    {
        "title": "Business Card Template Pack",
        "description": "Editable business card templates for corporate identities.",
        "price": 75000, "discount": 20,
        "category": "Templates",
        "file_url": "/uploads/products/business-card-templates.zip",
        "watermark_url": "/api/placeholder/800/600",
        "tags": ["template", "professional", "corporate"],
    },
    {
        "title": "Mobile App Mockup Collection",
        "description": "Device mockups for presenting mobile app designs.",
        "price": 120000, "discount": 5,
        "category": "Mockups",
        "file_url": "/uploads/products/mobile-app-mockups.zip",
        "watermark_url": "/api/placeholder/800/600",
        "tags": ["mockup", "mobile", "app"],
    },
]

# (name, email, product index, quantity, payment_status, delivery_status, notes)
ORDERS = [
    ("Ahmad Rizki", "ahmad.rizki@email.com", 0, 1, "paid", "delivered",
     "Terima kasih untuk desainnya yang keren!"),
    ("Sari Dewi", "sari.dewi@gmail.com", 1, 2, "paid", "processing",
     "Mohon dikirim dalam format AI dan PNG"),
    ("Budi Santoso", "budi.santoso@yahoo.com", 2, 1, "pending", "pending",
     "Akan transfer setelah melihat preview final"),
    ("Maya Putri", "maya.putri@outlook.com", 0, 3, "paid", "delivered",
     "Sangat puas dengan hasilnya, akan order lagi!"),
    ("Andi Wijaya", "andi.wijaya@email.com", 3, 1, "failed", "pending",
     "Pembayaran gagal, mohon info cara pembayaran lain"),
    ("Rina Sari", "rina.sari@gmail.com", 1, 2, "paid", "processing",
     "Butuh revisi minor pada warna"),
]


def _clear():
    for name in SEEDED_COLLECTIONS:
        res = db[name].delete_many({})
        logger.info("Cleared %s %s", res.deleted_count, name)


def _seed_orders(products) -> int:
    for name, email, index, quantity, payment, delivery, notes in ORDERS:
        product = products[index]
        order = Orders(
            customer_name=name,
            customer_email=email,
            customer_phone="+62 812 0000 0000",
            customer_address="Jakarta, Indonesia",
            product_id=str(product["_id"]),
            quantity=quantity,
            total_amount=orders.final_price(product) * quantity,
            payment_status=payment,
            delivery_status=delivery,
            notes=notes,
        )
        if orders.state_of(payment, delivery) == orders.OrderState.DELIVERED:
            order.download_link = product["file_url"]
            order.download_expires = utcnow() + orders.DOWNLOAD_TTL
        oid = create_document("orders", order)
        orders.record_fulfillment({"_id": to_obj_id(oid)})
    return len(ORDERS)


def seed() -> Dict[str, int]:
    """Replace the demo collections and return how many documents each got."""
    _clear()

    for user in USERS:
        create_document("users", Users(
            username=user["username"],
            email=user["email"],
            password=generate_password_hash(user["password"]),
            role=user["role"],
        ))
    for artwork in ARTWORKS:
        create_document("artworks", Artworks(**artwork))
    product_ids = [create_document("products", Products(**product)) for product in PRODUCTS]
    products = [db.products.find_one({"_id": to_obj_id(pid)}) for pid in product_ids]
    order_count = _seed_orders(products)

    paid = list(db.orders.find({"payment_status": "paid"}))
    revenue = sum(o["total_amount"] for o in paid)
    logger.info("Seeded %s orders: %s paid, %s pending, %s failed, revenue Rp %s", order_count, len(paid),
                db.orders.count_documents({"payment_status": "pending"}),
                db.orders.count_documents({"payment_status": "failed"}), f"{revenue:,}".replace(",", "."))

    return {
        "users": len(USERS),
        "artworks": len(ARTWORKS),
        "products": len(product_ids),
        "orders": order_count,
    }


if __name__ == "__main__":
    setup_logging()
    counts = seed()
    logger.info("Seeding complete: %s", counts)
