import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Query, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from auth import Principal, current_principal, require_admin, require_user
from config import Config, setup_logging
from database import db, ensure_indexes
from errors import Forbidden, InternalError, Unauthorized, ValidationError, register_error_handlers
from schemas import (
    ArtworkUpdate, Artworks, BackgroundUpdate, LoginRequest, OrderCreate, OrderStatusPatch,
    Products, ProductUpdate, SendEmailRequest, UserCreate,
)
import auth
import catalog
import downloads
import mailer
import orders
import site_settings
import storage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    storage.ensure_directories()
    if db is not None:
        ensure_indexes()
    logger.info("Seratus Studio API started (public dir %s)", storage.public_dir())
    yield


app = FastAPI(title="Seratus Studio API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


# -----------------------------
# Health & Test
# -----------------------------

@app.get("/")
def read_root():
    return {"message": "Seratus Studio API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "❌ Not Set",
        "database_name": "❌ Not Set",
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected"
            response["database_url"] = "✅ Set"
            response["database_name"] = db.name
            response["collections"] = db.list_collection_names()
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["email"] = "✅ Set" if Config.EMAIL_USER and Config.EMAIL_PASS else "❌ Not Set"
    return response


# -----------------------------
# Auth
# -----------------------------

@app.post("/api/auth")
def login(body: LoginRequest, response: Response):
    result = auth.login(body.username, body.password)
    response.set_cookie(
        auth.COOKIE_NAME,
        result["token"],
        max_age=Config.JWT_EXPIRES_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=Config.COOKIE_SECURE,
        samesite="strict",
    )
    return {"message": "Login successful", **result}


@app.get("/api/auth")
def me(principal: Principal = Depends(require_user)):
    return {"user": auth.get_user(principal.user_id)}


@app.delete("/api/auth")
def logout(response: Response):
    response.delete_cookie(auth.COOKIE_NAME)
    return {"message": "Logout successful"}


# -----------------------------
# Admin: users
# -----------------------------

@app.get("/api/admin/users")
def list_users(principal: Principal = Depends(require_admin)):
    return {"users": auth.list_users()}


@app.post("/api/admin/users", status_code=201)
def create_user(payload: UserCreate, principal: Principal = Depends(require_admin)):
    return {"message": "User created successfully", "user": auth.create_user(payload)}


@app.delete("/api/admin/users/{user_id}")
def delete_user(user_id: str, principal: Principal = Depends(require_admin)):
    auth.delete_user(user_id, principal)
    return {"message": "User deleted successfully"}


# -----------------------------
# Products
# -----------------------------

@app.get("/api/products")
def list_products(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    search: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    tags: Optional[str] = Query(default=None),
    min_price: Optional[int] = Query(default=None, alias="minPrice"),
    max_price: Optional[int] = Query(default=None, alias="maxPrice"),
    sort_by: str = Query(default="created_at", alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder"),
):
    return catalog.list_products(
        page=page, limit=limit, search=search, category=category, tags=catalog.split_csv(tags),
        min_price=min_price, max_price=max_price, sort_by=sort_by, sort_order=sort_order,
    )


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    return catalog.get_product(product_id)


@app.post("/api/products", status_code=201)
def create_product(payload: Products, principal: Principal = Depends(require_admin)):
    return {"message": "Product created successfully", "product": catalog.create_product(payload)}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, patch: ProductUpdate, principal: Principal = Depends(require_admin)):
    return {"message": "Product updated successfully", "product": catalog.update_product(product_id, patch)}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, principal: Principal = Depends(require_admin)):
    catalog.deactivate_product(product_id)
    return {"message": "Product deleted successfully"}


# -----------------------------
# Artworks
# -----------------------------

@app.get("/api/artworks")
def list_artworks(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    search: Optional[str] = Query(default=None),
    tags: Optional[str] = Query(default=None),
    featured: bool = Query(default=False),
):
    return catalog.list_artworks(page=page, limit=limit, search=search,
                                 tags=catalog.split_csv(tags), featured=featured)


@app.get("/api/artworks/{artwork_id}")
def get_artwork(artwork_id: str):
    return catalog.get_artwork(artwork_id)


@app.post("/api/artworks", status_code=201)
def create_artwork(payload: Artworks, principal: Principal = Depends(require_admin)):
    return {"message": "Artwork created successfully", "artwork": catalog.create_artwork(payload)}


@app.put("/api/artworks/{artwork_id}")
def update_artwork(artwork_id: str, patch: ArtworkUpdate, principal: Principal = Depends(require_admin)):
    return {"message": "Artwork updated successfully", "artwork": catalog.update_artwork(artwork_id, patch)}


@app.delete("/api/artworks/{artwork_id}")
def delete_artwork(artwork_id: str, principal: Principal = Depends(require_admin)):
    catalog.delete_artwork(artwork_id)
    return {"message": "Artwork deleted successfully"}


# -----------------------------
# Orders
# -----------------------------

@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreate):
    return {"message": "Order created successfully", "order": orders.create_order(payload)}


@app.get("/api/orders")
def list_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    email: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    payment_status: Optional[str] = Query(default=None, alias="paymentStatus"),
    principal: Optional[Principal] = Depends(current_principal),
):
    return orders.list_orders(principal, email=email, delivery_status=status,
                              payment_status=payment_status, page=page, limit=limit)


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, principal: Principal = Depends(require_admin)):
    return {"order": orders.get_order(order_id)}


@app.put("/api/orders/{order_id}")
def update_order(order_id: str, patch: OrderStatusPatch, principal: Principal = Depends(require_admin)):
    return {"message": "Order updated successfully", "order": orders.update_order_status(order_id, patch)}


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, principal: Principal = Depends(require_admin)):
    orders.delete_order(order_id)
    return {"message": "Order deleted successfully"}


# -----------------------------
# Downloads & email
# -----------------------------

@app.post("/api/download")
async def generate_download(
    order_id: str = Form(...),
    download_type: str = Form(default="url"),
    watermark_option: str = Form(default="default"),
    custom_watermark: Optional[UploadFile] = File(default=None),
    principal: Principal = Depends(require_admin),
):
    custom = None
    if watermark_option == "custom" and custom_watermark is not None:
        custom = downloads.CustomWatermark(
            filename=custom_watermark.filename or "watermark.png",
            content=await custom_watermark.read(),
        )
    result = await downloads.generate_download(order_id, download_type, watermark_option, custom)
    return result.to_dict()


@app.get("/api/download")
def download_status(order_id: str = Query(...)):
    return downloads.check_download_status(order_id)


@app.post("/api/send-email")
def send_email(body: SendEmailRequest, principal: Principal = Depends(require_admin)):
    result = mailer.send_file_link(body.to, body.subject, body.fileLink)
    if not result.sent:
        raise InternalError(f"Failed to send email: {result.error}")
    return {"message": "Email sent successfully"}


# -----------------------------
# Backgrounds
# -----------------------------

@app.get("/api/backgrounds")
def list_backgrounds(
    active: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    principal: Optional[Principal] = Depends(current_principal),
):
    if active:
        return {"background": site_settings.get_active_background()}
    if principal is None:
        raise Unauthorized()
    if not principal.is_admin:
        raise Forbidden()
    return site_settings.list_backgrounds(page=page, limit=limit)


@app.post("/api/backgrounds", status_code=201)
async def upload_background(
    file: UploadFile = File(...),
    name: str = Form(default=""),
    set_active: bool = Form(default=True, alias="setActive"),
    principal: Principal = Depends(require_admin),
):
    content = await file.read()
    background = await site_settings.upload_background(content, file.filename, file.content_type, name, set_active)
    return {"message": "Background uploaded successfully", "background": background}


@app.put("/api/backgrounds/{background_id}")
def update_background(background_id: str, patch: BackgroundUpdate, principal: Principal = Depends(require_admin)):
    return {"message": "Background updated successfully",
            "background": site_settings.update_background(background_id, patch)}


@app.delete("/api/backgrounds/{background_id}")
def delete_background(background_id: str, principal: Principal = Depends(require_admin)):
    site_settings.delete_background(background_id)
    return {"message": "Background deleted successfully"}


# -----------------------------
# Settings: logo, profile image, watermark
# -----------------------------

@app.get("/api/settings/logo")
def get_logo():
    return site_settings.get_logo()


@app.post("/api/settings/logo")
async def upload_logo(file: UploadFile = File(...), principal: Principal = Depends(require_admin)):
    return await site_settings.upload_logo(await file.read(), file.content_type)


@app.delete("/api/settings/logo")
def delete_logo(principal: Principal = Depends(require_admin)):
    site_settings.remove_logo()
    return {"message": "Logo removed successfully"}


@app.get("/api/settings/profile-image")
def get_profile_image():
    return site_settings.get_profile_image()


@app.post("/api/settings/profile-image")
async def upload_profile_image(file: UploadFile = File(...), principal: Principal = Depends(require_admin)):
    return await site_settings.upload_profile_image(await file.read(), file.content_type)


@app.get("/api/settings/watermark")
def get_watermark():
    return site_settings.get_watermark()


@app.post("/api/settings/watermark")
async def upload_watermark(file: UploadFile = File(...), principal: Principal = Depends(require_admin)):
    return await site_settings.upload_watermark(await file.read(), file.content_type)


@app.delete("/api/settings/watermark")
def delete_watermark(principal: Principal = Depends(require_admin)):
    site_settings.remove_watermark()
    return {"message": "Watermark removed successfully"}


# -----------------------------
# Placeholder images
# -----------------------------

PLACEHOLDER_HEADERS = {"Cache-Control": "public, max-age=31536000, immutable"}


@app.get("/api/placeholder")
@app.get("/api/placeholder/{params:path}")
def placeholder(params: str = ""):
    parts = [p for p in params.split("/") if p]
    try:
        width = int(parts[0]) if len(parts) > 0 else site_settings.PLACEHOLDER_SIZE
        height = int(parts[1]) if len(parts) > 1 else site_settings.PLACEHOLDER_SIZE
    except ValueError:
        raise ValidationError("Placeholder width and height must be integers")
    svg = site_settings.placeholder_svg(width, height)
    return Response(content=svg, media_type="image/svg+xml", headers=PLACEHOLDER_HEADERS)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
