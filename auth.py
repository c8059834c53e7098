import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

import jwt
from fastapi import Depends, Request
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError
from werkzeug.security import check_password_hash, generate_password_hash

from config import Config
from database import create_document, db, serialize_doc, to_obj_id, utcnow
from errors import Forbidden, NotFound, Unauthorized, ValidationError
from schemas import UserCreate, Users

logger = logging.getLogger(__name__)

COOKIE_NAME = "auth-token"
JWT_ALGORITHM = "HS256"


@dataclass
class Principal:
    user_id: str
    username: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return is_admin(self)


def is_admin(principal: Optional[Principal]) -> bool:
    return principal is not None and principal.role == "admin"


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    user = serialize_doc(doc)
    user.pop("password", None)
    return user


# -----------------------------
# Tokens
# -----------------------------

def generate_token(user: Dict[str, Any]) -> str:
    payload = {
        "userId": str(user["_id"]),
        "username": user["username"],
        "role": user["role"],
        "exp": utcnow() + timedelta(days=Config.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, Config.JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise Unauthorized("Invalid token")


def extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return request.cookies.get(COOKIE_NAME) or None


def authenticate(request: Request) -> Optional[Principal]:
    """Resolve the caller from a bearer token or the session cookie."""
    token = extract_token(request)
    if not token:
        return None
    try:
        payload = verify_token(token)
        user = db.users.find_one({"_id": to_obj_id(payload.get("userId"))})
    except (Unauthorized, ValidationError) as e:
        logger.info("Authentication rejected: %s", e.message)
        return None
    if not user or not user.get("active", True):
        return None
    return Principal(
        user_id=str(user["_id"]),
        username=user["username"],
        email=user["email"],
        role=user.get("role", "user"),
    )


# -----------------------------
# FastAPI dependencies
# -----------------------------

def current_principal(request: Request) -> Optional[Principal]:
    return authenticate(request)


def require_user(principal: Optional[Principal] = Depends(current_principal)) -> Principal:
    if principal is None:
        raise Unauthorized()
    return principal


def require_admin(principal: Optional[Principal] = Depends(current_principal)) -> Principal:
    if principal is None:
        raise Unauthorized()
    if not is_admin(principal):
        raise Forbidden()
    return principal


# -----------------------------
# Accounts
# -----------------------------

def create_default_admin():
    """Bootstrap an admin account when none exists."""
    if db.users.find_one({"role": "admin"}):
        return
    user = Users(
        username=Config.ADMIN_USERNAME,
        email=Config.ADMIN_EMAIL,
        password=generate_password_hash(Config.ADMIN_PASSWORD),
        role="admin",
    )
    create_document("users", user)
    logger.info("Default admin user created")


def login(username: str, password: str) -> Dict[str, Any]:
    create_default_admin()
    user = db.users.find_one({
        "$or": [{"username": username}, {"email": username.lower()}],
        "active": True,
    })
    if not user or not check_password_hash(user["password"], password):
        raise Unauthorized("Invalid credentials")

    now = utcnow()
    db.users.update_one({"_id": user["_id"]}, {"$set": {"last_login": now, "updated_at": now}})
    user["last_login"] = now
    return {"user": public_user(user), "token": generate_token(user)}


def get_user(user_id: str) -> Dict[str, Any]:
    user = db.users.find_one({"_id": to_obj_id(user_id)})
    if not user:
        raise NotFound("User not found")
    return public_user(user)


def list_users() -> List[Dict[str, Any]]:
    return [public_user(u) for u in db.users.find().sort([("created_at", DESCENDING), ("_id", DESCENDING)])]


def create_user(payload: UserCreate) -> Dict[str, Any]:
    email = payload.email.lower()
    if db.users.find_one({"$or": [{"username": payload.username}, {"email": email}]}):
        raise ValidationError("User with this username or email already exists")
    user = Users(
        username=payload.username,
        email=email,
        password=generate_password_hash(payload.password),
        role=payload.role,
    )
    try:
        uid = create_document("users", user)
    except DuplicateKeyError:
        raise ValidationError("User with this username or email already exists")
    logger.info("User %s created with role %s", payload.username, payload.role)
    return get_user(uid)


def delete_user(user_id: str, principal: Principal):
    if user_id == principal.user_id:
        raise ValidationError("Cannot delete your own account")
    res = db.users.delete_one({"_id": to_obj_id(user_id)})
    if res.deleted_count == 0:
        raise NotFound("User not found")
    logger.info("User %s deleted by %s", user_id, principal.username)
