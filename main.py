import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic import ValidationError as SchemaError
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import Principal, bearer_scheme, extract_token, get_current_principal, optional_principal, require_admin
from config import settings
from database import (
    attach_owners,
    create_document,
    delete_by_id,
    find_by_email,
    find_by_id,
    get_db,
    get_documents,
    sanitize,
    update_by_id,
)
from errors import ApiError, Conflict, InvalidToken, MalformedInput, NotFound, Unauthenticated, ValidationError, envelope
from moderation import all_query, initial_state, merge_listing_update, pending_query, public_filter, transition, visible_to
from policy import ensure_can_mutate
from schemas import Admin as AdminSchema, Form as FormSchema, Product as ProductSchema, User as UserSchema
from security import (
    ROLE_ADMIN,
    ROLE_USER,
    cookies,
    hash_password,
    issue_admin_token,
    issue_user_token,
    verify_password,
    verify_token,
)
from storage import PUBLIC_PREFIX, get_storage

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("marketplace")

LEAD_STATUSES = ("pending", "contacted", "closed")


def seed_admin(database: Database, email: Optional[str] = None, password: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Create the configured admin account if it does not exist yet."""
    email = (email if email is not None else settings.ADMIN_EMAIL).strip().lower()
    password = password if password is not None else settings.ADMIN_PASS
    if not email or not password:
        logger.warning("ADMIN_EMAIL or ADMIN_PASS missing; no admin seeded")
        return None
    existing = find_by_email(database, "admin", email)
    if existing:
        logger.info("Admin already exists: %s", email)
        return None
    doc = AdminSchema(email=email, password_hash=hash_password(password)).model_dump()
    admin = create_document(database, "admin", doc)
    logger.info("Default admin created: %s", email)
    return sanitize(admin)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    get_storage().ensure_directory()
    try:
        seed_admin(get_db())
    except Exception:
        logger.exception("Seed admin error")
    yield


# App and CORS
app = FastAPI(title="Marketplace API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.mount(PUBLIC_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="images")


# Error envelope
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    extra = getattr(exc, "extra", {}) if isinstance(exc, ApiError) else {}
    body = envelope(str(exc.detail), success=False, **extra)
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "form"))
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(status_code=400, content=envelope("; ".join(messages) or "Invalid request", success=False))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = envelope("Something went wrong!", success=False)
    body["error"] = str(exc) if settings.is_development else "Server Error"
    return JSONResponse(status_code=500, content=body)


def schema_error(exc: SchemaError) -> ValidationError:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()))
    return ValidationError(f"{field}: {first.get('msg')}" if field else "Please fill all required fields.")


# Request/Response Models
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class StatusRequest(BaseModel):
    status: Optional[str] = None


class ListingUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    age: Optional[str] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    night_rate: Optional[float] = Field(None, ge=0)
    phone_no: Optional[str] = Field(None, min_length=1)
    whatsapp_no: Optional[str] = None
    services: Optional[List[str]] = None
    availability: Optional[str] = None
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    status: Optional[str] = None
    verified: Optional[bool] = None
    featured: Optional[bool] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    reviews: Optional[int] = Field(None, ge=0)


class LeadCreateRequest(BaseModel):
    name: str = ""
    description: str = ""
    phone_no: str = ""
    location: str = ""
    city: str = ""
    state: str = ""


class LeadUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(None, min_length=1)
    message: Optional[str] = Field(None, min_length=1)
    phone_no: Optional[str] = Field(None, min_length=1, max_length=15)
    location: Optional[str] = None
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = None


# Auth Routes
@app.post("/auth/signup", status_code=201)
def signup(payload: SignupRequest, db: Database = Depends(get_db)):
    if find_by_email(db, "user", payload.email):
        raise Conflict("User already exists")
    try:
        user_doc = UserSchema(
            name=payload.name.strip(),
            email=payload.email,
            password_hash=hash_password(payload.password),
        ).model_dump()
    except SchemaError as exc:
        raise schema_error(exc)
    create_document(db, "user", user_doc)
    logger.info("User registered: %s", user_doc["email"])
    return envelope("User registered successfully")


@app.post("/auth/login")
def login(payload: LoginRequest, response: Response, db: Database = Depends(get_db)):
    user = find_by_email(db, "user", payload.email)
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.info("Failed user login for %s", payload.email)
        raise ValidationError("Invalid email or password")
    uid = str(user["_id"])
    token = issue_user_token(uid)
    cookies.store(response, ROLE_USER, token)
    return envelope(
        "Login successful",
        token=token,
        user={"id": uid, "name": user.get("name"), "email": user.get("email")},
    )


@app.get("/auth/verify")
def verify_user_session(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)):
    extra = {"isUser": False}
    token = extract_token(request, credentials, slot=ROLE_USER)
    if not token:
        raise MalformedInput("Not authenticated", extra=extra)
    try:
        claims = verify_token(token)
    except ApiError:
        raise InvalidToken("Invalid or expired token", extra=extra)
    if claims.role_flag != ROLE_USER:
        raise InvalidToken("Invalid or expired token", extra=extra)
    return envelope("Session verified", id=claims.identity, isUser=True)


@app.post("/auth/logout")
def logout(response: Response):
    cookies.clear(response, ROLE_USER)
    return envelope("Logged out successfully")


@app.get("/auth/me")
def me(principal: Principal = Depends(get_current_principal)):
    return envelope("Authenticated", user=principal.public())


@app.get("/auth/user")
def get_user(principal: Principal = Depends(get_current_principal), db: Database = Depends(get_db)):
    collection = "admin" if principal.is_admin else "user"
    user = find_by_id(db, collection, principal.id, label="User")
    return envelope("User fetched", user=sanitize(user))


# Admin Routes
@app.post("/admin/login")
def admin_login(payload: LoginRequest, response: Response, db: Database = Depends(get_db)):
    admin = find_by_email(db, "admin", payload.email)
    if not admin or not verify_password(payload.password, admin.get("password_hash", "")):
        logger.info("Failed admin login for %s", payload.email)
        raise Unauthenticated("Invalid email or password")
    aid = str(admin["_id"])
    token = issue_admin_token(aid)
    cookies.store(response, ROLE_ADMIN, token)
    logger.info("Admin logged in: %s", admin.get("email"))
    return envelope("Login successful", token=token, email=admin.get("email"), isAdmin=True, id=aid)


@app.get("/admin/verify")
def verify_admin_session(request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)):
    extra = {"isAdmin": False}
    token = extract_token(request, credentials, slot=ROLE_ADMIN)
    if not token:
        raise MalformedInput("Not authenticated", extra=extra)
    try:
        claims = verify_token(token)
    except ApiError:
        raise InvalidToken("Invalid or expired token", extra=extra)
    if claims.role_flag != ROLE_ADMIN:
        raise InvalidToken("Invalid or expired token", extra=extra)
    return envelope("Session verified", id=claims.identity, isAdmin=True)


@app.post("/admin/logout")
def admin_logout(response: Response):
    cookies.clear(response, ROLE_ADMIN)
    return envelope("Logged out successfully")


# Product Routes
@app.get("/products")
def list_approved_products(db: Database = Depends(get_db)):
    docs = get_documents(db, "product", public_filter(), sort=[("created_at", -1)])
    products = attach_owners(db, docs)
    return envelope("Approved products fetched", products=products, count=len(products))


@app.get("/products/admin/all")
def list_all_products(status: Optional[str] = None, admin: Principal = Depends(require_admin), db: Database = Depends(get_db)):
    filter_dict, sort = all_query(status)
    products = attach_owners(db, get_documents(db, "product", filter_dict, sort=sort))
    return envelope("All products fetched", products=products, count=len(products))


@app.get("/products/admin/pending")
def list_pending_products(admin: Principal = Depends(require_admin), db: Database = Depends(get_db)):
    filter_dict, sort = pending_query()
    products = attach_owners(db, get_documents(db, "product", filter_dict, sort=sort))
    return envelope("Pending products fetched", products=products, count=len(products))


@app.api_route("/products/admin/status/{product_id}", methods=["PATCH", "PUT"])
def update_product_status(
    product_id: str,
    payload: StatusRequest,
    admin: Principal = Depends(require_admin),
    db: Database = Depends(get_db),
):
    product = find_by_id(db, "product", product_id, label="Product")
    new_status = transition(admin, product, payload.status)
    updated = update_by_id(db, "product", product_id, {"status": new_status.value}, label="Product")
    logger.info("Product %s moved %s -> %s by %s", product_id, product.get("status"), new_status.value, admin.email)
    return envelope(f"Status updated to {new_status.value}", product=attach_owners(db, [updated])[0])


@app.post("/products/create", status_code=201)
def create_product(
    name: str = Form(""),
    description: str = Form(""),
    age: Optional[str] = Form(None),
    hourly_rate: Optional[float] = Form(None),
    night_rate: Optional[float] = Form(None),
    phone_no: str = Form(""),
    whatsapp_no: str = Form(""),
    services: Optional[List[str]] = Form(None),
    availability: Optional[str] = Form(None),
    city: str = Form(""),
    state: str = Form(""),
    images: Optional[List[UploadFile]] = File(None),
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    if not all(v.strip() for v in (name, description, state, city, phone_no)):
        raise ValidationError("Please fill all required fields.")

    status, created_by_role = initial_state(principal)
    fields: Dict[str, Any] = {
        "name": name,
        "description": description,
        "phone_no": phone_no,
        "whatsapp_no": whatsapp_no,
        "city": city,
        "state": state,
        "owner": principal.id,
        "created_by_role": created_by_role.value,
        "status": status.value,
    }
    for key, value in (("age", age), ("hourly_rate", hourly_rate), ("night_rate", night_rate),
                       ("services", services), ("availability", availability)):
        if value is not None:
            fields[key] = value

    # Files are written before the database insert and are not removed if it fails.
    refs = get_storage().save_all(images or [])
    try:
        product_doc = ProductSchema(**fields, images=refs).model_dump()
    except SchemaError as exc:
        raise schema_error(exc)
    product = create_document(db, "product", product_doc)
    logger.info("Product %s created by %s %s as %s", product["_id"], principal.role, principal.id, status.value)
    return envelope(
        "Product created successfully.",
        product=sanitize(product),
        status=status.value,
    )


@app.get("/products/{product_id}")
def get_product(
    product_id: str,
    principal: Optional[Principal] = Depends(optional_principal),
    db: Database = Depends(get_db),
):
    product = find_by_id(db, "product", product_id, label="Product")
    if not visible_to(principal, product):
        raise NotFound("Product not found.")
    return envelope("Product fetched", product=attach_owners(db, [product])[0])


@app.put("/products/{product_id}")
def update_product(
    product_id: str,
    payload: ListingUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    product = find_by_id(db, "product", product_id, label="Product")
    ensure_can_mutate(principal, product, action="update", noun="product")
    changes = merge_listing_update(product, payload.model_dump(exclude_unset=True), principal)
    if changes:
        product = update_by_id(db, "product", product_id, changes, label="Product")
    return envelope("Product updated successfully.", product=attach_owners(db, [product])[0])


@app.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    product = find_by_id(db, "product", product_id, label="Product")
    ensure_can_mutate(principal, product, action="delete", noun="product")
    # TODO: remove product["images"] from disk once upload retention is decided
    delete_by_id(db, "product", product_id, label="Product")
    logger.info("Product %s deleted by %s %s", product_id, principal.role, principal.id)
    return envelope("Product removed successfully.")


# Form (lead) Routes
@app.post("/forms/create", status_code=201)
def create_form(
    payload: LeadCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    if not all(v.strip() for v in (payload.name, payload.description, payload.phone_no, payload.city)):
        raise ValidationError("Please fill all required fields.")
    try:
        form_doc = FormSchema(
            name=payload.name,
            message=payload.description,
            phone_no=payload.phone_no,
            location=payload.location,
            city=payload.city,
            state=payload.state,
            owner=principal.id,
            user_email=principal.email or "",
            user_name=principal.name or principal.email or "",
        ).model_dump()
    except SchemaError as exc:
        raise schema_error(exc)
    form = create_document(db, "form", form_doc)
    return envelope("Ad posted successfully! Admin will contact you soon.", form=sanitize(form))


@app.get("/forms")
def list_forms(db: Database = Depends(get_db)):
    forms = attach_owners(db, get_documents(db, "form", sort=[("created_at", -1)]))
    return envelope("Forms fetched", forms=forms, count=len(forms))


@app.get("/forms/{form_id}")
def get_form(form_id: str, db: Database = Depends(get_db)):
    form = find_by_id(db, "form", form_id, label="Form")
    return envelope("Form fetched", form=attach_owners(db, [form])[0])


@app.put("/forms/{form_id}")
def update_form(
    form_id: str,
    payload: LeadUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    form = find_by_id(db, "form", form_id, label="Form")
    ensure_can_mutate(principal, form, action="update", noun="form")
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if changes:
        form = update_by_id(db, "form", form_id, changes, label="Form")
    return envelope("Form updated successfully", form=attach_owners(db, [form])[0])


@app.delete("/forms/{form_id}")
def delete_form(
    form_id: str,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    form = find_by_id(db, "form", form_id, label="Form")
    ensure_can_mutate(principal, form, action="delete", noun="form")
    delete_by_id(db, "form", form_id, label="Form")
    logger.info("Form %s deleted by %s %s", form_id, principal.role, principal.id)
    return envelope("Form removed successfully")


@app.patch("/forms/{form_id}/status")
def update_form_status(
    form_id: str,
    payload: StatusRequest,
    principal: Principal = Depends(get_current_principal),
    db: Database = Depends(get_db),
):
    if payload.status not in LEAD_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(LEAD_STATUSES)}")
    form = update_by_id(db, "form", form_id, {"status": payload.status}, label="Form")
    return envelope("Form status updated successfully", form=attach_owners(db, [form])[0])


# Utility endpoints
@app.get("/")
def root():
    return envelope("Marketplace API running", status="running", products="/products", admin="/admin", auth="/auth")


@app.get("/health")
def health():
    return envelope(
        "healthy",
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        env=settings.APP_ENV,
    )


@app.get("/health/images")
def health_images():
    return envelope("Image storage status", **get_storage().health())


@app.get("/health/db")
def health_db(db: Database = Depends(get_db)):
    try:
        collections = db.list_collection_names()
        return envelope("ok", database="ok", collections=collections)
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        return envelope("Database unavailable", success=False, database=f"error: {e}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
