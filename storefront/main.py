# storefront/main.py

"""
FastAPI storefront API.
Serves the public catalog (categories, products, testimonials), contact
messages and service requests for signed-in customers, and the admin back
office for products, categories, orders, customers and image uploads.
"""
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import auth
from .auth import get_current_admin, get_current_user
from .db import Database, get_db
from .models import User
from .schemas import (
    MAX_AMOUNT,
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    CheckoutRequest,
    MessageCreate,
    MessageResponse,
    OrderCreate,
    OrderItemCreate,
    OrderResponse,
    OrderStatusUpdate,
    OrderWithUser,
    ProductCreate,
    ProductUpdate,
    ProductWithCategory,
    ServiceRequestCreate,
    ServiceRequestResponse,
    ServiceRequestStatusUpdate,
    ServiceRequestWithUser,
    TestimonialCreate,
    TestimonialResponse,
    UploadResponse,
    UserResponse,
)
from .storage import ReferenceInUseError, Storage
from .uploads import UPLOAD_DIR, UPLOAD_URL_PATH, save_image

# -----------------------------
# Configure Logging
# -----------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Suppress noisy logs from third-party libraries for cleaner output
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.INFO)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
DB_CONNECT_RETRIES = int(os.getenv("DB_CONNECT_RETRIES", "10"))
DB_CONNECT_RETRY_DELAY = float(os.getenv("DB_CONNECT_RETRY_DELAY", "5"))


class FieldValidationError(Exception):
    """Field-level rejection found after schema validation (e.g. a missing reference)."""

    def __init__(self, field: str, message: str):
        self.errors = [{"field": field, "message": message}]
        super().__init__(message)


def get_storage(db: Session = Depends(get_db)) -> Storage:
    return Storage(db)


def _server_error(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


def _in_use(error: ReferenceInUseError) -> HTTPException:
    logger.warning(str(error))
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"{error.entity} is still referenced by existing {error.referenced_by}",
    )


def _check_category(storage: Storage, category_id: Optional[int]):
    if category_id is not None and storage.get_category(category_id) is None:
        raise FieldValidationError("categoryId", "Category does not exist")


# -----------------------------
# Public endpoints
# -----------------------------
public = APIRouter(prefix="/api")


@public.get("/products", response_model=List[ProductWithCategory], summary="List products")
def list_products(
    category_id: Optional[int] = Query(None, alias="categoryId", description="Only products of this category."),
    q: Optional[str] = Query(None, max_length=255, description="Case-insensitive search over name and description."),
    storage: Storage = Depends(get_storage),
):
    """
    Lists products ordered by name. `categoryId` and `q` combine with AND.
    """
    products = storage.get_all_products(category_id, q)
    logger.info(f"Retrieved {len(products)} products (categoryId={category_id}, q='{q}').")
    return products


@public.get("/products/{product_id}", response_model=ProductWithCategory)
def get_product(product_id: int, storage: Storage = Depends(get_storage)):
    product = storage.get_product(product_id)
    if not product:
        logger.warning(f"Product with ID: {product_id} not found.")
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@public.get("/categories", response_model=List[CategoryResponse])
def list_categories(storage: Storage = Depends(get_storage)):
    return storage.get_all_categories()


@public.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(category_id: int, storage: Storage = Depends(get_storage)):
    category = storage.get_category(category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@public.get("/testimonials", response_model=List[TestimonialResponse])
def list_approved_testimonials(storage: Storage = Depends(get_storage)):
    return storage.get_approved_testimonials()


@public.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def create_message(payload: MessageCreate, storage: Storage = Depends(get_storage)):
    """Contact form submission; stored unread."""
    try:
        message = storage.create_message(payload)
    except SQLAlchemyError:
        raise _server_error("Error creating message")
    logger.info(f"Message {message.id} received from '{message.email}'.")
    return message


# -----------------------------
# Signed-in customer endpoints
# -----------------------------
@public.get("/service-requests", summary="List service requests")
def list_service_requests(
    user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)
):
    """
    Admins get every request with its owner's profile attached; everybody
    else gets only their own requests.
    """
    if user.is_admin:
        return [ServiceRequestWithUser.model_validate(r) for r in storage.get_all_service_requests()]
    return [ServiceRequestResponse.model_validate(r) for r in storage.get_user_service_requests(user.id)]


@public.post("/service-requests", response_model=ServiceRequestResponse, status_code=status.HTTP_201_CREATED)
def create_service_request(
    payload: ServiceRequestCreate,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    try:
        service_request = storage.create_service_request(payload, user.id)
    except SQLAlchemyError:
        raise _server_error("Error creating service request")
    logger.info(f"Service request {service_request.id} created by user {user.id}.")
    return service_request


@public.post("/testimonials", response_model=TestimonialResponse, status_code=status.HTTP_201_CREATED)
def create_testimonial(
    payload: TestimonialCreate,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """New testimonials stay hidden until an admin approves them."""
    try:
        return storage.create_testimonial(payload, user.id)
    except SQLAlchemyError:
        raise _server_error("Error creating testimonial")


@public.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CheckoutRequest,
    user: User = Depends(get_current_user),
    storage: Storage = Depends(get_storage),
):
    """
    Places an order for the signed-in user. Each line keeps the product's
    price at the time of ordering; the total is the sum of the lines.
    """
    lines = []
    for index, item in enumerate(payload.items):
        product = storage.get_product(item.product_id)
        if product is None:
            raise FieldValidationError(f"items.{index}.productId", "Product does not exist")
        if not product.in_stock:
            raise FieldValidationError(f"items.{index}.productId", "Product is out of stock")
        lines.append((product, item.quantity))
    total = sum(product.price * quantity for product, quantity in lines)
    if total > MAX_AMOUNT:
        raise FieldValidationError("items", "Order total is too large")

    try:
        order = storage.create_order(OrderCreate(user_id=user.id, total=total))
        # Items are separate writes; a failure here leaves a partial order behind
        for product, quantity in lines:
            storage.add_order_item(
                OrderItemCreate(order_id=order.id, product_id=product.id, quantity=quantity, price=product.price)
            )
    except SQLAlchemyError:
        raise _server_error("Error creating order")
    logger.info(f"Order {order.id} placed by user {user.id} with {len(lines)} items, total {total}.")
    return storage.get_order(order.id)


@public.get("/orders", response_model=List[OrderResponse])
def list_my_orders(user: User = Depends(get_current_user), storage: Storage = Depends(get_storage)):
    return storage.get_user_orders(user.id)


# -----------------------------
# Admin endpoints
# -----------------------------
admin = APIRouter(prefix="/api/admin", dependencies=[Depends(get_current_admin)])


@admin.post("/products", response_model=ProductWithCategory, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, storage: Storage = Depends(get_storage)):
    """
    Creates a new product.

    - `price` accepts a number or a string with "." or "," as decimal separator.
    - `categoryId` must name an existing category.
    """
    logger.info(f"Creating product: {payload.name}")
    _check_category(storage, payload.category_id)
    try:
        product = storage.create_product(payload)
    except SQLAlchemyError:
        raise _server_error("Error creating product")
    logger.info(f"Product '{product.name}' (ID: {product.id}) created successfully.")
    return product


@admin.put("/products/{product_id}", response_model=ProductWithCategory)
def update_product(product_id: int, payload: ProductUpdate, storage: Storage = Depends(get_storage)):
    logger.info(f"Updating product with ID: {product_id} with data: {payload.changes()}")
    if storage.get_product(product_id) is None:
        logger.warning(f"Product with ID: {product_id} not found for update.")
        raise HTTPException(status_code=404, detail="Product not found")
    _check_category(storage, payload.category_id)
    try:
        product = storage.update_product(product_id, payload)
    except SQLAlchemyError:
        raise _server_error("Error updating product")
    if not product:
        logger.warning(f"Product with ID: {product_id} not found for update.")
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@admin.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(product_id: int, storage: Storage = Depends(get_storage)):
    try:
        deleted = storage.delete_product(product_id)
    except ReferenceInUseError as e:
        raise _in_use(e)
    except SQLAlchemyError:
        raise _server_error("Error deleting product")
    if not deleted:
        logger.warning(f"Product with ID: {product_id} not found for deletion.")
        raise HTTPException(status_code=404, detail="Product not found")
    logger.info(f"Product (ID: {product_id}) deleted successfully.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryCreate, storage: Storage = Depends(get_storage)):
    if storage.get_category_by_name(payload.name):
        raise HTTPException(status_code=409, detail="Category name already exists")
    try:
        return storage.create_category(payload)
    except SQLAlchemyError:
        raise _server_error("Error creating category")


@admin.put("/categories/{category_id}", response_model=CategoryResponse)
def update_category(category_id: int, payload: CategoryUpdate, storage: Storage = Depends(get_storage)):
    if payload.name is not None:
        existing = storage.get_category_by_name(payload.name)
        if existing is not None and existing.id != category_id:
            raise HTTPException(status_code=409, detail="Category name already exists")
    try:
        category = storage.update_category(category_id, payload)
    except SQLAlchemyError:
        raise _server_error("Error updating category")
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@admin.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(category_id: int, storage: Storage = Depends(get_storage)):
    try:
        deleted = storage.delete_category(category_id)
    except ReferenceInUseError as e:
        raise _in_use(e)
    except SQLAlchemyError:
        raise _server_error("Error deleting category")
    if not deleted:
        raise HTTPException(status_code=404, detail="Category not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin.put("/service-requests/{request_id}/status", response_model=ServiceRequestResponse)
def update_service_request_status(
    request_id: int, payload: ServiceRequestStatusUpdate, storage: Storage = Depends(get_storage)
):
    try:
        service_request = storage.update_service_request_status(request_id, payload.status)
    except SQLAlchemyError:
        raise _server_error("Error updating service request status")
    if not service_request:
        raise HTTPException(status_code=404, detail="Service request not found")
    logger.info(f"Service request {request_id} moved to '{payload.status}'.")
    return service_request


@admin.get("/orders", response_model=List[OrderWithUser])
def list_orders(storage: Storage = Depends(get_storage)):
    return storage.get_all_orders()


@admin.get("/orders/{order_id}", response_model=OrderWithUser)
def get_order(order_id: int, storage: Storage = Depends(get_storage)):
    order = storage.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@admin.put("/orders/{order_id}/status", response_model=OrderWithUser)
def update_order_status(order_id: int, payload: OrderStatusUpdate, storage: Storage = Depends(get_storage)):
    try:
        order = storage.update_order_status(order_id, payload.status)
    except SQLAlchemyError:
        raise _server_error("Error updating order status")
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@admin.get("/messages", response_model=List[MessageResponse])
def list_messages(
    unread: bool = Query(False, description="Only messages not yet marked as read."),
    storage: Storage = Depends(get_storage),
):
    if unread:
        return storage.get_unread_messages()
    return storage.get_all_messages()


@admin.put("/messages/{message_id}/read", response_model=MessageResponse)
def mark_message_as_read(message_id: int, storage: Storage = Depends(get_storage)):
    try:
        message = storage.mark_message_as_read(message_id)
    except SQLAlchemyError:
        raise _server_error("Error marking message as read")
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return message


@admin.get("/customers", response_model=List[UserResponse])
def list_customers(storage: Storage = Depends(get_storage)):
    return storage.get_customers()


@admin.get("/users", response_model=List[UserResponse])
def list_users(storage: Storage = Depends(get_storage)):
    return storage.get_all_users()


@admin.get("/testimonials", response_model=List[TestimonialResponse])
def list_all_testimonials(storage: Storage = Depends(get_storage)):
    return storage.get_all_testimonials()


@admin.put("/testimonials/{testimonial_id}/approve", response_model=TestimonialResponse)
def approve_testimonial(testimonial_id: int, storage: Storage = Depends(get_storage)):
    try:
        testimonial = storage.approve_testimonial(testimonial_id)
    except SQLAlchemyError:
        raise _server_error("Error approving testimonial")
    if not testimonial:
        raise HTTPException(status_code=404, detail="Testimonial not found")
    return testimonial


@admin.post("/upload", response_model=UploadResponse)
async def upload_image(request: Request, image: UploadFile = File(...)):
    """
    Stores a product image and answers with its public URL. The URL still has
    to be written into a product's `imageUrl` through the product update.
    """
    try:
        filename = await save_image(image, request.app.state.upload_dir)
    except OSError:
        logger.error("Error storing uploaded image", exc_info=True)
        raise _server_error("Error processing image upload")
    image_url = f"{str(request.base_url).rstrip('/')}{UPLOAD_URL_PATH}/{filename}"
    return UploadResponse(image_url=image_url, filename=filename, originalname=image.filename or filename)


# -----------------------------
# FastAPI App Initialization
# -----------------------------
def create_app(database: Optional[Database] = None, upload_dir: Optional[Path] = None) -> FastAPI:
    app = FastAPI(
        title="Storefront API",
        description="Catalog, service requests and back office for a craft studio",
        version="1.0.0",
    )
    app.state.database = database or Database()
    app.state.upload_dir = Path(upload_dir or UPLOAD_DIR)

    # Enable CORS (for frontend dev/testing)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = []
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
            message = err.get("msg", "Invalid value")
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.append({"field": ".".join(loc) or "body", "message": message})
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"errors": errors})

    @app.exception_handler(FieldValidationError)
    async def field_error_handler(request: Request, exc: FieldValidationError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"errors": exc.errors})

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # --- FastAPI Event Handlers ---
    @app.on_event("startup")
    def startup_event():
        """
        Ensures database tables exist and the uploads directory is present.
        Retries the database connection before giving up.
        """
        app.state.upload_dir.mkdir(parents=True, exist_ok=True)
        for i in range(DB_CONNECT_RETRIES):
            try:
                logger.info(
                    f"Attempting to connect to the database and create tables (attempt {i+1}/{DB_CONNECT_RETRIES})..."
                )
                app.state.database.create_all()
                logger.info("Successfully connected to the database and ensured tables exist.")
                break
            except OperationalError as e:
                logger.warning(f"Failed to connect to the database: {e}")
                if i < DB_CONNECT_RETRIES - 1:
                    logger.info(f"Retrying in {DB_CONNECT_RETRY_DELAY} seconds...")
                    time.sleep(DB_CONNECT_RETRY_DELAY)
                else:
                    logger.critical(
                        f"Failed to connect to the database after {DB_CONNECT_RETRIES} attempts. Exiting application."
                    )
                    sys.exit(1)

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.database.dispose()

    # --- Root Endpoint ---
    @app.get("/", status_code=status.HTTP_200_OK, summary="Root endpoint")
    async def read_root():
        return {"message": "Welcome to the Storefront API!"}

    # --- Health Check Endpoint ---
    @app.get("/health", status_code=status.HTTP_200_OK, summary="Health check endpoint")
    async def health_check():
        return {"status": "ok", "service": "storefront"}

    app.include_router(auth.router)
    app.include_router(public)
    app.include_router(admin)
    app.mount(UPLOAD_URL_PATH, StaticFiles(directory=str(app.state.upload_dir), check_dir=False), name="uploads")
    return app


app = create_app()
