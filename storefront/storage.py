# storefront/storage.py

"""
Persistence operations for every storefront entity.

`Storage` wraps one SQLAlchemy session and is the only place that queries or
mutates the database. Lookups that match nothing return None; update and
delete of a missing id return None / False. Database failures roll the
session back, are logged, and propagate to the caller.
"""
import logging
from datetime import datetime, timezone
from functools import wraps
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import schemas
from .models import (
    Category,
    Message,
    Order,
    OrderItem,
    Product,
    ServiceRequest,
    SessionRecord,
    Testimonial,
    User,
)

logger = logging.getLogger(__name__)


class ReferenceInUseError(Exception):
    """Raised when deleting a row that other rows still point at."""

    def __init__(self, entity: str, entity_id: int, referenced_by: str):
        self.entity = entity
        self.entity_id = entity_id
        self.referenced_by = referenced_by
        super().__init__(
            f"{entity} {entity_id} is still referenced by existing {referenced_by}"
        )


def _now():
    return datetime.now(timezone.utc)


def mutation(method):
    """Roll back and log when a write fails, then let the error propagate."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"Storage operation '{method.__name__}' failed", exc_info=True)
            raise

    return wrapper


class Storage:
    def __init__(self, db: Session):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    # -----------------------------
    # Users
    # -----------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    @mutation
    def create_user(self, user: schemas.UserCreate, password_hash: str, is_admin: bool = False) -> User:
        data = user.model_dump(exclude={"password"})
        return self._save(User(**data, password=password_hash, is_admin=is_admin))

    def get_all_users(self) -> List[User]:
        return self.db.query(User).order_by(User.created_at.asc(), User.id.asc()).all()

    def get_customers(self) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.is_admin.is_(False))
            .order_by(User.created_at.asc(), User.id.asc())
            .all()
        )

    # -----------------------------
    # Categories
    # -----------------------------
    def get_category(self, category_id: int) -> Optional[Category]:
        return self.db.get(Category, category_id)

    def get_category_by_name(self, name: str) -> Optional[Category]:
        return self.db.query(Category).filter(Category.name == name).first()

    @mutation
    def create_category(self, category: schemas.CategoryCreate) -> Category:
        return self._save(Category(**category.model_dump()))

    @mutation
    def update_category(self, category_id: int, changes: schemas.CategoryUpdate) -> Optional[Category]:
        category = self.db.get(Category, category_id)
        if category is None:
            return None
        for field, value in changes.changes().items():
            setattr(category, field, value)
        return self._save(category)

    @mutation
    def delete_category(self, category_id: int) -> bool:
        category = self.db.get(Category, category_id)
        if category is None:
            return False
        in_use = self.db.query(Product.id).filter(Product.category_id == category_id).first()
        if in_use is not None:
            raise ReferenceInUseError("Category", category_id, "products")
        self.db.delete(category)
        self.db.commit()
        return True

    def get_all_categories(self) -> List[Category]:
        return self.db.query(Category).order_by(Category.name.asc()).all()

    # -----------------------------
    # Products
    # -----------------------------
    def get_product(self, product_id: int) -> Optional[Product]:
        return (
            self.db.query(Product)
            .options(selectinload(Product.category))
            .filter(Product.id == product_id)
            .first()
        )

    @mutation
    def create_product(self, product: schemas.ProductCreate) -> Product:
        created = self._save(Product(**product.model_dump()))
        return self.get_product(created.id)

    @mutation
    def update_product(self, product_id: int, changes: schemas.ProductUpdate) -> Optional[Product]:
        product = self.db.get(Product, product_id)
        if product is None:
            return None
        for field, value in changes.changes().items():
            setattr(product, field, value)
        self._save(product)
        return self.get_product(product_id)

    @mutation
    def delete_product(self, product_id: int) -> bool:
        product = self.db.get(Product, product_id)
        if product is None:
            return False
        in_use = self.db.query(OrderItem.id).filter(OrderItem.product_id == product_id).first()
        if in_use is not None:
            raise ReferenceInUseError("Product", product_id, "order items")
        self.db.delete(product)
        self.db.commit()
        return True

    def get_all_products(self, category_id: Optional[int] = None, query: Optional[str] = None) -> List[Product]:
        """
        Products ordered by name. `category_id` and the case-insensitive
        `query` (matched against name or description) combine with AND.
        """
        q = self.db.query(Product).options(selectinload(Product.category))
        if category_id is not None:
            q = q.filter(Product.category_id == category_id)
        if query:
            pattern = f"%{query}%"
            q = q.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        return q.order_by(Product.name.asc(), Product.id.asc()).all()

    # -----------------------------
    # Service requests
    # -----------------------------
    def get_service_request(self, request_id: int) -> Optional[ServiceRequest]:
        return (
            self.db.query(ServiceRequest)
            .options(selectinload(ServiceRequest.user))
            .filter(ServiceRequest.id == request_id)
            .first()
        )

    @mutation
    def create_service_request(self, request: schemas.ServiceRequestCreate, user_id: int) -> ServiceRequest:
        now = _now()
        return self._save(
            ServiceRequest(**request.model_dump(), user_id=user_id, created_at=now, updated_at=now)
        )

    @mutation
    def update_service_request_status(self, request_id: int, status: str) -> Optional[ServiceRequest]:
        service_request = self.db.get(ServiceRequest, request_id)
        if service_request is None:
            return None
        # Status and timestamp land in the same commit
        service_request.status = status
        service_request.updated_at = _now()
        return self._save(service_request)

    def get_all_service_requests(self) -> List[ServiceRequest]:
        return (
            self.db.query(ServiceRequest)
            .options(selectinload(ServiceRequest.user))
            .order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
            .all()
        )

    def get_user_service_requests(self, user_id: int) -> List[ServiceRequest]:
        return (
            self.db.query(ServiceRequest)
            .filter(ServiceRequest.user_id == user_id)
            .order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
            .all()
        )

    # -----------------------------
    # Orders and order items
    # -----------------------------
    def _orders(self, with_user: bool = True):
        options = [selectinload(Order.items).selectinload(OrderItem.product)]
        if with_user:
            options.append(selectinload(Order.user))
        return self.db.query(Order).options(*options)

    def get_order(self, order_id: int) -> Optional[Order]:
        return self._orders().filter(Order.id == order_id).first()

    @mutation
    def create_order(self, order: schemas.OrderCreate) -> Order:
        now = _now()
        return self._save(Order(**order.model_dump(), created_at=now, updated_at=now))

    @mutation
    def update_order_status(self, order_id: int, status: str) -> Optional[Order]:
        order = self.db.get(Order, order_id)
        if order is None:
            return None
        order.status = status
        order.updated_at = _now()
        self._save(order)
        return self.get_order(order_id)

    def get_all_orders(self) -> List[Order]:
        return self._orders().order_by(Order.created_at.desc(), Order.id.desc()).all()

    def get_user_orders(self, user_id: int) -> List[Order]:
        return (
            self._orders(with_user=False)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    @mutation
    def add_order_item(self, item: schemas.OrderItemCreate) -> OrderItem:
        return self._save(OrderItem(**item.model_dump()))

    def get_order_items(self, order_id: int) -> List[OrderItem]:
        return (
            self.db.query(OrderItem)
            .options(selectinload(OrderItem.product))
            .filter(OrderItem.order_id == order_id)
            .order_by(OrderItem.id.asc())
            .all()
        )

    # -----------------------------
    # Testimonials
    # -----------------------------
    def get_testimonial(self, testimonial_id: int) -> Optional[Testimonial]:
        return (
            self.db.query(Testimonial)
            .options(selectinload(Testimonial.user))
            .filter(Testimonial.id == testimonial_id)
            .first()
        )

    @mutation
    def create_testimonial(self, testimonial: schemas.TestimonialCreate, user_id: int) -> Testimonial:
        created = self._save(Testimonial(**testimonial.model_dump(), user_id=user_id))
        return self.get_testimonial(created.id)

    @mutation
    def approve_testimonial(self, testimonial_id: int) -> Optional[Testimonial]:
        testimonial = self.db.get(Testimonial, testimonial_id)
        if testimonial is None:
            return None
        testimonial.approved = True
        self._save(testimonial)
        return self.get_testimonial(testimonial_id)

    def get_approved_testimonials(self) -> List[Testimonial]:
        return (
            self.db.query(Testimonial)
            .options(selectinload(Testimonial.user))
            .filter(Testimonial.approved.is_(True))
            .order_by(Testimonial.created_at.desc(), Testimonial.id.desc())
            .all()
        )

    def get_all_testimonials(self) -> List[Testimonial]:
        return (
            self.db.query(Testimonial)
            .options(selectinload(Testimonial.user))
            .order_by(Testimonial.created_at.desc(), Testimonial.id.desc())
            .all()
        )

    # -----------------------------
    # Messages
    # -----------------------------
    def get_message(self, message_id: int) -> Optional[Message]:
        return self.db.get(Message, message_id)

    @mutation
    def create_message(self, message: schemas.MessageCreate) -> Message:
        return self._save(Message(**message.model_dump()))

    @mutation
    def mark_message_as_read(self, message_id: int) -> Optional[Message]:
        message = self.db.get(Message, message_id)
        if message is None:
            return None
        message.read = True
        return self._save(message)

    def get_all_messages(self) -> List[Message]:
        return self.db.query(Message).order_by(Message.created_at.desc(), Message.id.desc()).all()

    def get_unread_messages(self) -> List[Message]:
        return (
            self.db.query(Message)
            .filter(Message.read.is_(False))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .all()
        )

    # -----------------------------
    # Login sessions
    # -----------------------------
    def get_session(self, sid: str) -> Optional[SessionRecord]:
        return self.db.get(SessionRecord, sid)

    @mutation
    def create_session(self, sid: str, user_id: int, expires_at: datetime) -> SessionRecord:
        return self._save(SessionRecord(sid=sid, user_id=user_id, expires_at=expires_at))

    @mutation
    def delete_session(self, sid: str) -> bool:
        record = self.db.get(SessionRecord, sid)
        if record is None:
            return False
        self.db.delete(record)
        self.db.commit()
        return True
