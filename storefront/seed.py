# storefront/seed.py

"""
Populates an empty database with the admin account, starter categories,
sample products, a sample customer and two approved testimonials.

Safe to run repeatedly: each group is only inserted when it is missing.

    python -m storefront.seed
"""
import logging
import sys

from .auth import get_password_hash
from .db import Database
from .schemas import CategoryCreate, ProductCreate, TestimonialCreate, UserCreate
from .storage import Storage

logger = logging.getLogger(__name__)

ADMIN = UserCreate(
    username="admin",
    password="admin123",
    first_name="Admin",
    last_name="User",
    email="admin@ateliedarosa.com",
)

CUSTOMER = UserCreate(
    username="cliente",
    password="cliente123",
    first_name="Maria",
    last_name="Silva",
    email="maria@exemplo.com",
    phone="(11) 98765-4321",
)

CATEGORIES = [
    ("Roupas", "Peças de vestuário feitas à mão"),
    ("Acessórios", "Acessórios e bolsas artesanais"),
    ("Decoração", "Itens decorativos para sua casa"),
]

PRODUCTS = [
    (
        "Roupas",
        "Vestido Floral Artesanal",
        "Peça exclusiva em algodão com estampa floral e acabamento feito à mão.",
        "289.90",
        "https://images.unsplash.com/photo-1594938298603-c8148c4dae35",
    ),
    (
        "Acessórios",
        "Bolsa Artesanal Bordada",
        "Bolsa artesanal com detalhes em bordado manual, confeccionada com materiais sustentáveis.",
        "159.90",
        "https://images.unsplash.com/photo-1576566588028-4147f3842f27",
    ),
    (
        "Decoração",
        "Conjunto de Almofadas Decorativas",
        "Conjunto com 3 almofadas decorativas feitas com tecidos de alta qualidade e detalhes em bordado.",
        "129.90",
        "https://images.unsplash.com/photo-1590139370383-9586f5be4294",
    ),
    (
        "Acessórios",
        "Nécessaire Floral",
        "Nécessaire feita à mão em tecido impermeável com estampa floral exclusiva.",
        "79.90",
        "https://images.unsplash.com/photo-1591047139829-d91aecb6caea",
    ),
    (
        "Roupas",
        "Saia Midi Artesanal",
        "Saia midi confeccionada artesanalmente com tecido leve e confortável.",
        "199.90",
        "https://images.unsplash.com/photo-1577900232427-18219b8349ed",
    ),
    (
        "Decoração",
        "Toalha de Mesa Bordada",
        "Toalha de mesa com bordados feitos à mão, perfeita para ocasiões especiais.",
        "149.90",
        "https://images.unsplash.com/photo-1576757286722-de9a91eb0d64",
    ),
]

TESTIMONIALS = [
    (
        "O vestido sob medida que encomendei ficou perfeito! Cada detalhe foi cuidadosamente "
        "trabalhado e o acabamento é impecável. Recomendo muito o Ateliê da Rosa!",
        5,
    ),
    (
        "As almofadas decorativas que comprei são lindas e feitas com um acabamento incrível! "
        "Mudaram completamente o visual da minha sala. Voltarei com certeza para comprar mais!",
        5,
    ),
]


def seed(storage: Storage):
    if not storage.get_user_by_username(ADMIN.username):
        logger.info("Creating admin user...")
        storage.create_user(ADMIN, get_password_hash(ADMIN.password), is_admin=True)

    if not storage.get_all_categories():
        logger.info("Creating product categories...")
        for name, description in CATEGORIES:
            storage.create_category(CategoryCreate(name=name, description=description))

    category_ids = {c.name: c.id for c in storage.get_all_categories()}
    if not storage.get_all_products():
        logger.info("Creating sample products...")
        for category, name, description, price, image_url in PRODUCTS:
            if category not in category_ids:
                continue
            storage.create_product(
                ProductCreate(
                    name=name,
                    description=description,
                    price=price,
                    image_url=image_url,
                    category_id=category_ids[category],
                )
            )

    customer = storage.get_user_by_username(CUSTOMER.username)
    if customer is None:
        logger.info("Creating sample customer...")
        customer = storage.create_user(CUSTOMER, get_password_hash(CUSTOMER.password))

    if not storage.get_all_testimonials():
        logger.info("Creating sample testimonials...")
        for text, rating in TESTIMONIALS:
            testimonial = storage.create_testimonial(TestimonialCreate(text=text, rating=rating), customer.id)
            storage.approve_testimonial(testimonial.id)


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    database = Database()
    database.create_all()
    db = database.session()
    try:
        seed(Storage(db))
    except Exception:
        logger.critical("Error seeding database", exc_info=True)
        sys.exit(1)
    finally:
        db.close()
        database.dispose()
    logger.info("Database seed completed successfully!")


if __name__ == "__main__":
    main()
