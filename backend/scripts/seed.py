"""Populate an empty database with the demo admin user, the "Lucas" registry and sample gifts."""
import argparse
import asyncio
import logging

from sqlalchemy import func, select

from babyregistry.core.logger import configure_logging
from babyregistry.core.security import get_password_hash
from babyregistry.db.session import async_session_factory, engine, ensure_schema_ready
from babyregistry.models.models import User
from babyregistry.schemas.registry import GiftCreate, RegistryCreate
from babyregistry.services.registries import RegistryService

logger = logging.getLogger("babyregistry.seed")

_IMAGE = "https://images.unsplash.com/{}?auto=format&fit=crop&w=500&h=300&q=80"

SAMPLE_GIFTS = [
    {
        "name": "Cuna de madera convertible",
        "description": "Cuna de alta calidad que se convierte en cama infantil a medida que el bebé crece.",
        "price": 179.99,
        "image_url": _IMAGE.format("photo-1584304779423-2bff862e2e81"),
        "url": "https://www.babystore.com/cuna-convertible",
        "store": "BabyStore",
        "category": "Muebles",
    },
    {
        "name": "Set de sonajeros coloridos",
        "description": "Conjunto de 4 sonajeros de diferentes colores y formas, ideales para estimulación sensorial.",
        "price": 24.95,
        "image_url": _IMAGE.format("photo-1519689680058-324335c77eba"),
        "url": "https://www.toyworld.com/sonajeros-set",
        "store": "ToyWorld",
        "category": "Juguetes",
    },
    {
        "name": "Pack de 5 bodys",
        "description": "Conjunto de 5 bodys de algodón orgánico en colores neutros, talla 0-3 meses.",
        "price": 34.99,
        "image_url": _IMAGE.format("photo-1617331721458-bd3bd3f9c7f8"),
        "url": "https://www.babyfashion.com/bodys-pack5",
        "store": "BabyFashion",
        "category": "Ropa",
    },
    {
        "name": "Cambiador portátil",
        "description": "Cambiador plegable con bolsillos para pañales y toallitas, fácil de transportar.",
        "price": 29.99,
        "image_url": _IMAGE.format("photo-1595502124338-950db27ea1c7"),
        "url": "https://www.babystore.com/cambiador-portatil",
        "store": "BabyStore",
        "category": "Accesorios",
    },
    {
        "name": "Móvil musical para cuna",
        "description": "Móvil con figuras de animales y música suave para ayudar al bebé a dormir.",
        "price": 42.5,
        "image_url": _IMAGE.format("photo-1563782414584-0f3022708cb9"),
        "url": "https://www.toyworld.com/movil-musical",
        "store": "ToyWorld",
        "category": "Juguetes",
    },
    {
        "name": "Bañera ergonómica",
        "description": "Bañera con soporte antideslizante y ergonómico que crece con el bebé.",
        "price": 55.0,
        "image_url": _IMAGE.format("photo-1544140708-54b416b4b307"),
        "url": "https://www.babystore.com/banera-ergonomica",
        "store": "BabyStore",
        "category": "Accesorios",
    },
]


async def seed(username: str, email: str, password: str) -> None:
    try:
        await _seed(username, email, password)
    finally:
        await engine.dispose()


async def _seed(username: str, email: str, password: str) -> None:
    await ensure_schema_ready()
    async with async_session_factory() as session:
        existing = await session.scalar(select(func.count()).select_from(User))
        if existing:
            logger.info("Database already has %s users, skipping seed", existing)
            return

        admin = User(username=username, email=email, hashed_password=get_password_hash(password))
        session.add(admin)
        await session.commit()
        await session.refresh(admin)
        logger.info("Created admin user id=%s", admin.id)

        service = RegistryService(session)
        registry = await service.create_registry(
            admin,
            RegistryCreate(
                baby_name="Lucas",
                description="Lista de regalos para nuestro pequeño Lucas",
                is_public=True,
            ),
        )
        for item in SAMPLE_GIFTS:
            await service.create_gift(registry, GiftCreate(registry_id=registry.id, **item))
        logger.info("Seeded registry slug=%s with %s gifts", registry.slug, len(SAMPLE_GIFTS))


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the database with a demo admin and registry")
    parser.add_argument("--username", default="admin")
    parser.add_argument("--email", default="admin@example.com")
    parser.add_argument("--password", default="password123")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()
    configure_logging(args.log_level)
    asyncio.run(seed(args.username, args.email, args.password))


if __name__ == "__main__":
    main()
