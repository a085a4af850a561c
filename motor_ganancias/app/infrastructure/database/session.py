"""
session.py
----------
Conexión asíncrona a PostgreSQL del motor de ganancias.

Provee:
  - engine: motor SQLAlchemy async (asyncpg)
  - AsyncSessionLocal: fábrica de sesiones; cada request HTTP usa una
  - init_db: crea tablas en desarrollo (en producción usar migraciones)
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings


def _asyncpg_url(url: str) -> str:
    # asyncpg no entiende ?sslmode= en la URL
    return url.split("?sslmode=")[0]


engine = create_async_engine(
    _asyncpg_url(settings.DATABASE_URL),
    echo          = settings.DEBUG,
    pool_pre_ping = True,
    pool_size     = 5,
    max_overflow  = 10,
)

# expire_on_commit=False: los repositorios devuelven modelos que se
# leen después del commit (ej. la cuenta recién conectada)
AsyncSessionLocal = async_sessionmaker(
    bind             = engine,
    class_           = AsyncSession,
    expire_on_commit = False,
    autoflush        = False,
)


async def init_db() -> None:
    from app.domain.models import Base
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
