"""
Configuration de la connexion à la base de données PostgreSQL.
Les tables fixes (registre des types, compteurs, comptes) sont déclaratives ;
les tables de rôles sont créées dynamiquement par le service de provisionnement.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.schema import CreateSchema

from app.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_catalog() -> None:
    """
    Crée les schémas et tables fixes s'ils n'existent pas encore.
    Idempotent : appelé à chaque démarrage de l'API.
    """
    import app.models  # noqa: F401  (enregistre les modèles dans Base.metadata)

    with engine.begin() as conn:
        for schema in (settings.CATALOG_SCHEMA, settings.CORE_SCHEMA):
            conn.execute(CreateSchema(schema, if_not_exists=True))
        Base.metadata.create_all(conn)
    logger.info("Catalogue initialisé (%s, %s)", settings.CATALOG_SCHEMA, settings.CORE_SCHEMA)
