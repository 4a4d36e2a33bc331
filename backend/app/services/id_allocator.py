"""
Attribution des identifiants de ligne.

- Identifiant global : compteur partagé par toutes les tables d'un domaine,
  incrémenté atomiquement (UPDATE ... RETURNING) dans la transaction de
  l'insertion. Jamais réutilisé, même après suppression.
- Identifiant local : MAX + 1 dans la table cible, sans état séparé. Deux
  insertions concurrentes dans la même table peuvent obtenir la même valeur
  hors isolation SERIALIZABLE.
"""

import logging

from sqlalchemy import Table, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from app.models.id_counter import GlobalIdCounter
from app.services.errors import StorageFailure

logger = logging.getLogger(__name__)


def next_global_id(db: Session, domain: str) -> int:
    """Incrémente et retourne le compteur global du domaine. Ne committe pas."""
    counter = GlobalIdCounter.__table__
    stmt = (
        update(counter)
        .where(counter.c.domain == domain)
        .values(last_value=counter.c.last_value + 1, updated_at=func.now())
        .returning(counter.c.last_value)
    )
    value = db.execute(stmt).scalar()
    if value is None:
        _bootstrap_counter(db, domain)
        value = db.execute(stmt).scalar()
        if value is None:
            raise StorageFailure(f"Compteur global '{domain}' indisponible.")
    return int(value)


def current_global_id(db: Session, domain: str) -> int:
    counter = GlobalIdCounter.__table__
    value = db.execute(
        select(counter.c.last_value).where(counter.c.domain == domain)
    ).scalar()
    return int(value or 0)


def next_local_id(db: Session, table: Table, column: str) -> int:
    """MAX(column) + 1 ; 1 pour une table vide."""
    current = db.execute(
        select(func.coalesce(func.max(table.c[column]), 0))
    ).scalar()
    return int(current or 0) + 1


def _bootstrap_counter(db: Session, domain: str) -> None:
    """Crée la ligne du compteur à 0 si elle manque (idempotent)."""
    counter = GlobalIdCounter.__table__
    db.execute(
        pg_insert(counter)
        .values(domain=domain, last_value=0)
        .on_conflict_do_nothing(index_elements=["domain"])
    )
    logger.info("Compteur global '%s' initialisé à 0", domain)
