"""
Lectures sur les tables dynamiques : listes de lignes, recherche par
identifiant global, statistiques d'identifiants, recherche de tuteur.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.schemas.roster import GuardianLookup, IdStatistics, TableStatistics
from app.services import credentials, id_allocator, schema_provisioner
from app.services.errors import NotFound
from app.services.roster_domains import RosterDomain
from app.services.row_engine import column_types, present_row, resolve_table, storage_failure

logger = logging.getLogger(__name__)


def list_category_tables(db: Session, domain: RosterDomain, category: Optional[str]) -> List[str]:
    namespace = domain.namespace_for(category)
    try:
        return schema_provisioner.list_tables(db, namespace)
    except SQLAlchemyError as e:
        raise storage_failure(db, "Lecture des tables impossible.", e)


def list_rows(db: Session, domain: RosterDomain, category: Optional[str], table_name: str) -> List[dict]:
    """Lignes d'une table, par identifiant local croissant, sans les hashes."""
    try:
        namespace, table = resolve_table(db, domain, category, table_name)
        types = column_types(db, domain, namespace, table)
        rows = db.execute(
            select(table).order_by(table.c[domain.local_id_column])
        ).mappings().all()
    except SQLAlchemyError as e:
        raise storage_failure(db, "Lecture des lignes impossible.", e)
    return [present_row(domain, types, row) for row in rows]


def find_by_global_id(db: Session, domain: RosterDomain, global_id: int) -> Dict:
    """Parcourt toutes les tables du domaine à la recherche d'un identifiant global."""
    try:
        for namespace in schema_provisioner.list_namespaces(domain):
            for table_name in schema_provisioner.list_tables(db, namespace):
                table = schema_provisioner.load_table(db, namespace, table_name)
                row = db.execute(
                    select(table).where(table.c[domain.global_id_column] == global_id)
                ).mappings().first()
                if row is not None:
                    types = column_types(db, domain, namespace, table)
                    return {
                        "category": domain.category_for(namespace),
                        "table": table_name,
                        "row": present_row(domain, types, row),
                    }
    except SQLAlchemyError as e:
        raise storage_failure(db, "Recherche impossible.", e)
    raise NotFound(f"Aucune ligne avec {domain.global_id_column}={global_id}.")


def id_statistics(db: Session, domain: RosterDomain, category: Optional[str]) -> IdStatistics:
    namespace = domain.namespace_for(category)
    local = domain.local_id_column
    try:
        tables = []
        for table_name in schema_provisioner.list_tables(db, namespace):
            table = schema_provisioner.load_table(db, namespace, table_name)
            count, max_local = db.execute(
                select(func.count(), func.coalesce(func.max(table.c[local]), 0)).select_from(table)
            ).one()
            tables.append(TableStatistics(table=table_name, row_count=count, max_local_id=max_local))
        counter = id_allocator.current_global_id(db, domain.name)
    except SQLAlchemyError as e:
        raise storage_failure(db, "Statistiques indisponibles.", e)
    return IdStatistics(global_counter=counter, tables=tables)


def search_guardian(db: Session, domain: RosterDomain, phone: str) -> GuardianLookup:
    namespace = domain.namespace_for(None)
    try:
        found = credentials.find_guardian(db, namespace, phone)
    except SQLAlchemyError as e:
        raise storage_failure(db, "Recherche du tuteur impossible.", e)
    if found is None:
        raise NotFound("Aucun tuteur avec ce numéro.")
    return GuardianLookup(
        guardian_name=found.get("guardian_name"),
        guardian_username=found.get("guardian_username"),
        table=found["table"],
    )
