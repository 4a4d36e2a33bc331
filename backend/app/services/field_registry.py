"""
Registre des types de champs (schéma form_metadata).

Les colonnes dynamiques sont stockées avec un petit nombre de types natifs :
un `select` et un `text` deviennent tous deux VARCHAR. Le registre garde le
type logique déclaré, l'obligation et les options de chaque champ, par
(schéma, table, colonne). Une nouvelle déclaration écrase la précédente.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text, delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session
from sqlalchemy.types import TypeEngine

from app.models.field_type import FieldType
from app.schemas.field import LogicalType

logger = logging.getLogger(__name__)

# Fragments de noms signalant une colonne de fichier sans entrée au registre
UPLOAD_NAME_FRAGMENTS = ("_file", "_upload", "_image", "_photo", "_document")


@dataclass(frozen=True)
class FieldTypeInfo:
    logical_type: LogicalType
    required: bool = False
    options: List[str] = field(default_factory=list)


def record_field_type(
    db: Session,
    namespace: str,
    table: str,
    column: str,
    logical_type: LogicalType,
    required: bool,
    options: Optional[List[str]] = None,
) -> None:
    """Enregistre (ou écrase) le type logique d'une colonne. Ne committe pas."""
    values = {
        "schema_name": namespace,
        "table_name": table,
        "column_name": column,
        "field_type": LogicalType(logical_type).value,
        "required": bool(required),
        "options": list(options or []),
    }
    stmt = pg_insert(FieldType.__table__).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["schema_name", "table_name", "column_name"],
        set_={
            "field_type": stmt.excluded.field_type,
            "required": stmt.excluded.required,
            "options": stmt.excluded.options,
            "updated_at": func.now(),
        },
    )
    db.execute(stmt)


def lookup_field_types(db: Session, namespace: str, table: str) -> Dict[str, FieldTypeInfo]:
    """Retourne {colonne: FieldTypeInfo} pour toutes les entrées d'une table."""
    rows = db.execute(
        select(FieldType).where(
            FieldType.schema_name == namespace,
            FieldType.table_name == table,
        )
    ).scalars().all()

    result: Dict[str, FieldTypeInfo] = {}
    for row in rows:
        try:
            logical_type = LogicalType(row.field_type)
        except ValueError:
            logger.warning("Type inconnu '%s' pour %s.%s.%s, lu comme text",
                           row.field_type, namespace, table, row.column_name)
            logical_type = LogicalType.TEXT
        result[row.column_name] = FieldTypeInfo(
            logical_type=logical_type,
            required=bool(row.required),
            options=list(row.options or []),
        )
    return result


def delete_field_types(db: Session, namespace: str, table: Optional[str] = None) -> None:
    """Supprime les entrées d'une table, ou de tout l'espace si `table` est None."""
    stmt = delete(FieldType).where(FieldType.schema_name == namespace)
    if table is not None:
        stmt = stmt.where(FieldType.table_name == table)
    db.execute(stmt)


def infer_logical_type(column_name: str, storage_type: TypeEngine, upload_columns=()) -> LogicalType:
    """
    Type logique déduit du type natif, pour les colonnes absentes du registre
    (colonnes de base, tables créées avant le registre).
    """
    if column_name in upload_columns:
        return LogicalType.UPLOAD
    if isinstance(storage_type, Boolean):
        return LogicalType.CHECKBOX
    if isinstance(storage_type, (Integer, Numeric)):
        return LogicalType.NUMBER
    if isinstance(storage_type, Date):
        return LogicalType.DATE
    if isinstance(storage_type, (String, Text)):
        if any(fragment in column_name for fragment in UPLOAD_NAME_FRAGMENTS):
            return LogicalType.UPLOAD
        return LogicalType.TEXT
    return LogicalType.TEXT
