"""
Provisionnement des espaces de noms et des tables de rôles à partir d'une
liste de champs personnalisés.

Le lot est d'abord entièrement validé en mémoire (`SchemaSpec`), puis
appliqué dans une seule transaction : suppression éventuelle de l'espace,
création des tables, enregistrement des types au registre. Toute erreur
annule l'ensemble et laisse l'espace dans son état précédent.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import BigInteger, Boolean, Column, Date, MetaData, String, Table, Text, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.schema import CreateSchema, CreateTable, DropSchema, DropTable
from sqlalchemy.types import TypeEngine

from app.config import settings
from app.schemas.field import PHONE_BIGINT_TYPES, FieldDefinition, LogicalType
from app.services import field_registry
from app.services.errors import AlreadyExists, InvalidField, InvalidIdentifier, NotFound, RosterError, StorageFailure
from app.services.identifiers import Identifier, sanitize_column_batch, sanitize_table_name
from app.services.roster_domains import RosterDomain

logger = logging.getLogger(__name__)

STORAGE_TYPES: Dict[LogicalType, Callable[[], TypeEngine]] = {
    LogicalType.TEXT: lambda: String(255),
    LogicalType.TEXTAREA: Text,
    LogicalType.NUMBER: BigInteger,
    LogicalType.DATE: Date,
    LogicalType.CHECKBOX: Boolean,
    LogicalType.SELECT: lambda: String(255),
    LogicalType.MULTI_SELECT: Text,  # tableau JSON
    LogicalType.UPLOAD: lambda: String(255),  # nom du fichier stocké
}


def storage_type_for(definition: FieldDefinition) -> TypeEngine:
    """
    Type de colonne PostgreSQL pour un champ.
    Exception historique : un champ texte, nombre ou liste nommé `phone` est
    stocké en BIGINT (perte des zéros initiaux et du `+`) tant que
    LEGACY_PHONE_BIGINT est actif. Les autres types gardent leur stockage.
    """
    if (
        settings.LEGACY_PHONE_BIGINT
        and definition.name == "phone"
        and definition.type in PHONE_BIGINT_TYPES
    ):
        return BigInteger()
    return STORAGE_TYPES[definition.type]()


@dataclass(frozen=True)
class ColumnSpec:
    name: Identifier
    definition: FieldDefinition

    @property
    def storage_type(self) -> TypeEngine:
        return storage_type_for(self.definition)


@dataclass(frozen=True)
class SchemaSpec:
    namespace: Identifier
    table: Identifier
    columns: Tuple[ColumnSpec, ...]


def build_schema_spec(
    domain: RosterDomain, namespace: Identifier, table_name: str, fields: List[FieldDefinition]
) -> SchemaSpec:
    """Valide une table et ses champs sans toucher à la base."""
    table = sanitize_table_name(table_name)
    names = sanitize_column_batch([f.name for f in fields], domain.base_column_names)
    columns = tuple(ColumnSpec(name=name, definition=f) for name, f in zip(names, fields))
    return SchemaSpec(namespace=namespace, table=table, columns=columns)


def build_table(domain: RosterDomain, spec: SchemaSpec, metadata: MetaData) -> Table:
    """Construit l'objet Table : colonnes de base puis colonnes personnalisées."""
    columns = domain.base_columns()
    for col in spec.columns:
        kwargs = {"nullable": not col.definition.required}
        if isinstance(col.storage_type, Boolean):
            kwargs["server_default"] = text("false")
        columns.append(Column(col.name, col.storage_type, **kwargs))
    return Table(spec.table, metadata, *columns, schema=spec.namespace)


def list_tables(db: Session, namespace: str) -> List[str]:
    """Tables d'un espace de noms, triées. Liste vide si l'espace n'existe pas."""
    return sorted(inspect(db.connection()).get_table_names(schema=namespace))


def list_namespaces(domain: RosterDomain) -> List[Identifier]:
    if domain.fixed_namespace:
        return [domain.namespace_for(None)]
    return [domain.namespace_for(category) for category in domain.categories]


def load_table(db: Session, namespace: str, table_name: str) -> Table:
    """Reflète une table dynamique existante ; lève NotFound sinon."""
    conn = db.connection()
    if not inspect(conn).has_table(table_name, schema=namespace):
        raise NotFound(f"Table '{namespace}.{table_name}' introuvable.")
    return Table(table_name, MetaData(), schema=namespace, autoload_with=conn)


def create_entity_namespace_and_tables(
    db: Session,
    domain: RosterDomain,
    category: Optional[str],
    table_names: List[str],
    fields: List[FieldDefinition],
    replace: Optional[bool] = None,
) -> List[SchemaSpec]:
    """
    Crée les tables demandées dans l'espace de la catégorie.

    - replace=True : l'espace existant est supprimé (avec ses données) puis recréé.
    - replace=False : AlreadyExists si une des tables demandées existe déjà.
    Par défaut, le comportement du domaine s'applique.
    """
    if not table_names:
        raise InvalidField("Au moins un nom de table est requis.")

    namespace = domain.namespace_for(category)
    specs = [build_schema_spec(domain, namespace, name, fields) for name in table_names]
    seen = set()
    for spec, raw in zip(specs, table_names):
        if spec.table in seen:
            raise InvalidIdentifier(raw, "Table déclarée plusieurs fois.")
        seen.add(spec.table)

    if replace is None:
        replace = domain.replace_on_create

    try:
        existing = list_tables(db, namespace)
        if existing and replace:
            _drop_namespace(db, namespace)
        elif seen.intersection(existing):
            raise AlreadyExists(
                "Un formulaire existe déjà pour cette table.",
                details=", ".join(sorted(seen.intersection(existing))),
            )

        db.execute(CreateSchema(namespace, if_not_exists=True))
        metadata = MetaData()
        for spec in specs:
            db.execute(CreateTable(build_table(domain, spec, metadata)))
            for col in spec.columns:
                field_registry.record_field_type(
                    db, namespace, spec.table, col.name,
                    col.definition.type, col.definition.required, col.definition.options,
                )
        db.commit()
    except RosterError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Échec du provisionnement de %s : %s", namespace, e, exc_info=True)
        raise StorageFailure("Échec de création du formulaire.", details=str(e))

    logger.info("Espace %s provisionné : %s", namespace, ", ".join(s.table for s in specs))
    return specs


def drop_entity_namespace(db: Session, domain: RosterDomain, category: Optional[str]) -> None:
    """Supprime l'espace de noms, toutes ses tables et leurs entrées au registre."""
    namespace = domain.namespace_for(category)
    try:
        _drop_namespace(db, namespace)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageFailure("Échec de suppression du formulaire.", details=str(e))
    logger.info("Espace %s supprimé", namespace)


def drop_entity_table(db: Session, domain: RosterDomain, category: Optional[str], table_name: str) -> None:
    """Supprime une seule table et ses entrées au registre."""
    namespace = domain.namespace_for(category)
    table = sanitize_table_name(table_name)
    try:
        db.execute(DropTable(Table(table, MetaData(), schema=namespace), if_exists=True))
        field_registry.delete_field_types(db, namespace, table)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageFailure("Échec de suppression du formulaire.", details=str(e))
    logger.info("Table %s.%s supprimée", namespace, table)


def _drop_namespace(db: Session, namespace: str) -> None:
    db.execute(DropSchema(namespace, cascade=True, if_exists=True))
    field_registry.delete_field_types(db, namespace)
