"""
Lecture et écriture des lignes dans les tables dynamiques (élèves et personnel).

Les noms de colonnes viennent de la table reflétée, jamais de la requête :
les clés inconnues d'un formulaire sont ignorées sans erreur, les valeurs sont
converties selon le type logique du registre (ou déduit du type natif), puis
passées en paramètres liés.

Règles d'erreur :
- erreurs structurelles (table absente, colonne inconnue dans un import,
  champ obligatoire manquant) : rien n'est écrit ;
- erreur de stockage au milieu d'une opération : rollback complet ;
- échec d'un effet secondaire (identifiants, suppression de fichier) :
  signalé dans la réponse, la ligne reste enregistrée.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import Integer, Table, and_, delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.schemas.field import PHONE_BIGINT_TYPES, FieldDescriptor, LogicalType
from app.schemas.roster import BulkRowError, BulkUploadReport, GeneratedCredential, RowCreated
from app.services import credentials, field_registry, id_allocator, schema_provisioner, upload_storage
from app.services.errors import InvalidField, NotFound, RosterError, StorageFailure
from app.services.field_registry import FieldTypeInfo
from app.services.identifiers import Identifier, sanitize_table_name
from app.services.roster_domains import ACCOUNT, INLINE, RosterDomain

logger = logging.getLogger(__name__)

TRUE_STRINGS = {"true", "on", "1", "yes"}
FALSE_STRINGS = {"false", "off", "0", "no", ""}


@dataclass
class InsertOutcome:
    global_id: int
    local_id: int
    row: dict
    credentials: List[GeneratedCredential] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


# --- Conversion des valeurs ---

def _to_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidField(f"Valeur numérique attendue pour '{name}'.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        raise InvalidField(f"Valeur numérique attendue pour '{name}'.", details=str(value))


def _to_bool(name: str, value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in TRUE_STRINGS | FALSE_STRINGS:
        return value.strip().lower() in TRUE_STRINGS
    raise InvalidField(f"Valeur booléenne attendue pour '{name}'.", details=str(value))


def _to_date(name: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise InvalidField(f"Date attendue (AAAA-MM-JJ) pour '{name}'.", details=str(value))


def _to_json_list(name: str, value: Any) -> str:
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except ValueError:
                raise InvalidField(f"Liste invalide pour '{name}'.", details=text)
        else:
            value = [part.strip() for part in text.split(",") if part.strip()]
    if not isinstance(value, (list, tuple)):
        raise InvalidField(f"Liste attendue pour '{name}'.")
    return json.dumps([str(v) for v in value])


def coerce_value(name: str, info: FieldTypeInfo, column, value: Any) -> Any:
    """Convertit une valeur reçue selon le type logique du champ."""
    if isinstance(value, str):
        value = value.strip()
    logical_type = info.logical_type

    if logical_type == LogicalType.CHECKBOX:
        return _to_bool(name, value)
    if value is None or value == "" or value == []:
        return None

    if logical_type == LogicalType.NUMBER:
        value = _to_int(name, value)
    elif logical_type == LogicalType.DATE:
        value = _to_date(name, value)
    elif logical_type == LogicalType.MULTI_SELECT:
        value = _to_json_list(name, value)
    elif isinstance(value, (list, dict)):
        raise InvalidField(f"Valeur simple attendue pour '{name}'.")
    else:
        value = str(value)

    # Colonnes "phone" historiques stockées en BIGINT
    if logical_type in PHONE_BIGINT_TYPES and isinstance(column.type, Integer) and not isinstance(value, int):
        value = _to_int(name, value)
    return value


def present_value(info: Optional[FieldTypeInfo], value: Any) -> Any:
    """Valeur stockée -> valeur renvoyée au client (listes décodées)."""
    if info is None or value is None:
        return value
    if info.logical_type == LogicalType.MULTI_SELECT and isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return [part for part in value.split(",") if part]
        return decoded if isinstance(decoded, list) else [decoded]
    return value


def present_row(domain: RosterDomain, types: Dict[str, FieldTypeInfo], row: Mapping) -> dict:
    return {
        key: present_value(types.get(key), value)
        for key, value in row.items()
        if key not in domain.hidden_columns
    }


# --- Métadonnées de colonnes ---

def resolve_table(db: Session, domain: RosterDomain, category: Optional[str], table_name: str) -> Tuple[Identifier, Table]:
    namespace = domain.namespace_for(category)
    table = schema_provisioner.load_table(db, namespace, sanitize_table_name(table_name))
    return namespace, table


def column_types(db: Session, domain: RosterDomain, namespace: str, table: Table) -> Dict[str, FieldTypeInfo]:
    """
    Type logique de chaque colonne : entrée du registre si elle existe,
    sinon déduction depuis le type natif. Les listes d'options connues
    (genre, rôle, ...) s'appliquent toujours.
    """
    registry = field_registry.lookup_field_types(db, namespace, table.name)
    result: Dict[str, FieldTypeInfo] = {}
    for col in table.columns:
        known_options = domain.well_known_options.get(col.name)
        info = registry.get(col.name)
        if info is None:
            logical_type = field_registry.infer_logical_type(col.name, col.type, domain.upload_columns)
            if known_options:
                logical_type = LogicalType.SELECT
            required = (
                not col.nullable
                and col.server_default is None
                and col.name not in domain.managed_columns
            )
            info = FieldTypeInfo(logical_type=logical_type, required=required, options=list(known_options or []))
        elif known_options:
            info = FieldTypeInfo(logical_type=info.logical_type, required=info.required, options=list(known_options))
        result[col.name] = info
    return result


def list_columns(db: Session, domain: RosterDomain, category: Optional[str], table_name: str) -> List[FieldDescriptor]:
    """Colonnes d'une table dans l'ordre de création, avec leur type logique."""
    try:
        namespace, table = resolve_table(db, domain, category, table_name)
        types = column_types(db, domain, namespace, table)
    except SQLAlchemyError as e:
        raise storage_failure(db, "Lecture des colonnes impossible.", e)
    return [
        FieldDescriptor(
            name=col.name,
            type=types[col.name].logical_type.value,
            required=types[col.name].required,
            options=types[col.name].options,
        )
        for col in table.columns
        if col.name not in domain.hidden_columns
    ]


def required_columns(domain: RosterDomain, table: Table, types: Dict[str, FieldTypeInfo]) -> List[str]:
    """Colonnes à fournir par l'appelant (les cases à cocher valent false par défaut)."""
    return [
        col.name for col in table.columns
        if col.name not in domain.managed_columns
        and types[col.name].required
        and types[col.name].logical_type != LogicalType.CHECKBOX
    ]


def prepare_values(domain: RosterDomain, table: Table, types: Dict[str, FieldTypeInfo], values: Mapping) -> dict:
    """
    Garde les colonnes connues et non gérées par le moteur, puis convertit.
    Les colonnes upload ne sont remplies que par les fichiers enregistrés.
    """
    data = {}
    for key, value in values.items():
        if key not in table.c or key in domain.managed_columns:
            continue
        if types[key].logical_type == LogicalType.UPLOAD:
            continue
        data[key] = coerce_value(key, types[key], table.c[key], value)
    return domain.normalize_row(data)


def _defaults(domain: RosterDomain, table: Table) -> dict:
    return {k: v for k, v in domain.row_defaults(table.name).items() if k in table.c}


def _store_files(table: Table, types: Dict[str, FieldTypeInfo], files: Mapping) -> Dict[str, str]:
    """Enregistre les fichiers des colonnes de type upload ; les autres sont ignorés."""
    stored: Dict[str, str] = {}
    try:
        for column_name, upload in files.items():
            if column_name in table.c and types[column_name].logical_type == LogicalType.UPLOAD:
                stored[column_name] = upload_storage.save_upload(column_name, upload)
    except RosterError:
        upload_storage.discard(stored.values())
        raise
    return stored


def _key_clause(domain: RosterDomain, table: Table, key: Mapping):
    """Clause WHERE sur les colonnes d'identifiants (global et/ou local)."""
    if not key:
        raise InvalidField("La clé de la ligne est vide.")
    clauses = []
    for name, value in key.items():
        if name not in domain.key_columns:
            raise InvalidField(
                f"'{name}' ne fait pas partie de la clé.",
                details=f"Colonnes de clé : {', '.join(domain.key_columns)}",
            )
        clauses.append(table.c[name] == _to_int(name, value))
    return and_(*clauses)


def storage_failure(db: Session, message: str, error: Exception) -> StorageFailure:
    """Annule la transaction et enveloppe l'erreur SQLAlchemy."""
    db.rollback()
    logger.error("%s %s", message, error, exc_info=True)
    return StorageFailure(message, details=str(getattr(error, "orig", None) or error))


# --- Écritures ---

def _insert_one(db: Session, domain: RosterDomain, namespace: str, table: Table, data: dict) -> InsertOutcome:
    """Attribue les identifiants, émet les identifiants de connexion et insère une ligne."""
    global_id = id_allocator.next_global_id(db, domain.name)
    local_id = id_allocator.next_local_id(db, table, domain.local_id_column)
    data = {**data, domain.global_id_column: global_id, domain.local_id_column: local_id}

    issued_credentials: List[GeneratedCredential] = []
    errors: List[str] = []
    if domain.credential_mode == INLINE:
        issued = credentials.issue_inline_credentials(db, namespace, data)
        data.update(issued.columns)
        issued_credentials.extend(issued.credentials)
        errors.extend(issued.errors)

    row = db.execute(insert(table).values(data).returning(*table.c)).mappings().one()

    display_name = data.get(domain.display_name_column)
    if domain.credential_mode == ACCOUNT and display_name:
        try:
            issued_credentials.append(credentials.create_staff_account(
                db, global_id, display_name, domain.category_for(namespace), table.name,
            ))
        except (RosterError, SQLAlchemyError) as e:
            logger.warning("Compte non créé pour %s=%s : %s", domain.global_id_column, global_id, e)
            errors.append(f"Compte de connexion non créé : {e}")

    return InsertOutcome(
        global_id=global_id, local_id=local_id, row=dict(row),
        credentials=issued_credentials, errors=errors,
    )


def insert_row(
    db: Session,
    domain: RosterDomain,
    category: Optional[str],
    table_name: str,
    values: Mapping,
    files: Optional[Mapping] = None,
) -> RowCreated:
    """Insère une ligne ; les clés inconnues de `values` sont ignorées."""
    stored: Dict[str, str] = {}
    try:
        namespace, table = resolve_table(db, domain, category, table_name)
        types = column_types(db, domain, namespace, table)
        data = {**_defaults(domain, table), **prepare_values(domain, table, types, values)}
        stored = _store_files(table, types, files or {})
        data.update(stored)

        missing = [c for c in required_columns(domain, table, types) if data.get(c) is None]
        if missing:
            raise InvalidField("Champs obligatoires manquants.", details=", ".join(missing))

        outcome = _insert_one(db, domain, namespace, table, data)
        db.commit()
    except RosterError:
        db.rollback()
        upload_storage.discard(stored.values())
        raise
    except SQLAlchemyError as e:
        upload_storage.discard(stored.values())
        raise storage_failure(db, "Échec de l'ajout de la ligne.", e)

    logger.info("Ligne ajoutée dans %s.%s (%s=%s, %s=%s)", namespace, table.name,
                domain.global_id_column, outcome.global_id, domain.local_id_column, outcome.local_id)
    return RowCreated(
        global_id=outcome.global_id,
        local_id=outcome.local_id,
        generated_credentials=outcome.credentials,
        errors=outcome.errors,
        row=present_row(domain, types, outcome.row),
    )


def update_row(
    db: Session,
    domain: RosterDomain,
    category: Optional[str],
    table_name: str,
    key: Mapping,
    patch: Mapping,
    files: Optional[Mapping] = None,
) -> dict:
    """
    Mise à jour partielle : seuls les champs fournis changent.
    Un fichier remplacé est supprimé après le commit.
    """
    stored: Dict[str, str] = {}
    try:
        namespace, table = resolve_table(db, domain, category, table_name)
        types = column_types(db, domain, namespace, table)
        clause = _key_clause(domain, table, key)

        current = db.execute(select(table).where(clause).with_for_update()).mappings().first()
        if current is None:
            raise NotFound("Ligne introuvable.")

        data = prepare_values(domain, table, types, patch)
        stored = _store_files(table, types, files or {})
        data.update(stored)
        if not data:
            raise InvalidField("Aucun champ à mettre à jour.")

        required = set(required_columns(domain, table, types))
        cleared = sorted(k for k, v in data.items() if v is None and k in required)
        if cleared:
            raise InvalidField("Champs obligatoires manquants.", details=", ".join(cleared))

        row = db.execute(update(table).where(clause).values(data).returning(*table.c)).mappings().first()
        if row is None:
            raise NotFound("Ligne introuvable.")
        db.commit()
    except RosterError:
        db.rollback()
        upload_storage.discard(stored.values())
        raise
    except SQLAlchemyError as e:
        upload_storage.discard(stored.values())
        raise storage_failure(db, "Échec de la mise à jour.", e)

    upload_storage.discard(current[c] for c in stored if current.get(c))
    return present_row(domain, types, row)


def delete_row(db: Session, domain: RosterDomain, category: Optional[str], table_name: str, key: Mapping) -> dict:
    """Supprime la ligne et ses fichiers ; les identifiants locaux restants ne changent pas."""
    try:
        namespace, table = resolve_table(db, domain, category, table_name)
        types = column_types(db, domain, namespace, table)
        clause = _key_clause(domain, table, key)

        rows = db.execute(delete(table).where(clause).returning(*table.c)).mappings().all()
        if not rows:
            raise NotFound("Ligne introuvable.")
        if domain.credential_mode == ACCOUNT:
            for row in rows:
                credentials.delete_staff_account(db, row[domain.global_id_column])
        db.commit()
    except RosterError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        raise storage_failure(db, "Échec de la suppression.", e)

    upload_columns = [c for c, info in types.items() if info.logical_type == LogicalType.UPLOAD]
    for row in rows:
        upload_storage.discard(row[c] for c in upload_columns if row.get(c))
    logger.info("%d ligne(s) supprimée(s) de %s.%s", len(rows), namespace, table.name)
    return present_row(domain, types, rows[0])


def bulk_insert(
    db: Session, domain: RosterDomain, category: Optional[str], table_name: str, rows: List[Mapping]
) -> BulkUploadReport:
    """
    Import d'un lot de lignes.
    Colonnes inconnues ou champs obligatoires manquants : tout le lot est refusé.
    Valeur invalide sur une ligne : la ligne est ignorée et signalée.
    Échec de création des identifiants : la ligne est gardée et l'échec signalé.
    """
    try:
        namespace, table = resolve_table(db, domain, category, table_name)
        types = column_types(db, domain, namespace, table)

        unknown = sorted({
            k for row in rows for k in row
            if k not in table.c and k not in domain.managed_columns
        })
        if unknown:
            raise InvalidField(f"Colonnes inconnues : {', '.join(unknown)}", details=", ".join(unknown))

        defaults = _defaults(domain, table)
        report = BulkUploadReport(inserted_count=0)
        prepared: List[Tuple[int, dict]] = []
        for index, raw in enumerate(rows, start=1):
            try:
                prepared.append((index, {**defaults, **prepare_values(domain, table, types, raw)}))
            except InvalidField as e:
                report.errors.append(BulkRowError(row=index, reason=e.message))

        # Vérifié après conversion : "   " ou [] valent NULL
        required = required_columns(domain, table, types)
        missing = sorted({c for _, data in prepared for c in required if data.get(c) is None})
        if missing:
            raise InvalidField(f"Champs obligatoires manquants : {', '.join(missing)}", details=", ".join(missing))

        for index, data in prepared:
            outcome = _insert_one(db, domain, namespace, table, data)
            report.inserted_count += 1
            report.generated_credentials.extend(outcome.credentials)
            report.errors.extend(BulkRowError(row=index, reason=err, inserted=True) for err in outcome.errors)
        db.commit()
    except RosterError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        raise storage_failure(db, "Échec de l'import.", e)

    logger.info("Import dans %s.%s : %d ligne(s), %d erreur(s)",
                namespace, table.name, report.inserted_count, len(report.errors))
    return report


def reset_credentials(
    db: Session,
    domain: RosterDomain,
    category: Optional[str],
    table_name: str,
    key: Mapping,
    target: str = "subject",
) -> GeneratedCredential:
    """
    Nouveau mot de passe pour l'élève, son tuteur ou le membre du personnel.
    Le compte d'un tuteur est partagé : toutes ses lignes sont mises à jour.
    """
    try:
        namespace, table = resolve_table(db, domain, category, table_name)
        clause = _key_clause(domain, table, key)
        row = db.execute(select(table).where(clause)).mappings().first()
        if row is None:
            raise NotFound("Ligne introuvable.")

        if domain.credential_mode == ACCOUNT:
            if target != "subject":
                raise InvalidField("Seul le compte du membre du personnel peut être réinitialisé.")
            credential = credentials.reset_staff_password(db, row[domain.global_id_column])
        elif target == "guardian":
            credential = _reset_guardian(db, namespace, table, clause, row)
        else:
            username = row.get("username") or credentials.generate_username(row.get(domain.display_name_column))
            password = credentials.generate_password()
            db.execute(update(table).where(clause).values(
                username=username, password_hash=credentials.hash_password(password),
            ))
            credential = GeneratedCredential(role="student", username=username, password=password)
        db.commit()
    except RosterError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        raise storage_failure(db, "Échec de la réinitialisation.", e)

    logger.info("Identifiants réinitialisés (%s) dans %s.%s", credential.role, namespace, table.name)
    return credential


def _reset_guardian(db: Session, namespace: str, table: Table, clause, row: Mapping) -> GeneratedCredential:
    password = credentials.generate_password()
    password_hash = credentials.hash_password(password)
    username = row.get("guardian_username")
    if not username:
        username = credentials.generate_username(row.get("guardian_name"))
        db.execute(update(table).where(clause).values(
            guardian_username=username, guardian_password_hash=password_hash,
        ))
    else:
        for table_name in schema_provisioner.list_tables(db, namespace):
            sibling = schema_provisioner.load_table(db, namespace, table_name)
            db.execute(
                update(sibling)
                .where(sibling.c.guardian_username == username)
                .values(guardian_password_hash=password_hash)
            )
    return GeneratedCredential(role="guardian", username=username, password=password)
