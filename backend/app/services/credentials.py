"""
Génération des identifiants de connexion des élèves, tuteurs et membres du
personnel.

Seul le hash du mot de passe est conservé ; le mot de passe en clair n'est
renvoyé qu'une fois, dans la réponse de création ou de réinitialisation.
Les échecs ici sont des effets secondaires : ils sont signalés à l'appelant
mais n'annulent jamais la ligne principale.
"""

import logging
import re
import secrets
import string
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import column, delete, select, table
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.config import settings
from app.models.staff_account import StaffAccount
from app.schemas.roster import GeneratedCredential
from app.services import schema_provisioner
from app.services.errors import NotFound, StorageFailure

logger = logging.getLogger(__name__)

PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"
PASSWORD_LENGTH = 8


@dataclass
class IssuedCredentials:
    """Colonnes à écrire dans la ligne + identifiants à renvoyer."""
    columns: dict = field(default_factory=dict)
    credentials: List[GeneratedCredential] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def generate_username(display_name: str) -> str:
    """'Jean Dupont' -> 'jeandupont0427'."""
    clean = re.sub(r"[^a-zA-Z0-9]", "", display_name or "").lower() or "user"
    return f"{clean}{secrets.randbelow(10000):04d}"


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def find_guardian(db: Session, namespace: str, phone: str) -> Optional[dict]:
    """
    Cherche un tuteur par téléphone dans toutes les classes.
    Retourne la première ligne trouvée (nom, identifiant, hash, table) ou None.
    """
    for table_name in schema_provisioner.list_tables(db, namespace):
        t = table(
            table_name,
            column("guardian_name"),
            column("guardian_phone"),
            column("guardian_username"),
            column("guardian_password_hash"),
            schema=namespace,
        )
        row = db.execute(
            select(t.c.guardian_name, t.c.guardian_username, t.c.guardian_password_hash)
            .where(t.c.guardian_phone == str(phone))
            .limit(1)
        ).mappings().first()
        if row:
            return {"table": table_name, **row}
    return None


def issue_inline_credentials(db: Session, namespace: str, values: dict) -> IssuedCredentials:
    """
    Identifiants d'une ligne élève : une paire pour l'élève, une pour le tuteur.
    Un tuteur déjà connu (même téléphone) garde son compte existant.
    """
    issued = IssuedCredentials()

    password = generate_password()
    username = generate_username(values.get("student_name", ""))
    issued.columns.update(username=username, password_hash=hash_password(password))
    issued.credentials.append(GeneratedCredential(role="student", username=username, password=password))

    existing = None
    phone = values.get("guardian_phone")
    if phone:
        try:
            with db.begin_nested():
                existing = find_guardian(db, namespace, phone)
        except SQLAlchemyError as e:
            logger.warning("Recherche du tuteur impossible pour %s : %s", namespace, e)
            issued.errors.append("Recherche du tuteur existant impossible, nouveau compte créé.")

    if existing and existing.get("guardian_username"):
        issued.columns.update(
            guardian_username=existing["guardian_username"],
            guardian_password_hash=existing["guardian_password_hash"],
        )
        issued.credentials.append(GeneratedCredential(
            role="guardian", username=existing["guardian_username"], reused=True,
        ))
    else:
        guardian_password = generate_password()
        guardian_username = generate_username(values.get("guardian_name", ""))
        issued.columns.update(
            guardian_username=guardian_username,
            guardian_password_hash=hash_password(guardian_password),
        )
        issued.credentials.append(GeneratedCredential(
            role="guardian", username=guardian_username, password=guardian_password,
        ))
    return issued


def create_staff_account(
    db: Session, global_staff_id: int, display_name: str, staff_type: str, class_name: str
) -> GeneratedCredential:
    """
    Crée le compte d'un membre du personnel dans un savepoint.
    Un nom d'utilisateur déjà pris est regénéré jusqu'à CREDENTIAL_ATTEMPTS fois.
    """
    for _ in range(settings.CREDENTIAL_ATTEMPTS):
        username = generate_username(display_name)
        password = generate_password()
        try:
            with db.begin_nested():
                db.add(StaffAccount(
                    global_staff_id=global_staff_id,
                    username=username,
                    password_hash=hash_password(password),
                    staff_type=staff_type,
                    class_name=class_name,
                ))
                db.flush()
        except IntegrityError:
            logger.info("Nom d'utilisateur %s déjà pris, nouvel essai", username)
            continue
        logger.info("Compte créé pour global_staff_id=%s (%s)", global_staff_id, username)
        return GeneratedCredential(role="staff", username=username, password=password)

    raise StorageFailure("Impossible de générer un nom d'utilisateur unique.")


def reset_staff_password(db: Session, global_staff_id: int) -> GeneratedCredential:
    """Nouveau mot de passe pour un compte existant. Ne committe pas."""
    account = db.execute(
        select(StaffAccount).where(StaffAccount.global_staff_id == global_staff_id)
    ).scalar_one_or_none()
    if account is None:
        raise NotFound("Compte du membre du personnel introuvable.")
    password = generate_password()
    account.password_hash = hash_password(password)
    return GeneratedCredential(role="staff", username=account.username, password=password)


def delete_staff_account(db: Session, global_staff_id: int) -> None:
    db.execute(delete(StaffAccount).where(StaffAccount.global_staff_id == global_staff_id))
