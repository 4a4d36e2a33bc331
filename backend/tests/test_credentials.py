"""
Tests unitaires de la génération des identifiants de connexion.
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.security import check_password_hash

from app.services.credentials import (
    PASSWORD_ALPHABET,
    create_staff_account,
    generate_password,
    generate_username,
    hash_password,
    issue_inline_credentials,
    reset_staff_password,
)
from app.services.errors import NotFound, StorageFailure

STUDENT = {"student_name": "Abebe Kebede", "guardian_name": "Kebede Alemu", "guardian_phone": "0911223344"}


def integrity_error():
    return IntegrityError("INSERT", {}, Exception("duplicate key"))


# --- Génération ---

def test_username_depuis_nom():
    username = generate_username("Jean Dupont")
    assert username.startswith("jeandupont")
    assert len(username) == len("jeandupont") + 4


def test_username_nom_vide():
    assert generate_username("").startswith("user")


def test_password_longueur_et_alphabet():
    password = generate_password()
    assert len(password) == 8
    assert all(c in PASSWORD_ALPHABET for c in password)


def test_hash_verifiable():
    hashed = hash_password("s3cret!")
    assert hashed != "s3cret!"
    assert check_password_hash(hashed, "s3cret!")
    assert not check_password_hash(hashed, "autre")


# --- Élèves et tuteurs ---

def test_inline_nouveau_tuteur():
    db = MagicMock()
    with patch("app.services.credentials.find_guardian", return_value=None):
        issued = issue_inline_credentials(db, "classes_schema", STUDENT)

    roles = [c.role for c in issued.credentials]
    assert roles == ["student", "guardian"]
    assert all(c.password for c in issued.credentials)
    assert issued.columns["username"].startswith("abebekebede")
    assert check_password_hash(issued.columns["password_hash"], issued.credentials[0].password)
    assert issued.errors == []


def test_inline_tuteur_existant_reutilise():
    db = MagicMock()
    existing = {
        "table": "grade_9",
        "guardian_name": "Kebede Alemu",
        "guardian_username": "kebedealemu0042",
        "guardian_password_hash": "hash-existant",
    }
    with patch("app.services.credentials.find_guardian", return_value=existing):
        issued = issue_inline_credentials(db, "classes_schema", STUDENT)

    assert issued.columns["guardian_username"] == "kebedealemu0042"
    assert issued.columns["guardian_password_hash"] == "hash-existant"
    guardian = issued.credentials[1]
    assert guardian.reused is True
    assert guardian.password is None


def test_inline_recherche_tuteur_en_echec():
    """La recherche échoue : nouveau compte tuteur et erreur signalée."""
    db = MagicMock()
    with patch("app.services.credentials.find_guardian", side_effect=OperationalError("SELECT", {}, Exception())):
        issued = issue_inline_credentials(db, "classes_schema", STUDENT)

    assert len(issued.errors) == 1
    assert issued.credentials[1].password is not None


# --- Personnel ---

def test_compte_personnel_cree():
    db = MagicMock()
    credential = create_staff_account(db, 12, "Sara Tesfaye", "Teachers", "math")

    assert credential.role == "staff"
    assert credential.username.startswith("saratesfaye")
    account = db.add.call_args[0][0]
    assert account.global_staff_id == 12
    assert account.class_name == "math"
    assert check_password_hash(account.password_hash, credential.password)


def test_compte_personnel_nom_pris_reessaye():
    db = MagicMock()
    db.flush.side_effect = [integrity_error(), None]

    credential = create_staff_account(db, 12, "Sara", "Teachers", "math")

    assert credential.username.startswith("sara")
    assert db.add.call_count == 2


def test_compte_personnel_echec_apres_essais():
    db = MagicMock()
    db.flush.side_effect = integrity_error()

    with pytest.raises(StorageFailure):
        create_staff_account(db, 12, "Sara", "Teachers", "math")


def test_reset_compte_introuvable():
    db = MagicMock()
    db.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(NotFound):
        reset_staff_password(db, 99)


def test_reset_compte_nouveau_hash():
    db = MagicMock()
    account = MagicMock(username="sara0001", password_hash="ancien")
    db.execute.return_value.scalar_one_or_none.return_value = account

    credential = reset_staff_password(db, 12)

    assert credential.username == "sara0001"
    assert check_password_hash(account.password_hash, credential.password)
