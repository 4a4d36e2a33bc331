"""
Tests unitaires de l'assainissement des identifiants SQL.
"""

import pytest

from app.services.errors import InvalidIdentifier
from app.services.identifiers import (
    Identifier,
    sanitize_column_batch,
    sanitize_column_name,
    sanitize_namespace,
    sanitize_table_name,
)


# --- Espaces de noms et tables ---

def test_namespace_minuscules_et_espaces():
    assert sanitize_namespace("Administrative Staff") == "administrative_staff"


def test_namespace_caracteres_illegaux_retires():
    assert sanitize_namespace("  Grade 10-A! ") == "grade_10a"


def test_namespace_retourne_identifier():
    assert isinstance(sanitize_namespace("teachers"), Identifier)


def test_namespace_vide_rejete():
    with pytest.raises(InvalidIdentifier):
        sanitize_namespace("!!!")


def test_namespace_trop_long_rejete():
    with pytest.raises(InvalidIdentifier):
        sanitize_namespace("a" * 64)


def test_table_meme_normalisation():
    assert sanitize_table_name("Grade 10 A") == "grade_10_a"


# --- Colonnes ---

def test_colonne_valide_inchangee():
    assert sanitize_column_name("favoriteSubject") == "favoriteSubject"


@pytest.mark.parametrize("name", ["1club", "club-name", "club name", ""])
def test_colonne_mal_formee_rejetee(name):
    with pytest.raises(InvalidIdentifier):
        sanitize_column_name(name)


def test_colonne_mot_reserve_insensible_casse():
    with pytest.raises(InvalidIdentifier) as exc:
        sanitize_column_name("Select")
    assert exc.value.details == "Mot réservé PostgreSQL."


def test_colonne_de_base_rejetee():
    with pytest.raises(InvalidIdentifier):
        sanitize_column_name("Student_Name", base_columns=["student_name"])


def test_lot_doublon_rejete():
    with pytest.raises(InvalidIdentifier):
        sanitize_column_batch(["club", "Club"])


def test_lot_valide():
    assert sanitize_column_batch(["club", "hobby"]) == ["club", "hobby"]
