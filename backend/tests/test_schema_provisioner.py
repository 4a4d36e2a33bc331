"""
Tests unitaires du provisionnement des espaces de noms et des tables.
Le DDL est compilé avec le dialecte PostgreSQL, sans base réelle.
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import MetaData
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.schema import CreateSchema, CreateTable, DropSchema, DropTable

from app.schemas.field import FieldDefinition
from app.services.errors import AlreadyExists, InvalidIdentifier, StorageFailure
from app.services.roster_domains import STAFF, STUDENTS
from app.services.schema_provisioner import (
    build_schema_spec,
    build_table,
    create_entity_namespace_and_tables,
    drop_entity_table,
)

FIELDS = [
    FieldDefinition(name="club", type="select", required=True, options=["Chess", "Drama"]),
    FieldDefinition(name="newsletter", type="checkbox"),
    FieldDefinition(name="phone", type="text"),
    FieldDefinition(name="hobbies", type="multiple-checkbox", options=["Music", "Sport"]),
]


def compile_ddl(domain, table_name, fields):
    namespace = domain.namespace_for("Teachers")
    spec = build_schema_spec(domain, namespace, table_name, fields)
    return str(CreateTable(build_table(domain, spec, MetaData())).compile(dialect=postgresql.dialect()))


# --- Construction en mémoire ---

def test_ddl_colonnes_de_base_puis_personnalisees():
    ddl = compile_ddl(STUDENTS, "Grade 10", FIELDS)

    assert "CREATE TABLE classes_schema.grade_10" in ddl
    assert "student_name VARCHAR(255) NOT NULL" in ddl
    assert ddl.index("guardian_password_hash") < ddl.index("club")
    assert "club VARCHAR(255) NOT NULL" in ddl
    assert "newsletter BOOLEAN DEFAULT false" in ddl
    assert "hobbies TEXT" in ddl


def test_ddl_phone_stocke_en_bigint():
    assert "phone BIGINT" in compile_ddl(STUDENTS, "grade_10", FIELDS)


def test_ddl_phone_selon_type_declare_si_desactive(monkeypatch):
    from app.config import settings
    monkeypatch.setattr(settings, "LEGACY_PHONE_BIGINT", False)
    assert "phone VARCHAR(255)" in compile_ddl(STUDENTS, "grade_10", FIELDS)


def test_ddl_phone_case_a_cocher_reste_booleen():
    ddl = compile_ddl(STAFF, "math", [FieldDefinition(name="phone", type="checkbox")])
    assert "phone BOOLEAN DEFAULT false" in ddl
    assert "BIGINT DEFAULT false" not in ddl


def test_ddl_phone_date_reste_date():
    ddl = compile_ddl(STAFF, "math", [FieldDefinition(name="phone", type="date")])
    assert "phone DATE" in ddl


def test_ddl_personnel_dans_espace_prefixe():
    ddl = compile_ddl(STAFF, "Math", [])
    assert "CREATE TABLE staff_teachers.math" in ddl
    assert "global_staff_id BIGINT NOT NULL" in ddl


def test_spec_mot_reserve_rejete():
    with pytest.raises(InvalidIdentifier):
        build_schema_spec(STUDENTS, "classes_schema", "grade_10", [FieldDefinition(name="select", type="text")])


def test_spec_colonne_de_base_rejetee():
    with pytest.raises(InvalidIdentifier):
        build_schema_spec(STAFF, "staff_teachers", "math", [FieldDefinition(name="role", type="text")])


# --- Application en base ---

def test_creation_champ_invalide_aucune_ecriture():
    db = MagicMock()
    with pytest.raises(InvalidIdentifier):
        create_entity_namespace_and_tables(
            db, STUDENTS, None, ["grade_10"], [FieldDefinition(name="1club", type="text")],
        )
    db.execute.assert_not_called()
    db.commit.assert_not_called()


def test_creation_table_dupliquee_dans_lot():
    db = MagicMock()
    with pytest.raises(InvalidIdentifier):
        create_entity_namespace_and_tables(db, STUDENTS, None, ["Grade 10", "grade_10"], [])
    db.execute.assert_not_called()


def test_creation_eleves_remplace_espace_existant():
    db = MagicMock()
    with patch("app.services.schema_provisioner.list_tables", return_value=["grade_9"]), \
         patch("app.services.schema_provisioner.field_registry") as registry:
        specs = create_entity_namespace_and_tables(db, STUDENTS, None, ["grade_10", "grade_11"], FIELDS)

    statements = [c[0][0] for c in db.execute.call_args_list]
    assert isinstance(statements[0], DropSchema)
    assert isinstance(statements[1], CreateSchema)
    assert sum(isinstance(s, CreateTable) for s in statements) == 2
    registry.delete_field_types.assert_called_once_with(db, "classes_schema")
    assert registry.record_field_type.call_count == 2 * len(FIELDS)
    db.commit.assert_called_once()
    assert [s.table for s in specs] == ["grade_10", "grade_11"]


def test_creation_registre_garde_type_declare():
    db = MagicMock()
    with patch("app.services.schema_provisioner.list_tables", return_value=[]), \
         patch("app.services.schema_provisioner.field_registry") as registry:
        create_entity_namespace_and_tables(db, STUDENTS, None, ["grade_10"], FIELDS)

    recorded = {c[0][3]: c[0][4].value for c in registry.record_field_type.call_args_list}
    assert recorded == {"club": "select", "newsletter": "checkbox", "phone": "text", "hobbies": "multi-select"}


def test_creation_personnel_table_existante():
    db = MagicMock()
    with patch("app.services.schema_provisioner.list_tables", return_value=["math"]):
        with pytest.raises(AlreadyExists):
            create_entity_namespace_and_tables(db, STAFF, "Teachers", ["Math"], [])
    db.rollback.assert_called_once()
    db.commit.assert_not_called()


def test_creation_personnel_remplacement_explicite():
    db = MagicMock()
    with patch("app.services.schema_provisioner.list_tables", return_value=["math"]), \
         patch("app.services.schema_provisioner.field_registry"):
        create_entity_namespace_and_tables(db, STAFF, "Teachers", ["Math"], [], replace=True)
    assert isinstance(db.execute.call_args_list[0][0][0], DropSchema)
    db.commit.assert_called_once()


def test_creation_personnel_categorie_inconnue():
    db = MagicMock()
    with pytest.raises(InvalidIdentifier):
        create_entity_namespace_and_tables(db, STAFF, "Pilots", ["a"], [])


def test_creation_echec_stockage_rollback():
    db = MagicMock()
    db.execute.side_effect = OperationalError("CREATE SCHEMA", {}, Exception("connexion perdue"))
    with patch("app.services.schema_provisioner.list_tables", return_value=[]):
        with pytest.raises(StorageFailure) as exc:
            create_entity_namespace_and_tables(db, STUDENTS, None, ["grade_10"], FIELDS)
    assert "connexion perdue" in exc.value.details
    db.rollback.assert_called_once()


def test_suppression_table_seule():
    db = MagicMock()
    with patch("app.services.schema_provisioner.field_registry") as registry:
        drop_entity_table(db, STAFF, "Teachers", "Math")

    assert isinstance(db.execute.call_args[0][0], DropTable)
    registry.delete_field_types.assert_called_once_with(db, "staff_teachers", "math")
    db.commit.assert_called_once()
