"""
Tests unitaires des lectures sur les tables dynamiques.
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import MetaData

from app.schemas.field import FieldDefinition, LogicalType
from app.services import roster_queries
from app.services.errors import InvalidIdentifier, NotFound
from app.services.field_registry import FieldTypeInfo
from app.services.roster_domains import STAFF, STUDENTS
from app.services.schema_provisioner import build_schema_spec, build_table


def staff_table(name="math", fields=()):
    spec = build_schema_spec(STAFF, "staff_teachers", name, list(fields))
    return build_table(STAFF, spec, MetaData())


def test_tables_categorie_inconnue():
    with pytest.raises(InvalidIdentifier):
        roster_queries.list_category_tables(MagicMock(), STAFF, "Pilots")


def test_tables_eleves():
    with patch("app.services.roster_queries.schema_provisioner.list_tables", return_value=["grade_10"]) as mock:
        assert roster_queries.list_category_tables(MagicMock(), STUDENTS, None) == ["grade_10"]
    assert mock.call_args[0][1] == "classes_schema"


def test_find_par_identifiant_global():
    db = MagicMock()
    db.execute.return_value.mappings.return_value.first.side_effect = [
        None,
        {"global_staff_id": 12, "staff_id": 2, "name": "Sara"},
    ]
    with patch("app.services.roster_queries.schema_provisioner.list_namespaces",
               return_value=["staff_teachers"]), \
         patch("app.services.roster_queries.schema_provisioner.list_tables", return_value=["history", "math"]), \
         patch("app.services.roster_queries.schema_provisioner.load_table", side_effect=[staff_table("history"), staff_table("math")]), \
         patch("app.services.row_engine.field_registry.lookup_field_types", return_value={}):
        found = roster_queries.find_by_global_id(db, STAFF, 12)

    assert found["category"] == "Teachers"
    assert found["table"] == "math"
    assert found["row"]["name"] == "Sara"


def test_find_absent():
    with patch("app.services.roster_queries.schema_provisioner.list_namespaces", return_value=["staff_teachers"]), \
         patch("app.services.roster_queries.schema_provisioner.list_tables", return_value=[]):
        with pytest.raises(NotFound):
            roster_queries.find_by_global_id(MagicMock(), STAFF, 12)


def test_statistiques():
    db = MagicMock()
    db.execute.return_value.one.return_value = (4, 5)
    with patch("app.services.roster_queries.schema_provisioner.list_tables", return_value=["math"]), \
         patch("app.services.roster_queries.schema_provisioner.load_table", return_value=staff_table()), \
         patch("app.services.roster_queries.id_allocator.current_global_id", return_value=12):
        stats = roster_queries.id_statistics(db, STAFF, "Teachers")

    assert stats.global_counter == 12
    assert stats.tables[0].row_count == 4
    assert stats.tables[0].max_local_id == 5


def test_liste_lignes_multi_selection_decodee():
    db = MagicMock()
    db.execute.return_value.mappings.return_value.all.return_value = [
        {"staff_id": 1, "languages": '["Amharic", "English"]'},
    ]
    registry = {"languages": FieldTypeInfo(LogicalType.MULTI_SELECT)}
    table = staff_table(fields=[FieldDefinition(name="languages", type="multi-select")])
    with patch("app.services.row_engine.schema_provisioner.load_table", return_value=table), \
         patch("app.services.row_engine.field_registry.lookup_field_types", return_value=registry):
        rows = roster_queries.list_rows(db, STAFF, "Teachers", "math")

    assert rows == [{"staff_id": 1, "languages": ["Amharic", "English"]}]
