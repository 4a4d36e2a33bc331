"""
Description des deux familles de tables dynamiques : les classes d'élèves
et les formulaires du personnel.

Un `RosterDomain` fixe l'espace de noms, les colonnes de base, les colonnes
d'identifiants et la manière dont les identifiants de connexion sont émis.
Le reste du moteur est commun aux deux domaines.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import BigInteger, Column, Integer, String

from app.config import settings
from app.services.errors import InvalidIdentifier
from app.services.identifiers import Identifier, sanitize_namespace

INLINE = "inline"
ACCOUNT = "account"

GENDER_OPTIONS = ["Male", "Female", "Other"]

STAFF_ROLES = [
    "Teacher", "Director", "Coordinator", "Supervisor", "Deputy director",
    "Purchaser", "Cashier", "Accountant", "Guard", "Cleaner", "Department Head",
    "Counselor", "Instructor", "Librarian", "Nurse", "Technician", "Assistant",
    "Manager", "Trainer", "Advisor", "Inspector",
]

WORK_TIMES = {"full time": "Full Time", "part time": "Part Time"}


@dataclass(frozen=True)
class RosterDomain:
    name: str
    entity: str
    global_id_column: str
    local_id_column: str
    display_name_column: str
    base_columns: Callable[[], List[Column]]
    credential_mode: str
    credential_columns: Tuple[str, ...] = ()
    upload_columns: Tuple[str, ...] = ()
    well_known_options: Dict[str, List[str]] = field(default_factory=dict)
    fixed_namespace: Optional[str] = None
    namespace_prefix: str = ""
    categories: Tuple[str, ...] = ()
    replace_on_create: bool = False
    table_name_column: Optional[str] = None
    default_values: Dict[str, str] = field(default_factory=dict)

    @property
    def base_column_names(self) -> List[str]:
        return [c.name for c in self.base_columns()]

    @property
    def managed_columns(self) -> frozenset:
        """Colonnes remplies par le moteur, jamais par la requête."""
        return frozenset({"id", self.global_id_column, self.local_id_column, *self.credential_columns})

    @property
    def key_columns(self) -> Tuple[str, str]:
        return (self.global_id_column, self.local_id_column)

    @property
    def hidden_columns(self) -> frozenset:
        return frozenset(c for c in self.credential_columns if c.endswith("password_hash"))

    def namespace_for(self, category: Optional[str]) -> Identifier:
        if self.fixed_namespace:
            return sanitize_namespace(self.fixed_namespace)
        if not category:
            raise InvalidIdentifier("", "La catégorie est obligatoire.")
        if self.categories and category not in self.categories:
            raise InvalidIdentifier(category, f"Catégorie inconnue. Valeurs acceptées : {', '.join(self.categories)}")
        return Identifier(self.namespace_prefix + sanitize_namespace(category))

    def category_for(self, namespace: str) -> str:
        """Retrouve la catégorie d'origine d'un espace de noms existant."""
        for category in self.categories:
            if self.namespace_for(category) == namespace:
                return category
        return namespace

    def row_defaults(self, table_name: str) -> Dict[str, str]:
        defaults = dict(self.default_values)
        if self.table_name_column:
            defaults[self.table_name_column] = table_name
        return defaults

    def normalize_row(self, data: dict) -> dict:
        work_time = data.get("staff_work_time")
        if isinstance(work_time, str):
            data["staff_work_time"] = WORK_TIMES.get(work_time.strip().lower(), work_time)
        return data


def _student_columns() -> List[Column]:
    return [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("school_id", BigInteger),
        Column("class_id", Integer),
        Column("image_student", String(255)),
        Column("student_name", String(255), nullable=False),
        Column("age", Integer, nullable=False),
        Column("gender", String(50), nullable=False),
        Column("class", String(50), nullable=False),
        Column("username", String(255)),
        Column("password_hash", String(255)),
        Column("guardian_name", String(255), nullable=False),
        Column("guardian_phone", String(20), nullable=False),
        Column("guardian_relation", String(50), nullable=False),
        Column("guardian_username", String(255)),
        Column("guardian_password_hash", String(255)),
    ]


def _staff_columns() -> List[Column]:
    return [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("global_staff_id", BigInteger, nullable=False),
        Column("staff_id", Integer, nullable=False),
        Column("image_staff", String(255)),
        Column("name", String(100), nullable=False),
        Column("gender", String(50), nullable=False),
        Column("role", String(100), nullable=False),
        Column("staff_enrollment_type", String(50), nullable=False),
        Column("staff_work_time", String(50), nullable=False),
    ]


STUDENTS = RosterDomain(
    name="students",
    entity="student",
    global_id_column="school_id",
    local_id_column="class_id",
    display_name_column="student_name",
    base_columns=_student_columns,
    credential_mode=INLINE,
    credential_columns=("username", "password_hash", "guardian_username", "guardian_password_hash"),
    upload_columns=("image_student",),
    well_known_options={"gender": GENDER_OPTIONS},
    fixed_namespace=settings.STUDENT_NAMESPACE,
    replace_on_create=True,
    table_name_column="class",
)

STAFF = RosterDomain(
    name="staff",
    entity="staff",
    global_id_column="global_staff_id",
    local_id_column="staff_id",
    display_name_column="name",
    base_columns=_staff_columns,
    credential_mode=ACCOUNT,
    upload_columns=("image_staff",),
    well_known_options={
        "gender": GENDER_OPTIONS,
        "role": STAFF_ROLES,
        "staff_enrollment_type": ["Permanent", "Contract"],
        "staff_work_time": ["Full Time", "Part Time"],
    },
    namespace_prefix=settings.STAFF_NAMESPACE_PREFIX,
    categories=tuple(settings.STAFF_CATEGORIES),
    default_values={"staff_work_time": "Full Time"},
)

DOMAINS = {d.name: d for d in (STUDENTS, STAFF)}
