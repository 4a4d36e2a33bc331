"""
Assainissement des noms fournis par les administrateurs (catégories, classes,
champs personnalisés) avant leur utilisation comme identifiants SQL.

PostgreSQL ne permet pas de paramétrer les identifiants : seules les valeurs
de type `Identifier` produites ici peuvent atteindre la construction des
tables et des requêtes dynamiques.
"""

import re
from typing import Iterable

from app.services.errors import InvalidIdentifier

MAX_IDENTIFIER_LENGTH = 63  # NAMEDATALEN - 1

COLUMN_NAME_REGEX = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_WHITESPACE = re.compile(r"\s+")
_ILLEGAL = re.compile(r"[^a-z0-9_]")

# Mots réservés PostgreSQL interdits comme noms de colonnes
RESERVED_KEYWORDS = frozenset({
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc", "asymmetric",
    "authorization", "binary", "both", "case", "cast", "check", "collate", "column",
    "concurrently", "constraint", "create", "cross", "current_catalog", "current_date",
    "current_role", "current_schema", "current_time", "current_timestamp", "current_user",
    "default", "deferrable", "desc", "distinct", "do", "else", "end", "except", "false",
    "fetch", "for", "foreign", "from", "grant", "group", "having", "in", "initially",
    "intersect", "into", "join", "lateral", "leading", "left", "like", "limit", "localtime",
    "localtimestamp", "natural", "not", "null", "offset", "on", "only", "or", "order",
    "placing", "primary", "references", "returning", "right", "select", "session_user",
    "similar", "some", "symmetric", "table", "then", "to", "trailing", "true", "union",
    "unique", "user", "using", "variadic", "verbose", "when", "where", "window", "with",
})


class Identifier(str):
    """Nom SQL déjà validé."""
    __slots__ = ()


def _slugify(raw: str) -> str:
    value = _WHITESPACE.sub("_", raw.strip().lower())
    return _ILLEGAL.sub("", value)


def sanitize_namespace(category: str) -> Identifier:
    """'Administrative Staff' -> 'administrative_staff'."""
    value = _slugify(category or "")
    if not value:
        raise InvalidIdentifier(category or "", "Le nom ne contient aucun caractère utilisable.")
    if len(value) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifier(category, f"Le nom dépasse {MAX_IDENTIFIER_LENGTH} caractères.")
    return Identifier(value)


def sanitize_table_name(raw: str) -> Identifier:
    """Même normalisation que pour les espaces de noms : 'Grade 10 A' -> 'grade_10_a'."""
    return sanitize_namespace(raw)


def sanitize_column_name(raw: str, base_columns: Iterable[str] = ()) -> Identifier:
    """
    Valide un nom de champ personnalisé sans le transformer.
    Lève InvalidIdentifier si le nom est mal formé, réservé, ou déjà pris
    par une colonne de base.
    """
    if raw is None or not COLUMN_NAME_REGEX.match(raw):
        raise InvalidIdentifier(
            raw or "",
            "Un nom de champ doit commencer par une lettre ou un tiret bas "
            "et ne contenir que des lettres, chiffres et tirets bas.",
        )
    if len(raw) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifier(raw, f"Le nom dépasse {MAX_IDENTIFIER_LENGTH} caractères.")
    lowered = raw.lower()
    if lowered in RESERVED_KEYWORDS:
        raise InvalidIdentifier(raw, "Mot réservé PostgreSQL.")
    if lowered in {c.lower() for c in base_columns}:
        raise InvalidIdentifier(raw, "Ce nom est réservé à une colonne de base.")
    return Identifier(raw)


def sanitize_column_batch(names: Iterable[str], base_columns: Iterable[str] = ()) -> list[Identifier]:
    """Valide tout un lot ; la première erreur fait échouer le lot entier."""
    base = list(base_columns)
    seen: set[str] = set()
    result: list[Identifier] = []
    for name in names:
        identifier = sanitize_column_name(name, base)
        if identifier.lower() in seen:
            raise InvalidIdentifier(name, "Champ déclaré plusieurs fois.")
        seen.add(identifier.lower())
        result.append(identifier)
    return result
