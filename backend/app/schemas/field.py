"""
Schémas Pydantic pour les définitions de champs personnalisés.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class LogicalType(str, Enum):
    """Type sémantique déclaré par l'administrateur pour un champ."""
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    CHECKBOX = "checkbox"
    SELECT = "select"
    MULTI_SELECT = "multi-select"
    UPLOAD = "upload"


# Types dont la valeur peut être relue comme un numéro de téléphone (colonnes `phone` historiques)
PHONE_BIGINT_TYPES = frozenset({LogicalType.TEXT, LogicalType.NUMBER, LogicalType.SELECT})

# Anciens noms de types encore envoyés par certains formulaires
TYPE_ALIASES = {"multiple-checkbox": LogicalType.MULTI_SELECT.value}


class FieldDefinition(BaseModel):
    """Champ personnalisé soumis lors de la création d'un formulaire."""
    name: str
    label: Optional[str] = None
    type: LogicalType
    required: bool = False
    options: List[str] = []

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom du champ ne peut pas être vide.")
        return v.strip()

    @field_validator("type", mode="before")
    @classmethod
    def legacy_type_alias(cls, v):
        if isinstance(v, str):
            return TYPE_ALIASES.get(v, v)
        return v

    @field_validator("options", mode="before")
    @classmethod
    def options_as_list(cls, v):
        return [] if v is None else v


class FieldDescriptor(BaseModel):
    """Description d'une colonne renvoyée par GET /columns."""
    name: str
    type: str
    required: bool
    options: List[str] = []

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
