"""
Schémas Pydantic pour les formulaires dynamiques et les lignes de rôles
(élèves et personnel).
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from app.schemas.field import FieldDefinition

CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FormCreate(BaseModel):
    """
    Corps de POST /create-form.
    `tableName` crée une seule table ; `classes` en crée plusieurs d'un coup.
    """
    category: Optional[str] = None
    table_name: Optional[str] = None
    classes: List[str] = []
    custom_fields: List[FieldDefinition] = []
    replace: Optional[bool] = None

    model_config = CAMEL

    def table_names(self) -> List[str]:
        names = list(self.classes)
        if self.table_name:
            names.append(self.table_name)
        return names


class FormDelete(BaseModel):
    """Corps de DELETE /delete-form. Sans `tableName`, tout l'espace est supprimé."""
    category: Optional[str] = None
    table_name: Optional[str] = None

    model_config = CAMEL


class FormCreated(BaseModel):
    namespace: str
    tables: List[str]
    custom_fields: List[FieldDefinition]

    model_config = CAMEL


class GeneratedCredential(BaseModel):
    """Identifiants générés ; le mot de passe en clair n'est renvoyé qu'une fois."""
    role: str
    username: str
    password: Optional[str] = None
    reused: bool = False

    model_config = CAMEL


class RowCreated(BaseModel):
    global_id: int
    local_id: int
    generated_credentials: List[GeneratedCredential] = []
    errors: List[str] = []
    row: Dict[str, Any] = {}

    model_config = CAMEL


class RowKeyRequest(BaseModel):
    """Corps de DELETE /delete-{entity}."""
    category: Optional[str] = None
    table_name: str
    key: Dict[str, Any]

    model_config = CAMEL

    @field_validator("key")
    @classmethod
    def key_not_empty(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if not v:
            raise ValueError("La clé de la ligne ne peut pas être vide.")
        return v


class CredentialReset(RowKeyRequest):
    target: Literal["subject", "guardian"] = "subject"


class BulkUpload(BaseModel):
    category: Optional[str] = None
    table_name: str
    rows: List[Dict[str, Any]]

    model_config = CAMEL

    @field_validator("rows")
    @classmethod
    def rows_not_empty(cls, v: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not v:
            raise ValueError("La liste de lignes ne peut pas être vide.")
        return v


class BulkRowError(BaseModel):
    """Détail d'une ligne rejetée ou partiellement traitée lors d'un import."""
    row: int
    reason: str
    inserted: bool = False

    model_config = CAMEL


class BulkUploadReport(BaseModel):
    inserted_count: int
    errors: List[BulkRowError] = []
    generated_credentials: List[GeneratedCredential] = []

    model_config = CAMEL


class TableStatistics(BaseModel):
    table: str
    row_count: int
    max_local_id: int

    model_config = CAMEL


class IdStatistics(BaseModel):
    global_counter: int
    tables: List[TableStatistics]

    model_config = CAMEL


class GuardianLookup(BaseModel):
    guardian_name: Optional[str]
    guardian_username: Optional[str]
    table: str

    model_config = CAMEL
