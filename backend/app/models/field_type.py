"""
Modèle SQLAlchemy du registre des types de champs.
Conserve le type logique déclaré (select, checkbox, ...) que le type de
colonne PostgreSQL seul ne permet pas de retrouver.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from app.config import settings
from app.database import Base


class FieldType(Base):
    __tablename__ = "field_types"
    __table_args__ = (
        UniqueConstraint("schema_name", "table_name", "column_name", name="uq_field_types_column"),
        {"schema": settings.CATALOG_SCHEMA},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    schema_name = Column(String(100), nullable=False)
    table_name = Column(String(100), nullable=False)
    column_name = Column(String(100), nullable=False)
    field_type = Column(String(50), nullable=False)
    required = Column(Boolean, nullable=False, default=False)
    options = Column(JSONB, nullable=False, default=list)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
