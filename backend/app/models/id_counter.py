"""
Modèle SQLAlchemy des compteurs d'identifiants globaux.
Une ligne par domaine (élèves, personnel) ; la valeur n'est jamais décrémentée.
"""

from sqlalchemy import BigInteger, Column, DateTime, String, func

from app.config import settings
from app.database import Base


class GlobalIdCounter(Base):
    __tablename__ = "global_id_tracker"
    __table_args__ = {"schema": settings.CORE_SCHEMA}

    domain = Column(String(50), primary_key=True)
    last_value = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
