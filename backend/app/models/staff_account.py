"""
Modèle SQLAlchemy des comptes de connexion du personnel.
Le mot de passe n'est stocké que sous forme de hash.
"""

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, func

from app.config import settings
from app.database import Base


class StaffAccount(Base):
    __tablename__ = "staff_accounts"
    __table_args__ = {"schema": settings.CORE_SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    global_staff_id = Column(BigInteger, unique=True, nullable=False)
    username = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    staff_type = Column(String(50), nullable=False)
    class_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
