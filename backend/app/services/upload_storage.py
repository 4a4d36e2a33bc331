"""
Stockage des fichiers envoyés avec les formulaires (photos, documents).
Les lignes ne conservent que le nom du fichier généré.
"""

import logging
import uuid
from pathlib import Path
from typing import Iterable

from app.config import settings
from app.services.errors import InvalidField

logger = logging.getLogger(__name__)


def _upload_dir() -> Path:
    return Path(settings.UPLOAD_DIR)


def save_upload(column_name: str, upload) -> str:
    """
    Valide et écrit un fichier reçu (UploadFile) ; retourne le nom stocké.
    Lève InvalidField si l'extension ou la taille est refusée.
    """
    original = upload.filename or ""
    extension = Path(original).suffix.lower().lstrip(".")
    if extension not in settings.ALLOWED_UPLOAD_EXTENSIONS:
        raise InvalidField(
            f"Type de fichier refusé pour '{column_name}'.",
            details=f"Extensions acceptées : {', '.join(settings.ALLOWED_UPLOAD_EXTENSIONS)}",
        )

    content = upload.file.read()
    if len(content) > settings.MAX_UPLOAD_MB * 1024 * 1024:
        raise InvalidField(
            f"Fichier trop volumineux pour '{column_name}'. Taille maximale : {settings.MAX_UPLOAD_MB} Mo."
        )

    directory = _upload_dir()
    directory.mkdir(parents=True, exist_ok=True)
    stored_name = f"{column_name}-{uuid.uuid4().hex}.{extension}"
    (directory / stored_name).write_bytes(content)
    return stored_name


def delete_upload(stored_name: str) -> bool:
    """Supprime un fichier stocké. Un fichier absent est signalé, pas une erreur."""
    if not stored_name:
        return False
    path = _upload_dir() / Path(stored_name).name
    try:
        path.unlink()
    except FileNotFoundError:
        logger.warning("Fichier déjà absent : %s", path)
        return False
    except OSError as e:
        logger.warning("Suppression impossible de %s : %s", path, e)
        return False
    return True


def discard(stored_names: Iterable[str]) -> None:
    for name in stored_names:
        delete_upload(name)
