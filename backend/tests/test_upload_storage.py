"""
Tests unitaires du stockage des fichiers envoyés.
"""

import io
from unittest.mock import MagicMock

import pytest

from app.config import settings
from app.services.errors import InvalidField
from app.services.upload_storage import delete_upload, discard, save_upload


def make_upload(filename, content=b"data"):
    upload = MagicMock()
    upload.filename = filename
    upload.file = io.BytesIO(content)
    return upload


def test_fichier_enregistre(upload_dir):
    name = save_upload("image_student", make_upload("Photo.PNG", b"png-bytes"))

    assert name.startswith("image_student-")
    assert name.endswith(".png")
    assert (upload_dir / name).read_bytes() == b"png-bytes"


def test_noms_uniques(upload_dir):
    first = save_upload("image_staff", make_upload("a.jpg"))
    second = save_upload("image_staff", make_upload("a.jpg"))
    assert first != second


def test_extension_refusee(upload_dir):
    with pytest.raises(InvalidField):
        save_upload("image_student", make_upload("virus.exe"))
    assert list(upload_dir.iterdir()) == []


def test_fichier_trop_volumineux(upload_dir, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 0)
    with pytest.raises(InvalidField):
        save_upload("image_student", make_upload("a.png", b"x"))


def test_suppression(upload_dir):
    name = save_upload("cv_document", make_upload("cv.pdf"))
    assert delete_upload(name) is True
    assert not (upload_dir / name).exists()


def test_suppression_fichier_absent(upload_dir):
    assert delete_upload("introuvable.png") is False


def test_discard_ignore_absents(upload_dir):
    name = save_upload("cv_document", make_upload("cv.pdf"))
    discard([name, "introuvable.pdf"])
    assert list(upload_dir.iterdir()) == []
