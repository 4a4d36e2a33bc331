"""
Lecture des fichiers CSV d'import (élèves ou personnel).
Le fichier est seulement converti en lignes ; la validation et l'insertion
sont faites par `row_engine.bulk_insert`.
"""

import csv
import io
from typing import Dict, List

from app.services.errors import InvalidField


def _normalize_header(raw: str) -> str:
    """Normalise un nom de colonne : minuscules, sans espaces."""
    return raw.strip().lower()


def _detect_separator(sample: str) -> str:
    """Détecte le séparateur CSV (virgule ou point-virgule)."""
    if sample.count(";") >= sample.count(","):
        return ";"
    return ","


def parse_csv_rows(content: bytes) -> List[Dict[str, str]]:
    """
    Convertit un CSV en liste de dictionnaires colonne -> valeur.

    - Encodage UTF-8 avec ou sans BOM (export Excel)
    - Séparateur `;` ou `,`
    - Lignes entièrement vides ignorées
    - Cellules vides retirées de la ligne
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise InvalidField("Le fichier CSV doit être encodé en UTF-8.")

    lines = text.splitlines()
    if not lines or not lines[0].strip():
        raise InvalidField("Fichier CSV vide ou illisible.")

    reader = csv.DictReader(io.StringIO(text), delimiter=_detect_separator(lines[0]))
    field_map = {f: _normalize_header(f) for f in reader.fieldnames if f and f.strip()}

    rows: List[Dict[str, str]] = []
    for raw in reader:
        row = {
            field_map[key]: value.strip()
            for key, value in raw.items()
            if key in field_map and isinstance(value, str) and value.strip()
        }
        if row:
            rows.append(row)

    if not rows:
        raise InvalidField("Le fichier CSV ne contient aucune ligne.")
    return rows
