"""
Routes communes aux deux familles de tables dynamiques.
`build_router(STUDENTS)` -> /api/v1/students/..., `build_router(STAFF)` -> /api/v1/staff/...

Les erreurs du moteur (RosterError) sont converties en réponses HTTP par le
handler enregistré dans app.main.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile as StarletteUploadFile

from app.database import get_db
from app.schemas.field import FieldDescriptor
from app.schemas.roster import (
    BulkUpload,
    BulkUploadReport,
    CredentialReset,
    FormCreate,
    FormCreated,
    FormDelete,
    GeneratedCredential,
    IdStatistics,
    RowCreated,
    RowKeyRequest,
)
from app.services import roster_queries, row_engine, schema_provisioner
from app.services.errors import InvalidField
from app.services.roster_domains import RosterDomain
from app.services.roster_import import parse_csv_rows

ALLOWED_CSV_CONTENT_TYPES = {"text/csv", "text/plain", "application/vnd.ms-excel"}
MAX_CSV_SIZE_MB = 5


def _decode_object(value: Any) -> Any:
    """Parties `key` et `updates` d'un corps multipart : objets JSON."""
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


async def read_payload(request: Request) -> Tuple[Dict[str, Any], Dict[str, StarletteUploadFile]]:
    """
    Lit un corps multipart (ou JSON) : valeurs d'un côté, fichiers de l'autre.
    Une clé répétée donne une liste (cases d'une multi-sélection) ; les autres
    valeurs restent des chaînes, converties ensuite selon le type de la colonne.
    """
    if request.headers.get("content-type", "").startswith("application/json"):
        body = await request.json()
        if not isinstance(body, dict):
            raise InvalidField("Le corps de la requête doit être un objet.")
        return body, {}

    form = await request.form()
    values: Dict[str, Any] = {}
    files: Dict[str, StarletteUploadFile] = {}
    for key in form.keys():
        items = form.getlist(key)
        uploads = [i for i in items if isinstance(i, StarletteUploadFile)]
        if uploads:
            if uploads[0].filename:
                files[key] = uploads[0]
            continue
        values[key] = items[0] if len(items) == 1 else list(items)
    return values, files


def _pop_target(values: Dict[str, Any]) -> Tuple[Optional[str], str]:
    category = values.pop("category", None)
    camel, snake = values.pop("tableName", None), values.pop("table_name", None)
    table_name = camel or snake
    if not table_name:
        raise InvalidField("Le champ 'tableName' est obligatoire.")
    return category, table_name


def build_router(domain: RosterDomain) -> APIRouter:
    router = APIRouter(prefix=f"/api/v1/{domain.name}", tags=[domain.name.capitalize()])

    @router.get("/classes", response_model=List[str], summary="Lister les tables d'un espace")
    def list_tables(category: Optional[str] = Query(None), db: Session = Depends(get_db)):
        return roster_queries.list_category_tables(db, domain, category)

    @router.get(
        "/columns/{category}/{table_name}",
        response_model=List[FieldDescriptor],
        summary="Colonnes d'une table avec leur type logique",
    )
    def list_columns(category: str, table_name: str, db: Session = Depends(get_db)):
        return row_engine.list_columns(db, domain, category, table_name)

    @router.post("/create-form", response_model=FormCreated, status_code=201, summary="Créer un formulaire")
    def create_form(data: FormCreate, db: Session = Depends(get_db)):
        """
        Crée l'espace de noms et une table par nom fourni (`tableName` et/ou `classes`),
        avec les colonnes de base du domaine et les champs personnalisés.
        """
        specs = schema_provisioner.create_entity_namespace_and_tables(
            db, domain, data.category, data.table_names(), data.custom_fields, replace=data.replace,
        )
        return FormCreated(
            namespace=specs[0].namespace,
            tables=[s.table for s in specs],
            custom_fields=data.custom_fields,
        )

    @router.delete("/delete-form", summary="Supprimer un formulaire")
    def delete_form(data: FormDelete, db: Session = Depends(get_db)):
        """Sans `tableName`, l'espace de noms entier est supprimé avec ses données."""
        if data.table_name:
            schema_provisioner.drop_entity_table(db, domain, data.category, data.table_name)
        else:
            schema_provisioner.drop_entity_namespace(db, domain, data.category)
        return {"message": "Formulaire supprimé."}

    @router.post(
        f"/add-{domain.entity}",
        response_model=RowCreated,
        status_code=201,
        summary="Ajouter une ligne",
    )
    async def add_row(request: Request, db: Session = Depends(get_db)):
        """
        Corps multipart : `category`, `tableName`, une valeur par colonne et
        un fichier par colonne de type upload. Les clés inconnues sont ignorées.
        """
        values, files = await read_payload(request)
        category, table_name = _pop_target(values)
        return row_engine.insert_row(db, domain, category, table_name, values, files)

    @router.put(f"/update-{domain.entity}", response_model=Dict[str, Any], summary="Modifier une ligne")
    async def update_row(request: Request, db: Session = Depends(get_db)):
        """Corps multipart : `category`, `tableName`, `key` (JSON), `updates` (JSON) et fichiers."""
        values, files = await read_payload(request)
        category, table_name = _pop_target(values)
        key = _decode_object(values.get("key"))
        updates = _decode_object(values.get("updates")) or {}
        if not isinstance(key, dict) or not isinstance(updates, dict):
            raise HTTPException(status_code=400, detail="'key' et 'updates' doivent être des objets JSON.")
        return row_engine.update_row(db, domain, category, table_name, key, updates, files)

    @router.delete(f"/delete-{domain.entity}", summary="Supprimer une ligne")
    def delete_row(data: RowKeyRequest, db: Session = Depends(get_db)):
        row_engine.delete_row(db, domain, data.category, data.table_name, data.key)
        return {"message": "Ligne supprimée."}

    @router.post("/bulk-upload", response_model=BulkUploadReport, summary="Importer un lot de lignes")
    def bulk_upload(data: BulkUpload, db: Session = Depends(get_db)):
        return row_engine.bulk_insert(db, domain, data.category, data.table_name, data.rows)

    @router.post("/bulk-upload-csv", response_model=BulkUploadReport, summary="Importer un fichier CSV")
    async def bulk_upload_csv(
        file: UploadFile = File(...),
        table_name: str = Form(..., alias="tableName"),
        category: Optional[str] = Form(None),
        db: Session = Depends(get_db),
    ):
        """
        Format attendu du CSV :
        - une colonne par champ de la table (en-têtes insensibles à la casse)
        - Séparateur : virgule (`,`) ou point-virgule (`;`)
        - Encodage : UTF-8 (avec ou sans BOM)
        """
        if file.content_type not in ALLOWED_CSV_CONTENT_TYPES and not (file.filename or "").endswith(".csv"):
            raise HTTPException(
                status_code=400,
                detail="Format invalide. Seuls les fichiers CSV sont acceptés."
            )

        content = await file.read()
        if len(content) > MAX_CSV_SIZE_MB * 1024 * 1024:
            raise HTTPException(
                status_code=400,
                detail=f"Fichier trop volumineux. Taille maximale : {MAX_CSV_SIZE_MB} Mo."
            )
        if not content:
            raise HTTPException(status_code=400, detail="Le fichier CSV est vide.")

        rows = parse_csv_rows(content)
        return row_engine.bulk_insert(db, domain, category, table_name, rows)

    @router.get("/data/{category}/{table_name}", response_model=List[Dict[str, Any]], summary="Lignes d'une table")
    def list_rows(category: str, table_name: str, db: Session = Depends(get_db)):
        return roster_queries.list_rows(db, domain, category, table_name)

    @router.get("/records/{global_id}", summary="Retrouver une ligne par identifiant global")
    def find_record(global_id: int, db: Session = Depends(get_db)):
        return roster_queries.find_by_global_id(db, domain, global_id)

    @router.get("/id-statistics", response_model=IdStatistics, summary="Statistiques des identifiants")
    def id_statistics(category: Optional[str] = Query(None), db: Session = Depends(get_db)):
        return roster_queries.id_statistics(db, domain, category)

    @router.post("/reset-credentials", response_model=GeneratedCredential, summary="Réinitialiser un mot de passe")
    def reset_credentials(data: CredentialReset, db: Session = Depends(get_db)):
        return row_engine.reset_credentials(db, domain, data.category, data.table_name, data.key, data.target)

    return router
