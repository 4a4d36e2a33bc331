"""
Routes propres aux élèves : les routes de classes communes viennent de
`rosters.build_router(STUDENTS)`.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.roster import GuardianLookup
from app.services import roster_queries
from app.services.roster_domains import STUDENTS

router = APIRouter(prefix="/api/v1/students", tags=["Students"])


@router.get("/search-guardian/{phone}", response_model=GuardianLookup, summary="Rechercher un tuteur")
def search_guardian(phone: str, db: Session = Depends(get_db)):
    """Tuteur déjà enregistré avec ce numéro dans n'importe quelle classe (fratrie)."""
    return roster_queries.search_guardian(db, STUDENTS, phone)
