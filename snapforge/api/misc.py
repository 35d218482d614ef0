"""Health endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import get_db
from snapforge import __version__

router = APIRouter()


def _database_ok(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


@router.get("/health")
def health(db: Session = Depends(get_db)):
    ok = _database_ok(db)
    return JSONResponse(
        {"status": "ok" if ok else "degraded", "database": ok, "version": __version__},
        status_code=200 if ok else 503,
    )


@router.get("/health.txt", response_class=PlainTextResponse)
def health_txt(db: Session = Depends(get_db)):
    if not _database_ok(db):
        return PlainTextResponse("degraded", status_code=503)
    return "ok"
