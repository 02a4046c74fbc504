from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.db.session import get_db


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness check - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(request: Request, response: Response, db: Session = Depends(get_db)) -> dict:
    """Readiness check - returns 503 if the database or Redis is unavailable."""
    try:
        db.execute(text("SELECT 1"))

        redis_client = getattr(request.app.state, "redis", None)
        if redis_client is not None:
            redis_client.ping()

        return {"status": "ready"}
    except Exception as e:
        response.status_code = 503
        return {"status": "not_ready", "error": str(e)}
