from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from comicsync.core.auth import get_comic_or_404, get_current_user
from comicsync.database import get_db
from comicsync.models import Comic, User
from comicsync.schemas.statistics import ComicReadingStatistics, UserReadingStatistics
from comicsync.services.statistics import get_reading_statistics, get_user_reading_statistics

router = APIRouter(prefix="/statistics", tags=["statistics"])


@router.get("/comics/{comic_id}", response_model=ComicReadingStatistics)
def comic_statistics(
    comic: Comic = Depends(get_comic_or_404),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_reading_statistics(db, current_user.id, comic.id)


@router.get("/user", response_model=UserReadingStatistics)
def user_statistics(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_user_reading_statistics(db, current_user.id)
