from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from comicsync.core.auth import get_current_user
from comicsync.core.clock import Clock, get_clock
from comicsync.database import get_db
from comicsync.models import User
from comicsync.schemas.sync import NeedsSyncResponse, SyncChanges, SyncRequest, SyncResponse
from comicsync.services.sync import SyncReconciler

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post(
    "",
    response_model=SyncResponse,
    summary="Upload one device batch",
    description="Deltas that lose their timestamp comparison are dropped silently and not counted.",
)
def sync_library(
    payload: SyncRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    result = SyncReconciler(db, clock).reconcile(current_user.id, payload)
    return SyncResponse.model_validate(result)


@router.get("/changes", response_model=SyncChanges, summary="Server rows changed after a cursor")
def get_changes(
    since: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    return SyncChanges.model_validate(SyncReconciler(db, clock).changes_since(current_user.id, since))


@router.get("/needs-sync", response_model=NeedsSyncResponse)
def needs_sync(
    since: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: User = Depends(get_current_user),
):
    return NeedsSyncResponse(needs_sync=SyncReconciler(db, clock).needs_sync(current_user.id, since))
