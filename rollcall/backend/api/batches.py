from fastapi import APIRouter, Depends, Request, status
from typing import List
from uuid import UUID

from ..models.db_models import ClassBatch, SessionTemplate
from ..services.access import AuthContext
from ..services.batch_service import BatchService, ClassBatchInput, ClassBatchUpdate
from .schemas.batch import BatchDeleted
from .auth import get_current_user
from .dependencies import get_batch_service
from .utilities.limiter import limiter

router = APIRouter(prefix="/batches", tags=["Batches"])


@router.get("", response_model=List[ClassBatch], summary="List batches")
@limiter.limit("30/minute")
async def list_batches(request: Request, user: AuthContext = Depends(get_current_user), service: BatchService = Depends(get_batch_service)):
    return await service.list_batches(user)

@router.post("", response_model=ClassBatch, status_code=status.HTTP_201_CREATED, summary="Create a batch")
@limiter.limit("10/minute")
async def create_batch(request: Request, draft: ClassBatchInput, user: AuthContext = Depends(get_current_user), service: BatchService = Depends(get_batch_service)):
    return await service.create_batch(user, draft)

@router.get("/{batch_id}", response_model=ClassBatch, summary="Get a batch")
@limiter.limit("60/minute")
async def get_batch(request: Request, batch_id: UUID, user: AuthContext = Depends(get_current_user), service: BatchService = Depends(get_batch_service)):
    return await service.get_batch(user, batch_id)

@router.get("/{batch_id}/sessions", response_model=List[SessionTemplate], summary="Sessions belonging to a batch")
@limiter.limit("60/minute")
async def list_batch_sessions(request: Request, batch_id: UUID, user: AuthContext = Depends(get_current_user), service: BatchService = Depends(get_batch_service)):
    return await service.list_batch_sessions(user, batch_id)

@router.patch("/{batch_id}", response_model=ClassBatch, summary="Update a batch")
@limiter.limit("10/minute")
async def update_batch(request: Request, batch_id: UUID, changes: ClassBatchUpdate, user: AuthContext = Depends(get_current_user), service: BatchService = Depends(get_batch_service)):
    return await service.update_batch(user, batch_id, changes)

@router.delete("/{batch_id}", response_model=BatchDeleted, summary="Delete a batch, optionally detaching its sessions")
@limiter.limit("10/minute")
async def delete_batch(request: Request, batch_id: UUID, detach_sessions: bool = False, user: AuthContext = Depends(get_current_user), service: BatchService = Depends(get_batch_service)):
    detached = await service.delete_batch(user, batch_id, detach_sessions)
    return BatchDeleted(batch_id=batch_id, sessions_detached=detached)
