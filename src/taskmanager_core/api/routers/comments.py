"""Task comment API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ... import models, schemas
from ...comment_service import CommentService
from ...database import get_db
from ...permissions import Actor
from ..dependencies import get_current_actor

router = APIRouter(tags=["comments"])


def get_comment_service(db: Session = Depends(get_db)) -> CommentService:
    return CommentService(db)


def _comment_to_response(comment: models.Comment) -> schemas.CommentResponse:
    """Convert Comment model to CommentResponse schema."""
    return schemas.CommentResponse(
        id=comment.id,
        content=comment.content,
        task_id=comment.task_id,
        task_title=comment.task.title,
        user_id=comment.user_id,
        user_name=comment.author.full_name,
        created_at=comment.created_at,
        updated_at=comment.updated_at,
    )


@router.post("/", response_model=schemas.CommentResponse, status_code=201)
def create_comment(
    data: schemas.CommentCreate,
    actor: Actor = Depends(get_current_actor),
    service: CommentService = Depends(get_comment_service),
):
    """Comment on a task the caller can see. The caller is recorded as author."""
    return _comment_to_response(service.create_comment(actor, data))


@router.get("/task/{task_id}", response_model=list[schemas.CommentResponse])
def list_comments_by_task(
    task_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: CommentService = Depends(get_comment_service),
):
    return [_comment_to_response(c) for c in service.list_comments_by_task(actor, task_id)]


@router.get("/user/{user_id}", response_model=list[schemas.CommentResponse])
def list_comments_by_user(
    user_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: CommentService = Depends(get_comment_service),
):
    """Comments by one author. ADMIN, PGM, PM and TL only."""
    return [_comment_to_response(c) for c in service.list_comments_by_user(actor, user_id)]


@router.get("/{comment_id}", response_model=schemas.CommentResponse)
def get_comment(
    comment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CommentService = Depends(get_comment_service),
):
    return _comment_to_response(service.get_comment(actor, comment_id))


@router.put("/{comment_id}", response_model=schemas.CommentResponse)
def update_comment(
    comment_id: int,
    data: schemas.CommentUpdate,
    actor: Actor = Depends(get_current_actor),
    service: CommentService = Depends(get_comment_service),
):
    """Edit a comment. Allowed for its author and the department's PM or TL."""
    return _comment_to_response(service.update_comment(actor, comment_id, data))


@router.delete("/{comment_id}", status_code=204)
def delete_comment(
    comment_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CommentService = Depends(get_comment_service),
):
    service.delete_comment(actor, comment_id)
    return Response(status_code=204)
