import logging
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlmodel import Session, select
from typing import List

from school_portal.core.cache import Mutation, QueryKey, Resource, query_cache
from school_portal.core.config import settings
from school_portal.core.database import get_session
from school_portal.utils.auth import get_current_user, get_course_or_404, can_manage_course, get_assignment_for_member
from school_portal.utils.time_utils import ensure_utc
from school_portal.models.user import User
from school_portal.models.assignment_file import AssignmentFile
from school_portal.schemas.assignment_file import AssignmentFileResponse
from school_portal.services.storage import StorageService, get_storage_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Assignment Files"])


def _file_response(assignment_file: AssignmentFile) -> AssignmentFileResponse:
    return AssignmentFileResponse(
        id=assignment_file.id,
        assignment_id=assignment_file.assignment_id,
        file_name=assignment_file.file_name,
        file_url=assignment_file.file_url,
        file_size=assignment_file.file_size,
        uploaded_by=assignment_file.uploaded_by,
        uploaded_at=ensure_utc(assignment_file.uploaded_at),
    )


@router.post("/assignments/{assignment_id}/files", response_model=AssignmentFileResponse,
             status_code=status.HTTP_201_CREATED)
async def upload_assignment_file(
    assignment_id: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    storage: StorageService = Depends(get_storage_service)
):
    """Upload a file for an assignment"""
    assignment = get_assignment_for_member(session, assignment_id, current_user)

    content = await file.read()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is empty")
    if len(content) > settings.max_upload_size_mb * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File size must be less than {settings.max_upload_size_mb}MB"
        )

    path = StorageService.build_path(assignment.id, current_user.id, file.filename or "", file.content_type or "")
    public_url = storage.upload(path, content, file.content_type)

    assignment_file = AssignmentFile(
        assignment_id=assignment.id,
        file_name=file.filename or path.rsplit("/", 1)[-1],
        file_url=public_url,
        storage_path=path,
        file_size=len(content),
        uploaded_by=current_user.id,
    )
    session.add(assignment_file)
    session.commit()
    session.refresh(assignment_file)

    logger.info("File %s uploaded for assignment %s by %s", path, assignment.id, current_user.id)
    query_cache.invalidate_after(Mutation.UPLOAD_ASSIGNMENT_FILE, assignment=assignment.id)
    return _file_response(assignment_file)


@router.get("/assignments/{assignment_id}/files", response_model=List[AssignmentFileResponse])
def list_assignment_files(
    assignment_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Files of an assignment, newest first; students only see their own"""
    assignment = get_assignment_for_member(session, assignment_id, current_user)
    is_manager = can_manage_course(current_user, get_course_or_404(session, assignment.course_id))

    def load() -> List[AssignmentFileResponse]:
        statement = select(AssignmentFile).where(AssignmentFile.assignment_id == assignment.id)
        if not is_manager:
            statement = statement.where(AssignmentFile.uploaded_by == current_user.id)
        files = session.exec(statement.order_by(AssignmentFile.uploaded_at.desc())).all()
        return [_file_response(f) for f in files]

    variant = "manager" if is_manager else current_user.id
    return query_cache.get_or_load(QueryKey(Resource.ASSIGNMENT_FILES, assignment.id), load, variant=variant)


@router.delete("/assignment-files/{file_id}")
def delete_assignment_file(
    file_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    storage: StorageService = Depends(get_storage_service)
):
    """Delete a file; only its uploader can"""
    assignment_file = session.get(AssignmentFile, file_id)
    if not assignment_file:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    if assignment_file.uploaded_by != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the uploader can delete this file"
        )

    if not storage.remove(assignment_file.storage_path):
        logger.warning("Storage object %s was not removed", assignment_file.storage_path)

    assignment_id = assignment_file.assignment_id
    session.delete(assignment_file)
    session.commit()

    query_cache.invalidate_after(Mutation.DELETE_ASSIGNMENT_FILE, assignment=assignment_id)
    return {"message": "File deleted successfully", "file_id": file_id}
