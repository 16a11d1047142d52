# oral_exam/routers/official_exams.py
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from oral_exam.deps import get_current_user, get_db
from oral_exam.routers._errors import to_http
from oral_exam.schemas.assessment import OfficialExamCreate, OfficialExamOut, OfficialExamUpdate, RetryStatusOut
from oral_exam.services import official_exams, retry_policy
from oral_exam.services.errors import AssessmentDomainError

router = APIRouter(prefix="/api/official-exams", tags=["official-exams"])


@router.get("/retry-status", response_model=RetryStatusOut)
def retry_status(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    status = retry_policy.get_retry_status(db, current_user["id"])
    return RetryStatusOut(**status.__dict__, message=retry_policy.format_retry_message(status))


@router.get("/history", response_model=List[OfficialExamOut])
def exam_history(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    return [OfficialExamOut.model_validate(e) for e in official_exams.get_exam_history(db, current_user["id"])]


@router.post("", response_model=OfficialExamOut, status_code=201)
def create_exam(
    payload: Optional[OfficialExamCreate] = None,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    payload = payload or OfficialExamCreate()
    try:
        exam = official_exams.create_official_exam(
            db, current_user["id"], payload.assessment_session_id, is_official=payload.is_official,
        )
    except AssessmentDomainError as e:
        raise to_http(e)
    db.commit()
    return OfficialExamOut.model_validate(exam)


@router.patch("/{exam_id}", response_model=OfficialExamOut)
def update_exam(
    exam_id: str,
    payload: OfficialExamUpdate,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    try:
        exam = official_exams.update_official_exam(
            db, current_user["id"], exam_id, payload.model_dump(exclude_unset=True),
        )
    except AssessmentDomainError as e:
        raise to_http(e)
    db.commit()
    return OfficialExamOut.model_validate(exam)


@router.post("/{exam_id}/complete", response_model=OfficialExamOut)
def complete_exam(
    exam_id: str,
    payload: Optional[OfficialExamUpdate] = None,
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    updates = payload.model_dump(exclude_unset=True) if payload is not None else {}
    try:
        exam = official_exams.complete_official_exam(db, current_user["id"], exam_id, updates)
    except AssessmentDomainError as e:
        raise to_http(e)
    db.commit()
    return OfficialExamOut.model_validate(exam)
