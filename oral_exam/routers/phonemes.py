# oral_exam/routers/phonemes.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from oral_exam.deps import get_current_user, get_db
from oral_exam.schemas.assessment import PhonemeStatOut, PhonemeSummaryOut
from oral_exam.services import phoneme_stats

router = APIRouter(prefix="/api/phonemes", tags=["phonemes"])


@router.get("/summary", response_model=PhonemeSummaryOut)
def phoneme_summary(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    summary = phoneme_stats.get_phoneme_stats_summary(db, current_user["id"])
    return PhonemeSummaryOut(
        hardest=[PhonemeStatOut.model_validate(s) for s in summary["hardest"]],
        uncertain=[PhonemeStatOut.model_validate(s) for s in summary["uncertain"]],
        strongest=[PhonemeStatOut.model_validate(s) for s in summary["strongest"]],
        coverage=summary["coverage"],
    )


@router.get("/stats", response_model=List[PhonemeStatOut])
def phoneme_stats_list(
    db: Session = Depends(get_db),
    current_user: dict = Depends(get_current_user),
):
    return [PhonemeStatOut.model_validate(s) for s in phoneme_stats.get_user_phoneme_stats(db, current_user["id"])]
