# oral_exam/db/models.py
# importing this module registers every table on Base.metadata
from oral_exam.models.user_profile import UserProfile
from oral_exam.models.assessment_session import AssessmentSession
from oral_exam.models.assessment_item import AssessmentItem
from oral_exam.models.skill_recording import SkillRecording
from oral_exam.models.module_progress import ModuleProgress
from oral_exam.models.phoneme_stat import UserPhonemeStat
from oral_exam.models.official_exam import OfficialExamSession

__all__ = [
    "UserProfile",
    "AssessmentSession",
    "AssessmentItem",
    "SkillRecording",
    "ModuleProgress",
    "UserPhonemeStat",
    "OfficialExamSession",
]
