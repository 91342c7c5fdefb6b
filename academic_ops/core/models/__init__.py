from academic_ops.core.models.school import School
from academic_ops.core.models.academic_session import AcademicSession
from academic_ops.core.models.term import Term
from academic_ops.core.models.class_model import ClassArm, ClassSection, SchoolClass
from academic_ops.core.models.parent import Parent
from academic_ops.core.models.student import Student, StudentSubjectAssignment
from academic_ops.core.models.promotion_record import PromotionRecord
from academic_ops.core.models.rollover_record import RolloverRecord
from academic_ops.core.models.import_batch import ImportBatch, ImportBatchRow

__all__ = [
    "School",
    "AcademicSession",
    "Term",
    "SchoolClass",
    "ClassArm",
    "ClassSection",
    "Parent",
    "Student",
    "StudentSubjectAssignment",
    "PromotionRecord",
    "RolloverRecord",
    "ImportBatch",
    "ImportBatchRow",
]
