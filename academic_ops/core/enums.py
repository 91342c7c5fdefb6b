from enum import Enum


class StudentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    WITHDRAWN = "WITHDRAWN"
    GRADUATED = "GRADUATED"


class ImportBatchStatus(str, Enum):
    staged = "staged"
    committed = "committed"
    expired = "expired"
    discarded = "discarded"


class RolloverPreviewStatus(str, Enum):
    ready = "ready"
    structural = "structural"  # no target dates given; placeholders only
    empty = "empty"  # source session has no terms


class PromotionAction(str, Enum):
    PROMOTE = "PROMOTE"
    SKIP = "SKIP"


class PromotionOutcome(str, Enum):
    promoted = "promoted"
    skipped = "skipped"


class ExportFormat(str, Enum):
    csv = "csv"
    pdf = "pdf"


class Gender(str, Enum):
    male = "male"
    female = "female"
