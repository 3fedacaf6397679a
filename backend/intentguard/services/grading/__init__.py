from intentguard.services.grading.engine import GradingEngine
from intentguard.services.grading.history import GradeHistory, compute_trend
from intentguard.services.grading.models import (
    CategoryScore,
    Grade,
    GradeBands,
    GradeRecord,
    TriangleSums,
    Trend,
)

__all__ = [
    "GradingEngine",
    "GradeHistory",
    "compute_trend",
    "CategoryScore",
    "Grade",
    "GradeBands",
    "GradeRecord",
    "TriangleSums",
    "Trend",
]
