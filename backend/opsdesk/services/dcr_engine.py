"""
dcr_engine.py — Daily task-performance (DCR) score.

Score on a 1–5 scale from one person's task work logs for one date:
  - no logs at all                -> 1.0
  - start at 5.0
  - incomplete work               -> minus (1 - completion_rate) * 2     (max 2)
  - lateness on completed work    -> minus min(overdue_hours * 0.5, 2)  (max 2)
  - clamp to [1, 5], round to one decimal
"""
from typing import Any, Dict, List, Sequence

from opsdesk.models.domain import LOG_COMPLETED, TaskWorkLog
from opsdesk.services.timesheet_engine import round_half_up

MIN_SCORE: float = 1.0
MAX_SCORE: float = 5.0
MAX_COMPLETION_PENALTY: float = 2.0
MAX_LATENESS_PENALTY: float = 2.0
LATENESS_PENALTY_PER_HOUR: float = 0.5

# (threshold, message), checked top-down
DCR_MESSAGES: List[tuple] = [
    (4.5, "Excellent performance! Keep up the great work."),
    (3.5, "Good performance with room for improvement."),
    (2.5, "Average performance. Focus on completing tasks on time."),
]
DCR_FALLBACK_MESSAGE = "Performance needs improvement. Consider better time management."


def _late_minutes(logs: Sequence[TaskWorkLog]) -> int:
    return sum(
        log.overdue_minutes
        for log in logs
        if log.status == LOG_COMPLETED and log.is_overdue and log.overdue_minutes
    )


def compute_dcr_score(logs: Sequence[TaskWorkLog]) -> float:
    if not logs:
        return MIN_SCORE

    score = MAX_SCORE
    completed = sum(1 for log in logs if log.status == LOG_COMPLETED)
    completion_rate = completed / len(logs)
    if completion_rate < 1:
        score -= (1 - completion_rate) * MAX_COMPLETION_PENALTY

    overdue_minutes = _late_minutes(logs)
    if overdue_minutes > 0:
        overdue_hours = overdue_minutes / 60
        score -= min(overdue_hours * LATENESS_PENALTY_PER_HOUR, MAX_LATENESS_PENALTY)

    return max(MIN_SCORE, min(MAX_SCORE, round_half_up(score, 1)))


def dcr_message(score: float) -> str:
    for threshold, message in DCR_MESSAGES:
        if score >= threshold:
            return message
    return DCR_FALLBACK_MESSAGE


def dcr_insights(logs: Sequence[TaskWorkLog]) -> Dict[str, Any]:
    """Score plus the counts a dashboard shows next to it."""
    score = compute_dcr_score(logs)
    return {
        "score": score,
        "total_tasks": len(logs),
        "completed": sum(1 for log in logs if log.status == LOG_COMPLETED),
        "overdue": sum(1 for log in logs if log.is_overdue),
        "total_overdue_minutes": sum(log.overdue_minutes for log in logs if log.is_overdue),
        "message": dcr_message(score),
    }
