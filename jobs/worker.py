"""
Dramatiq worker entry point.

Run with:
    dramatiq jobs.worker

Importing the broker first makes every actor below bind to it.
"""

from jobs.broker import broker  # noqa: F401
from jobs.tasks.ghost_volume import expire_ghost_credits, issue_ghost_credits
from jobs.tasks.rank_evaluation import evaluate_all_ranks
from jobs.tasks.weekly_settlement import finalize_week

__all__ = [
    "evaluate_all_ranks",
    "expire_ghost_credits",
    "finalize_week",
    "issue_ghost_credits",
]
