"""
Aggregate statistics backed by count-only queries on the backend tables.
"""

from typing import Optional

from schemas import Identity, ReportStatus, Statistics
from services.supabase import PROBLEMS_TABLE, PROFILES_TABLE

# Points awarded for each submitted report
REPORT_POINTS = 10


async def get_statistics(backend, identity: Optional[Identity] = None, access_token: Optional[str] = None) -> Statistics:
    """
    Collect the dashboard counters.

    Args:
        backend: Backend client
        identity: Signed-in user, if any
        access_token: The user's token for the profile lookup

    Returns:
        Statistics with totals and the user's points

    Raises:
        BackendError: If any count query fails
    """
    total = await backend.count(PROBLEMS_TABLE)
    fixed = await backend.count(PROBLEMS_TABLE, status=ReportStatus.fixed.value)
    users = await backend.count(PROFILES_TABLE)

    points = 0
    if identity is not None:
        profile = await backend.get_user_profile(identity.id, access_token=access_token)
        if profile:
            points = int(profile.get("points") or 0)

    return Statistics(
        total_problems=total,
        fixed_problems=fixed,
        active_users=users,
        user_points=points,
    )
