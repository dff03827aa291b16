"""
Daily completion streaks.
"""
from datetime import date
from typing import Optional, Tuple


def update_streak(
    last_activity_date: Optional[date],
    today: date,
    current_streak: int,
    longest_streak: int
) -> Tuple[int, int]:
    """
    Advance the streak for a completion made on `today`.

    - no previous activity: streak starts at 1
    - already active today: unchanged
    - active yesterday: +1
    - any other gap (including a last activity in the future): reset to 1

    Only completions call this; uncompleting a task never rolls a streak back.

    Returns:
        (new_streak, new_longest)
    """
    if last_activity_date is None:
        new_streak = 1
    else:
        days = (today - last_activity_date).days
        if days == 0:
            new_streak = current_streak
        elif days == 1:
            new_streak = current_streak + 1
        else:
            new_streak = 1

    return new_streak, max(longest_streak, new_streak)


def is_streak_at_risk(last_activity_date: Optional[date], today: date, current_streak: int) -> bool:
    """True when a streak is alive but nothing has been completed today"""
    return current_streak > 0 and last_activity_date != today
