"""Week classification and date resolution for hybrid lessons.

Everything here is pure: no database access, no clock.
"""

import enum
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence, Tuple

from app.core.errors import InvalidRequestError
from app.utils.timezone import sunday_based_weekday

# Upper bound for week numbers when the term length is unknown
MAX_TERM_WEEKS = 15


class WeekKind(str, enum.Enum):
    """Classification of one week of a hybrid lesson."""

    GROUP = "GROUP"
    INDIVIDUAL = "INDIVIDUAL"
    UNSCHEDULED = "UNSCHEDULED"


def classify_week(group_weeks: Iterable[int], individual_weeks: Iterable[int], week_number: int) -> WeekKind:
    """Classify a week against the configured group and individual week sets."""
    if week_number in set(group_weeks):
        return WeekKind.GROUP
    if week_number in set(individual_weeks):
        return WeekKind.INDIVIDUAL
    return WeekKind.UNSCHEDULED


def classify_pattern_week(pattern, week_number: int) -> WeekKind:
    """Same as ``classify_week`` for a ``HybridPattern`` row (or ``None``)."""
    if pattern is None:
        return WeekKind.UNSCHEDULED
    return classify_week(pattern.group_weeks or [], pattern.individual_weeks or [], week_number)


def week_start(term_start: date, week_number: int) -> date:
    """First day of the given 1-based week of a term."""
    if week_number < 1:
        raise ValueError(f"Week number must be at least 1, got {week_number}")
    return term_start + timedelta(days=7 * (week_number - 1))


def date_for_week(term_start: date, week_number: int, day_of_week: int) -> date:
    """Concrete date of a lesson in a given term week.

    ``day_of_week`` uses 0=Sunday ... 6=Saturday. The result is the first day
    on or after the week start that falls on ``day_of_week``, so it always
    stays inside the 7-day window of the target week.
    """
    if not 0 <= day_of_week <= 6:
        raise ValueError(f"Day of week must be between 0 and 6, got {day_of_week}")
    start = week_start(term_start, week_number)
    offset = (day_of_week - sunday_based_weekday(start)) % 7
    return start + timedelta(days=offset)


def week_number_for_date(term_start: date, target: date) -> int:
    """1-based term week containing ``target`` (0 or negative before the term)."""
    return (target - term_start).days // 7 + 1


def validate_pattern(
    group_weeks: Sequence[int],
    individual_weeks: Sequence[int],
    total_weeks: Optional[int] = None,
) -> None:
    """Reject overlapping, empty or out-of-range week sets."""
    upper = total_weeks or MAX_TERM_WEEKS

    if not group_weeks:
        raise InvalidRequestError("At least one group week is required.")
    if not individual_weeks:
        raise InvalidRequestError("At least one individual week is required.")

    out_of_range = sorted(w for w in (*group_weeks, *individual_weeks) if w < 1 or w > upper)
    if out_of_range:
        raise InvalidRequestError(
            f"Week numbers must be between 1 and {upper}: {out_of_range}"
        )

    overlap = sorted(set(group_weeks) & set(individual_weeks))
    if overlap:
        raise InvalidRequestError(
            f"Group weeks and individual weeks cannot overlap: {overlap}"
        )


def alternating_weeks(total_weeks: int, group_run: int = 3, individual_run: int = 1) -> Tuple[list, list]:
    """Build week lists for an ALTERNATING pattern.

    ``group_run`` group weeks are followed by ``individual_run`` individual
    weeks, repeated across the term: (3, 1) over 10 weeks gives group weeks
    1, 2, 3, 5, 6, 7, 9, 10 and individual weeks 4, 8.
    """
    if total_weeks < 1 or group_run < 1 or individual_run < 1:
        raise InvalidRequestError("Alternating patterns need positive week counts.")

    cycle = group_run + individual_run
    group, individual = [], []
    for week in range(1, total_weeks + 1):
        if (week - 1) % cycle < group_run:
            group.append(week)
        else:
            individual.append(week)
    return group, individual
