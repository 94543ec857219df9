"""Date-range interval index over the statements already in a ledger.

Intervals are kept in a list sorted by start date and searched with
``bisect``. A running maximum of end dates (in start order) lets a query stop
walking left once no earlier interval can reach the query range. Ledgers
whose statements do not nest stay close to logarithmic plus the number of
hits; one long early interval keeps the running maximum high, and a query
may then scan every earlier entry.
"""

from bisect import bisect_right
from datetime import date, timedelta
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .models import DateRangeInterval, Ledger

ONE_DAY = timedelta(days=1)


class DateRangeIndex:
    """Sorted interval index keyed by statement (group) id."""

    def __init__(self, intervals: Optional[List[DateRangeInterval]] = None):
        self._starts: List[date] = []
        self._intervals: List[DateRangeInterval] = []
        self._max_end: List[date] = []
        for interval in intervals or []:
            self.insert(interval)

    def __len__(self) -> int:
        return len(self._intervals)

    def __iter__(self) -> Iterator[DateRangeInterval]:
        return iter(self._intervals)

    def insert(self, interval: DateRangeInterval) -> None:
        """Record an interval. Equal start dates keep insertion order."""
        pos = bisect_right(self._starts, interval.start_date)
        self._starts.insert(pos, interval.start_date)
        self._intervals.insert(pos, interval)
        self._max_end.insert(pos, interval.end_date)

        running = self._max_end[pos - 1] if pos > 0 else None
        for i in range(pos, len(self._intervals)):
            end = self._intervals[i].end_date
            running = end if running is None or end > running else running
            if i > pos and self._max_end[i] == running:
                break
            self._max_end[i] = running

    def find_overlapping(
        self,
        start_date: date,
        end_date: date,
        gap_tolerance: timedelta = ONE_DAY,
    ) -> Set[str]:
        """Group ids whose interval overlaps [start_date, end_date].

        Intervals within ``gap_tolerance`` of the range also count, so a
        statement ending on the 31st and the next starting on the 1st are
        treated as continuous.
        """
        if end_date < start_date:
            start_date, end_date = end_date, start_date
        lo = start_date - gap_tolerance
        hi = end_date + gap_tolerance

        found: Set[str] = set()
        i = bisect_right(self._starts, hi) - 1
        while i >= 0 and self._max_end[i] >= lo:
            if self._intervals[i].end_date >= lo:
                found.add(self._intervals[i].group_id)
            i -= 1
        return found

    def span(self) -> Optional[Tuple[date, date]]:
        """Overall (earliest start, latest end), or None when empty."""
        if not self._intervals:
            return None
        return self._starts[0], self._max_end[-1]

    @classmethod
    def from_ledger(cls, ledger: Optional[Ledger]) -> "DateRangeIndex":
        """One interval per originating statement, spanning its transaction dates."""
        index = cls()
        if ledger is None:
            return index

        bounds: Dict[str, Tuple[date, date]] = {}
        for t in ledger.transactions:
            current = bounds.get(t.statement_id)
            if current is None:
                bounds[t.statement_id] = (t.date, t.date)
            else:
                bounds[t.statement_id] = (min(current[0], t.date), max(current[1], t.date))

        for statement_id, (start, end) in bounds.items():
            index.insert(DateRangeInterval(statement_id, start, end))
        return index
