"""Active accounting-month window used to scope insight and summary queries."""

from datetime import date, datetime

from .utils import month_bounds


class PeriodWindow:
    """Inclusive calendar-month range.

    `start` is always the first day of a month at 00:00 and `end` the last
    instant of the same month. Both ends are only ever derived together
    from a (year, month) pair.
    """

    def __init__(self, year: int | None = None, month: int | None = None):
        """Initialize window.

        Args:
            year: Calendar year; defaults to the current year.
            month: Month 1..12; defaults to the current month.
        """
        today = date.today()
        self.set_to(year if year is not None else today.year, month if month is not None else today.month)

    @property
    def start(self) -> datetime:
        return self._start

    @property
    def end(self) -> datetime:
        return self._end

    @property
    def year(self) -> int:
        return self._start.year

    @property
    def month(self) -> int:
        return self._start.month

    def set_to(self, year: int, month: int) -> None:
        """Move the window to the given month.

        Raises:
            ValueError: If month is outside 1..12.
        """
        self._start, self._end = month_bounds(year, month)

    def next(self) -> None:
        if self.month == 12:
            self.set_to(self.year + 1, 1)
        else:
            self.set_to(self.year, self.month + 1)

    def previous(self) -> None:
        if self.month == 1:
            self.set_to(self.year - 1, 12)
        else:
            self.set_to(self.year, self.month - 1)

    def query_params(self) -> dict[str, str]:
        """`start`/`end` query parameters in the API's YYYY-MM-DD format."""
        return {
            "start": self._start.date().isoformat(),
            "end": self._end.date().isoformat(),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PeriodWindow):
            return NotImplemented
        return self._start == other._start and self._end == other._end

    def __repr__(self) -> str:
        return f"PeriodWindow({self._start.date().isoformat()} .. {self._end.date().isoformat()})"
