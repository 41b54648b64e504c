# coding: utf-8

"""Timestamps embedded in syslog lines and in date arguments.

Formats are written with strptime-like directives.
Each format is translated into one regular expression
(whitespace in a format matches any run of white spaces),
and the matched groups are assembled into a naive local
:obj:`datetime.datetime`.

Supported directives:

* %b: abbreviated (or full) month name, case-insensitive
* %d: day of month
* %m: month number
* %Y: year with century
* %H, %M, %S: hour, minute, second
* %T: same as %H:%M:%S
"""

import datetime
import re

_KEY_YEAR = "year"
_KEY_MONTH = "month"
_KEY_MONTH_ABB = "month_abb"
_KEY_DAY = "day"
_KEY_HOUR = "hour"
_KEY_MINUTE = "minute"
_KEY_SECOND = "second"

SYSLOG_DATE_FORMAT = "%b %d %T"

month_name = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_month_suffix = ("uary", "ruary", "ch", "il", "", "e",
                 "y", "ust", "tember", "ober", "ember", "ember")

_DIRECTIVES = {
    "%b": (_KEY_MONTH_ABB, "|".join(
        "{0}(?:{1})?".format(abb, suffix) if suffix else abb
        for abb, suffix in zip(month_name, _month_suffix))),
    "%d": (_KEY_DAY, r"[0-9]{1,2}"),
    "%m": (_KEY_MONTH, r"[0-9]{1,2}"),
    "%Y": (_KEY_YEAR, r"[0-9]{4}"),
    "%H": (_KEY_HOUR, r"[0-9]{1,2}"),
    "%M": (_KEY_MINUTE, r"[0-9]{1,2}"),
    "%S": (_KEY_SECOND, r"[0-9]{1,2}"),
}
_ALIASES = {"%T": "%H:%M:%S"}


class DateFormat:
    """One date/time format, compiled into a regular expression.

    Args:
        fmt (str): strptime-like format, e.g., :samp:`%b %d %T`.

    Raises:
        ValueError: if fmt uses an unsupported directive,
            or the same directive twice.
    """

    def __init__(self, fmt):
        self.fmt = fmt
        self._reobj = re.compile(self.make_pattern(fmt), re.IGNORECASE)

    @staticmethod
    def make_pattern(fmt):
        for alias, expanded in _ALIASES.items():
            fmt = fmt.replace(alias, expanded)
        l_pattern = []
        seen = set()
        i = 0
        while i < len(fmt):
            c = fmt[i]
            if c == "%":
                directive = fmt[i:i + 2]
                if directive not in _DIRECTIVES:
                    raise ValueError("unsupported directive {0!r} in {1!r}".format(
                        directive, fmt))
                name, pattern = _DIRECTIVES[directive]
                if name in seen:
                    raise ValueError("duplicated directive {0!r}".format(directive))
                seen.add(name)
                l_pattern.append(r"(?P<" + name + r">" + pattern + r")")
                i += 2
            elif c.isspace():
                while i < len(fmt) and fmt[i].isspace():
                    i += 1
                l_pattern.append(r"\s+")
            else:
                l_pattern.append(re.escape(c))
                i += 1
        # strptime skips leading white spaces
        return r"\s*" + "".join(l_pattern)

    @property
    def pattern(self):
        return self._reobj

    @property
    def has_year(self):
        return "%Y" in self.fmt

    @staticmethod
    def _pick(mo, year):
        d = mo.groupdict()
        if d.get(_KEY_MONTH_ABB) is not None:
            month = month_name.index(d[_KEY_MONTH_ABB][:3].title()) + 1
        elif d.get(_KEY_MONTH) is not None:
            month = int(d[_KEY_MONTH])
        else:
            month = 1
        day = int(d[_KEY_DAY]) if d.get(_KEY_DAY) is not None else 1
        kwargs = {}
        for key in (_KEY_HOUR, _KEY_MINUTE, _KEY_SECOND):
            if d.get(key) is not None:
                kwargs[key] = int(d[key])
        return datetime.datetime(year, month, day, **kwargs)

    def parse(self, text, year_in_fmt=None, now=None):
        """Parse the date at the beginning of text.

        If the format has no year, the year defaults to either
        this year or last year, whatever yields a date
        that is not in the future.

        Args:
            text (str): string starting with a date.
            year_in_fmt (bool, optional): assume the format provides
                the year. Defaults to :attr:`has_year`.
            now (datetime.datetime, optional): reference time
                for year inference. Defaults to current local time.

        Returns:
            tuple: (:obj:`datetime.datetime`, end index in text),
            or None if text does not conform to the format.
        """
        if year_in_fmt is None:
            year_in_fmt = self.has_year
        mo = self._reobj.match(text)
        if mo is None:
            return None

        if now is None:
            now = datetime.datetime.now()
        if year_in_fmt:
            year = int(mo.group(_KEY_YEAR)) if self.has_year else now.year
            if year < 1969:
                # mistook hour for year?
                return None
            try:
                return self._pick(mo, year), mo.end()
            except ValueError:
                return None

        for year in (now.year, now.year - 1):
            try:
                dt = self._pick(mo, year)
            except ValueError:
                # e.g., Feb 29 in a non-leap year
                continue
            if dt <= now:
                return dt, mo.end()
        return None


_formats = {}


def _get_format(fmt):
    if fmt not in _formats:
        _formats[fmt] = DateFormat(fmt)
    return _formats[fmt]


def parse_fixed(text, fmt, year_in_fmt, now=None):
    """Apply a single date/time format to the head of text.

    Returns:
        tuple: (datetime, end index), or None for no match.
    """
    return _get_format(fmt).parse(text, year_in_fmt, now=now)


def parse_syslog_date(text, now=None):
    """Parse the classic syslog timestamp (e.g., :samp:`Jan  5 10:22:01`).

    Returns:
        tuple: (datetime, end index), or None for no match.
    """
    return parse_fixed(text, SYSLOG_DATE_FORMAT, False, now=now)


def format_syslog_date(dt):
    """Render dt as a syslog timestamp (inverse of :func:`parse_syslog_date`)."""
    return "{0} {1:2d} {2:02d}:{3:02d}:{4:02d}".format(
        month_name[dt.month - 1], dt.day, dt.hour, dt.minute, dt.second)


# Order is important: try longest match first.
day_formats = (("%b %d %Y", True),   # Jan 15 2010
               ("%b %d", False),
               ("%Y-%m-%d", True),   # 2010-1-15
               ("%d %b %Y", True),   # 15 Jan 2010
               ("%d %b", False))
time_formats = (("%T %Y", True),
                ("%T", False),
                ("%H:%M %Y", True),
                ("%H:%M", False),
                ("", False))


def flexible_formats():
    """Yield (format, has_year) combinations in trial order."""
    for day, day_has_year in day_formats:
        for time, time_has_year in time_formats:
            if day_has_year and time_has_year:
                continue
            fmt = day + " " + time if time else day
            yield fmt, day_has_year or time_has_year


def parse_flexible(text, now=None):
    """Parse a user-supplied date, trying all valid combinations of
    date and time formats (see :func:`flexible_formats`).
    The whole text must be consumed by the format.

    Returns:
        datetime.datetime, or None if no format matches.
    """
    text = text.strip()
    for fmt, has_year in flexible_formats():
        ret = parse_fixed(text, fmt, has_year, now=now)
        if ret is not None and ret[1] == len(text):
            return ret[0]
    return None
