# coding: utf-8

import logging

_logger = logging.getLogger(__name__)

# syslog severities (LOG_EMERG ... LOG_DEBUG)
LOG_EMERG = 0
LOG_ALERT = 1
LOG_CRIT = 2
LOG_ERR = 3
LOG_WARNING = 4
LOG_NOTICE = 5
LOG_INFO = 6
LOG_DEBUG = 7
# not real syslog levels
LOG_SEV_UNKNOWN = 8
LOG_SEV_ANY = 9  # used only for catchall-ish messages

SEVERITY_NAMES = {
    "emerg": LOG_EMERG,
    "alert": LOG_ALERT,
    "crit": LOG_CRIT,
    "err": LOG_ERR,
    "warning": LOG_WARNING,
    "notice": LOG_NOTICE,
    "info": LOG_INFO,
    "debug": LOG_DEBUG,
    "unknown": LOG_SEV_UNKNOWN,
    "any": LOG_SEV_ANY,
}
for _prefix in ("KERN_", "LOG_"):
    for _name in ("emerg", "alert", "crit", "err", "warning",
                  "notice", "info", "debug"):
        SEVERITY_NAMES[_prefix + _name.upper()] = SEVERITY_NAMES[_name]

# error classes
SYCL_HARDWARE = 0
SYCL_SOFTWARE = 1
SYCL_FIRMWARE = 2
SYCL_UNKNOWN = 3

CLASS_NAMES = {
    "unknown": SYCL_UNKNOWN,
    "hardware": SYCL_HARDWARE,
    "software": SYCL_SOFTWARE,
    "firmware": SYCL_FIRMWARE,
}

# error types; 0 means "not given"
SYTY_BOGUS = 0
SYTY_PERM = 1
SYTY_TEMP = 2
SYTY_CONFIG = 3
SYTY_PEND = 4
SYTY_PERF = 5
SYTY_INFO = 6
SYTY_UNKNOWN = 7

TYPE_NAMES = {
    "unknown": SYTY_UNKNOWN,
    "perm": SYTY_PERM,
    "temp": SYTY_TEMP,
    "config": SYTY_CONFIG,
    "pend": SYTY_PEND,
    "perf": SYTY_PERF,
    "info": SYTY_INFO,
}

# servicelog severities; 0 means "not given"
SL_SEV_DEBUG = 1
SL_SEV_INFO = 2
SL_SEV_EVENT = 3
SL_SEV_WARNING = 4
SL_SEV_ERROR_LOCAL = 5
SL_SEV_ERROR = 6
SL_SEV_FATAL = 7

SL_SEVERITY_NAMES = {
    "debug": SL_SEV_DEBUG,
    "info": SL_SEV_INFO,
    "event": SL_SEV_EVENT,
    "warning": SL_SEV_WARNING,
    "error_local": SL_SEV_ERROR_LOCAL,
    "error": SL_SEV_ERROR,
    "fatal": SL_SEV_FATAL,
}

PRIORITY_NAMES = {p: p for p in ("H", "M", "A", "B", "C", "L")}

SOURCE_NAMES = {"kernel": True, "user": False}


def lookup_name(name, table):
    """Return the value for name in table, or None if unknown."""
    return table.get(name)


def lookup_value(value, table):
    """Reverse lookup: first name in table mapped to value."""
    for name, val in table.items():
        if val == value:
            return name
    return "badval"


def severity_name(sev):
    return lookup_value(sev, SEVERITY_NAMES)


class CatalogError(Exception):
    """CatalogError is raised when the message catalog cannot be
    loaded at all (e.g., missing directory), or when a strict load
    finds semantic errors in the catalog files.
    """
    pass


class FormatCompileError(Exception):
    """FormatCompileError is raised when a message format string
    cannot be converted into a regular expression.
    """
    pass


class ConfigError(Exception):
    """ConfigError is raised for invalid configuration values
    or inconsistent command line arguments.
    """
    pass


class ServiceLogError(Exception):
    """ServiceLogError wraps failures of the service event store."""
    pass


class Diagnostics:
    """Semantic error accumulator for one catalog file.

    Errors do not abort parsing; they are counted here,
    logged with file and line, and summed up by the loader.

    Args:
        path (str): catalog file the diagnostics belong to.
    """

    def __init__(self, path):
        self.path = path
        self.errors = []
        self.warnings = []

    def error(self, msg, lineno=0):
        self.errors.append((lineno, msg))
        _logger.error("%s:%d: %s", self.path, lineno, msg)

    def warning(self, msg, lineno=0):
        self.warnings.append((lineno, msg))
        _logger.warning("%s:%d: warning: %s", self.path, lineno, msg)

    @property
    def count(self):
        return len(self.errors)

    def __repr__(self):
        return "Diagnostics({0!r}, {1} errors)".format(self.path, self.count)


def add_escapes(s):
    """Return a version of s that contains only printable characters,
    by converting non-printing characters to backslash escapes.
    The result can be read back as a quoted catalog string.
    """
    table = {"\\": "\\\\", '"': '\\"', "?": "\\?", "\a": "\\a",
             "\b": "\\b", "\f": "\\f", "\n": "\\n", "\r": "\\r",
             "\t": "\\t", "\v": "\\v"}
    buf = []
    for c in s:
        if c in table:
            buf.append(table[c])
        elif c.isprintable() or ord(c) > 0xff:
            buf.append(c)
        else:
            buf.append("\\{0:03o}".format(ord(c)))
    return "".join(buf)


def indent_text_block(text, nspaces):
    """Indent every line of text by nspaces spaces."""
    if nspaces == 0:
        return text
    pad = " " * nspaces
    return "\n".join(pad + line for line in text.split("\n"))
