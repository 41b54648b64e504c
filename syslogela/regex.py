# coding: utf-8

"""Conversion of message format strings into regular expressions.

A catalog message is identified by the printf-style format string
its logging call uses, e.g., :samp:`"%s %s: link down\\n"`.
The format (prefixed with the reporter's prefix format) is turned
into an anchored regular expression that matches exactly
the messages the call can produce.

The conversion itself is delegated to a :class:`FormatCompiler`,
so that an external helper program can be used instead of
the built-in :class:`PrintfFormatCompiler`.
"""

import logging
import re
import subprocess
from abc import ABC, abstractmethod

from ._common import FormatCompileError

_logger = logging.getLogger(__name__)

# Longest regex text accepted from a format compiler.
REGEX_MAXLEN = 1024

REGEX_PARSER_FAILURE = "regex parser failure"


class FormatCompiler(ABC):
    """Interface of format-to-regex converters."""

    @abstractmethod
    def convert(self, maxlen, fmt, need_groups):
        """Convert a format string into (unanchored) regex text.

        Args:
            maxlen (int): maximum length of the generated text.
            fmt (str): format string without trailing newline.
            need_groups (bool): enclose each conversion
                in a capture group, in order of appearance.

        Returns:
            str: regular expression text.

        Raises:
            FormatCompileError: if fmt cannot be converted.
        """
        raise NotImplementedError


class PrintfFormatCompiler(FormatCompiler):
    """Built-in converter for printf-style format strings.

    Supported conversions are
    :samp:`%[flags][width][.precision][length]conversion`
    with conversions ``d i u x X o c s p e E f g G %``,
    Linux kernel pointer extensions (e.g., :samp:`%pM`, :samp:`%pI4`),
    and named placeholders like :samp:`%(device)s`.
    Literal text is escaped, and a run of white spaces
    matches any run of white spaces.
    """

    _re_spec = re.compile(
        r"%"
        r"(?:\((?P<name>[A-Za-z_][A-Za-z0-9_]*)\))?"  # named placeholder
        r"(?P<flags>[-+ #0']*)"
        r"(?P<width>\*|[0-9]+)?"
        r"(?:\.(?P<precision>\*|[0-9]*))?"
        r"(?P<length>hh|h|ll|l|L|q|j|z|Z|t)?"
        r"(?P<conv>[diouxXcspeEfgGaA%])"
    )
    _re_space = re.compile(r"\s+")
    _re_pointer_ext = re.compile(r"[A-Z][A-Za-z0-9]*")

    _conversions = {
        "d": r"-?[0-9]+",
        "i": r"-?[0-9]+",
        "u": r"[0-9]+",
        "o": r"[0-7]+",
        "x": r"[0-9a-fA-F]+",
        "X": r"[0-9a-fA-F]+",
        "c": r".",
        "s": r".*",
        "p": r"(?:0x)?[0-9a-fA-F]+",
        "e": r"[-+]?[0-9.]+(?:[eE][-+]?[0-9]+)?|[-+]?(?:inf|nan)",
        "E": r"[-+]?[0-9.]+(?:[eE][-+]?[0-9]+)?|[-+]?(?:INF|NAN)",
        "f": r"[-+]?[0-9.]+|[-+]?(?:inf|nan)",
        "g": r"[-+]?[0-9.]+(?:[eE][-+]?[0-9]+)?|[-+]?(?:inf|nan)",
        "G": r"[-+]?[0-9.]+(?:[eE][-+]?[0-9]+)?|[-+]?(?:INF|NAN)",
        "a": r"[-+]?0x[0-9a-f.]+p[-+]?[0-9]+",
        "A": r"[-+]?0X[0-9A-F.]+P[-+]?[0-9]+",
    }

    def _conversion_pattern(self, mo, fmt, end):
        """Returns (pattern, new end index) for one conversion."""
        conv = mo.group("conv")
        pattern = self._conversions[conv]
        if conv == "p":
            ext = self._re_pointer_ext.match(fmt, end)
            if ext:
                # %pM, %pI4, %pUb, ...: kernel-formatted objects
                return r"\S+", ext.end()
        flags = mo.group("flags")
        if conv in "xX" and "#" in flags:
            pattern = r"(?:0[xX])?" + pattern
        if conv in "diouxX" and "+" in flags:
            pattern = r"[-+]?" + pattern.lstrip("-?")
        if mo.group("width") and conv not in "cs":
            # padded with spaces
            pattern = r" *(?:" + pattern + r") *"
        return pattern, end

    def convert(self, maxlen, fmt, need_groups):
        l_pattern = []
        i = 0
        length = len(fmt)
        while i < length:
            c = fmt[i]
            if c == "%":
                mo = self._re_spec.match(fmt, i)
                if mo is None:
                    raise FormatCompileError(
                        "bad conversion specification at {0!r}".format(fmt[i:i + 8]))
                if mo.group("conv") == "%":
                    l_pattern.append(re.escape("%"))
                    i = mo.end()
                    continue
                pattern, i = self._conversion_pattern(mo, fmt, mo.end())
                if need_groups:
                    l_pattern.append(r"(" + pattern + r")")
                else:
                    l_pattern.append(r"(?:" + pattern + r")")
            elif c.isspace():
                mo = self._re_space.match(fmt, i)
                l_pattern.append(r"\s+")
                i = mo.end()
            else:
                l_pattern.append(re.escape(c))
                i += 1

        restr = "".join(l_pattern)
        if len(restr) > maxlen:
            raise FormatCompileError(
                "regex text exceeds {0} characters".format(maxlen))
        return restr


class ExternalFormatCompiler(FormatCompiler):
    """Converter delegating to an external helper program.

    The helper is invoked as :samp:`{command} {maxlen} {format} {0|1}`
    (without a shell), and prints one line of regex text,
    or the literal string "regex parser failure".

    Args:
        command (str, optional): helper program name or path.
    """

    def __init__(self, command="regex_converter"):
        self._command = command

    def convert(self, maxlen, fmt, need_groups):
        args = [self._command, str(maxlen), fmt, "1" if need_groups else "0"]
        try:
            proc = subprocess.run(args, stdout=subprocess.PIPE,
                                  stderr=subprocess.PIPE,
                                  universal_newlines=True, check=False)
        except OSError as e:
            raise FormatCompileError(
                "cannot create regex text, {0} may not be installed: {1}".format(
                    self._command, e))
        lines = proc.stdout.splitlines()
        restr = lines[0] if lines else ""
        if restr == "" or restr == REGEX_PARSER_FAILURE:
            raise FormatCompileError("cannot create regex text from format")
        return restr[:maxlen]


def strip_trailing_newline(full_format):
    """Strip one trailing newline from a format string.

    Returns:
        tuple: (format, newline_ok); newline_ok is False if
        the format has a newline that is not the last character.
    """
    nl = full_format.rfind("\n")
    if nl < 0:
        return full_format, True
    return full_format[:nl], nl == len(full_format) - 1


def compute_regex_text(prefix_format, fmt, need_groups, compiler,
                       maxlen=REGEX_MAXLEN):
    """Form the full format string by prepending the reporter's prefix,
    and generate the corresponding anchored regular expression text.

    Args:
        prefix_format (str): prefix format of the reporter.
        fmt (str): message format of the catalog entry.
        need_groups (bool): generate capture groups
            (needed if the reporter has prefix args).
        compiler (FormatCompiler): converter to use.
        maxlen (int, optional): maximum regex length.

    Returns:
        str: regex text :samp:`^...$`.

    Raises:
        FormatCompileError: on any failure.
    """
    full_format, newline_ok = strip_trailing_newline(prefix_format + fmt)
    if not newline_ok:
        raise FormatCompileError("in format string, newline is not last")
    restr = compiler.convert(maxlen, full_format, need_groups)
    restr = restr.rstrip("\n")
    _logger.debug("format %r -> regex %r", full_format, restr)
    return "^" + restr + "$"


def compile_regex(regex_text):
    """Compile regex text.

    Raises:
        FormatCompileError: if the text is not a valid regular expression.
    """
    try:
        return re.compile(regex_text)
    except re.error as e:
        raise FormatCompileError("cannot compile regex: {0}".format(e))


def init_compiler(name="builtin", command="regex_converter"):
    """Generate a :class:`FormatCompiler` by name
    ("builtin" or "external")."""
    if name == "builtin":
        return PrintfFormatCompiler()
    elif name == "external":
        return ExternalFormatCompiler(command)
    else:
        raise ValueError("unknown format compiler: {0}".format(name))
