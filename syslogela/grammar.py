# coding: utf-8

"""Reader of catalog files.

A catalog file is a sequence of entries, each starting with
an entry keyword and followed by the statements of the entry.
The colon after a keyword is optional::

    reporter: dev_printk(unknown)
    source: kernel
    aliases: dev_err(err) dev_warn(warning)
    prefix_format: "%s %s: "
    prefix_args: driver device

    subsystem: net
    message: dev_err "link down\\n"
    description {{ The link went down. }}
    action {{ Check the cable. }}
    class: hardware
    type: perm

Tokens are names, quoted strings (with C escapes),
text blocks enclosed in ``{{`` and ``}}``, operators
and the punctuations ``( ) [ ] :``.
``/* ... */`` comments are skipped.

Syntax errors are reported with file and line; the entry being
parsed is dropped and parsing resumes at the next entry keyword.
Semantic errors are reported through the :class:`~catalog.LoadContext`.
"""

import logging
import re
from collections import namedtuple

from . import _common
from . import catalog

_logger = logging.getLogger(__name__)

NAME = "name"
STRING = "string"
TEXT = "text"
OP = "op"
PUNCT = "punct"
EOF = "eof"

Token = namedtuple("Token", ["kind", "value", "lineno", "end_lineno"])

REPORTER_ENTRY_KEYWORDS = ("reporter", "meta_reporter")
REPORTER_FIELD_KEYWORDS = ("source", "aliases", "prefix_format",
                           "prefix_args", "device_arg", "variants")
EVENT_ENTRY_KEYWORDS = ("subsystem", "file", "filter", "devspec", "@copy",
                        "message", "exception")
EVENT_FIELD_KEYWORDS = ("description", "action", "class", "type",
                        "sl_severity", "refcode", "priority", "regex")
KEYWORDS = frozenset(REPORTER_ENTRY_KEYWORDS + REPORTER_FIELD_KEYWORDS
                     + EVENT_ENTRY_KEYWORDS + EVENT_FIELD_KEYWORDS)

_CHAR_ESCAPES = {"'": "'", '"': '"', "?": "?", "\\": "\\",
                 "a": "\a", "b": "\b", "f": "\f", "n": "\n",
                 "r": "\r", "t": "\t", "v": "\v"}

_re_name = re.compile(r"@?[A-Za-z_][A-Za-z0-9_\-.]*")
_re_op = re.compile(r"[=!<>]+")
_re_octal = re.compile(r"[0-7]{1,3}")


class CatalogSyntaxError(Exception):
    """Raised inside the parser to abandon the current entry."""

    def __init__(self, msg, lineno):
        super().__init__(msg)
        self.lineno = lineno


class Scanner:
    """Split the text of a catalog file into tokens.

    Args:
        text (str): content of a catalog file.
        diag (:class:`~_common.Diagnostics`): receives lexical errors.
    """

    def __init__(self, text, diag):
        self._text = text
        self._diag = diag
        self._pos = 0
        self._lineno = 1

    def _getc(self):
        if self._pos >= len(self._text):
            return ""
        c = self._text[self._pos]
        self._pos += 1
        if c == "\n":
            self._lineno += 1
        return c

    def _peekc(self, offset=0):
        i = self._pos + offset
        if i >= len(self._text):
            return ""
        return self._text[i]

    def tokens(self):
        """Returns:
            list of :class:`Token`, terminated by an EOF token.
        """
        l_tok = []
        while True:
            tok = self._next_token()
            l_tok.append(tok)
            if tok.kind == EOF:
                return l_tok

    def _next_token(self):
        while True:
            tok = self._scan_token()
            if tok is not None:
                return tok

    def _scan_token(self):
        while True:
            c = self._peekc()
            if c == "":
                return Token(EOF, "", self._lineno, self._lineno)
            if c.isspace():
                self._getc()
                continue
            if c == "/" and self._peekc(1) == "*":
                self._pos += 2
                if not self._skip_comment():
                    self._diag.error("end of file in comment", self._lineno)
                    return Token(EOF, "", self._lineno, self._lineno)
                continue
            break

        lineno = self._lineno
        if c == '"':
            self._getc()
            value = self._get_string()
            if value is None:
                self._diag.error("end of file in quoted string", lineno)
                return Token(EOF, "", self._lineno, self._lineno)
            return Token(STRING, value, lineno, self._lineno)
        if c == "{" and self._peekc(1) == "{":
            self._pos += 2
            value = self._get_text_block()
            if value is None:
                self._diag.error("end of file in text block", lineno)
                return Token(EOF, "", self._lineno, self._lineno)
            return Token(TEXT, value, lineno, self._lineno)
        if c in "()[]:":
            self._getc()
            return Token(PUNCT, c, lineno, lineno)

        mo = _re_name.match(self._text, self._pos)
        if mo:
            self._pos = mo.end()
            return Token(NAME, mo.group(), lineno, lineno)
        mo = _re_op.match(self._text, self._pos)
        if mo:
            self._pos = mo.end()
            return Token(OP, mo.group(), lineno, lineno)

        self._getc()
        self._diag.error("syntax error: unexpected character {0!r}".format(c),
                         lineno)
        return None

    def _get_string(self):
        # the opening quote has been consumed
        buf = []
        while True:
            c = self._getc()
            if c == "":
                return None
            elif c == '"':
                return "".join(buf)
            elif c == "\\":
                c = self._getc()
                if c == "":
                    return None
                elif c in "01234567":
                    mo = _re_octal.match(self._text, self._pos - 1)
                    self._pos = mo.end()
                    buf.append(chr(int(mo.group(), 8)))
                elif c == "\n":
                    # escaped newline is elided
                    pass
                else:
                    buf.append(_CHAR_ESCAPES.get(c, c))
            else:
                buf.append(c)

    def _skip_comment(self):
        # "/*" has been consumed
        orig_lineno = self._lineno
        while True:
            c = self._getc()
            if c == "":
                return False
            if c == "*" and self._peekc() == "/":
                self._getc()
                return True
            if c == "/" and self._peekc() == "*":
                self._getc()
                self._diag.warning(
                    "comment here nested inside comment starting "
                    "at line {0}".format(orig_lineno), self._lineno)

    def _get_text_block(self):
        # "{{" has been consumed
        buf = []
        while True:
            c = self._getc()
            if c == "":
                return None
            if c == "}":
                if self._peekc() == "}":
                    self._getc()
                    break
            buf.append(c)
        return "".join(buf).strip()


class _CatalogParserBase:

    entry_keywords = ()
    field_keywords = ()

    def __init__(self, tokens, ctx):
        self._tokens = tokens
        self._index = 0
        self.ctx = ctx

    def _peek(self):
        return self._tokens[self._index]

    def _next(self):
        tok = self._tokens[self._index]
        if tok.kind != EOF:
            self._index += 1
        return tok

    @staticmethod
    def _describe(tok):
        if tok.kind == EOF:
            return "end of file"
        elif tok.kind == TEXT:
            return "text block"
        elif tok.kind == STRING:
            return "string \"{0}\"".format(_common.add_escapes(tok.value))
        else:
            return repr(tok.value)

    def _syntax_error(self, expected, tok):
        raise CatalogSyntaxError("syntax error: expected {0}, got {1}".format(
            expected, self._describe(tok)), tok.lineno)

    def _expect(self, kind, value=None, expected=None):
        tok = self._next()
        if tok.kind != kind or (value is not None and tok.value != value):
            if expected is None:
                expected = repr(value) if value is not None else kind
            self._syntax_error(expected, tok)
        return tok

    def _expect_name(self, expected="name"):
        tok = self._next()
        if tok.kind != NAME or tok.value in KEYWORDS:
            self._syntax_error(expected, tok)
        return tok.value

    def _at_keyword(self, keywords):
        tok = self._peek()
        return tok.kind == NAME and tok.value in keywords

    def _at_punct(self, value):
        tok = self._peek()
        return tok.kind == PUNCT and tok.value == value

    def _keyword(self):
        """Consume a statement keyword and the optional colon after it."""
        tok = self._next()
        self.ctx.lineno = tok.lineno
        if self._at_punct(":"):
            self._next()
        return tok.value

    def _name_list(self):
        names = []
        while self._peek().kind == NAME and self._peek().value not in KEYWORDS:
            names.append(self._next().value)
        return names

    def _text(self):
        tok = self._next()
        if tok.kind not in (TEXT, STRING):
            self._syntax_error("text block", tok)
        return tok.value

    def _resync(self):
        while self._peek().kind != EOF:
            if self._at_keyword(self.entry_keywords):
                return
            self._next()

    def parse(self):
        """Parse all entries.

        Returns:
            int: number of syntax errors.
        """
        nerr = 0
        while self._peek().kind != EOF:
            try:
                if self._at_keyword(self.entry_keywords):
                    self._parse_entry(self._peek().value)
                else:
                    self._syntax_error("one of " + ", ".join(self.entry_keywords),
                                       self._peek())
            except CatalogSyntaxError as e:
                nerr += 1
                self.ctx.diag.error(str(e), e.lineno)
                if not self._at_keyword(self.entry_keywords):
                    self._next()
                self._resync()
        self._finish()
        return nerr

    def _parse_entry(self, keyword):
        raise NotImplementedError

    def _finish(self):
        pass


class ReporterCtlgParser(_CatalogParserBase):
    """Parser of the reporters file."""

    entry_keywords = REPORTER_ENTRY_KEYWORDS
    field_keywords = REPORTER_FIELD_KEYWORDS

    def _parse_entry(self, keyword):
        if keyword == "reporter":
            self._parse_reporter()
        else:
            self._parse_meta_reporter()

    def _alias(self):
        name = self._expect_name("reporter name")
        severity = _common.LOG_SEV_UNKNOWN
        if self._at_punct("("):
            self._next()
            sev_name = self._expect_name("severity")
            self._expect(PUNCT, ")")
            value = self.ctx.lookup(sev_name, _common.SEVERITY_NAMES,
                                    "severity level")
            if value is not None:
                severity = value
        return catalog.ReporterAlias(name, severity)

    def _alias_list(self):
        aliases = []
        while self._peek().kind == NAME and self._peek().value not in KEYWORDS:
            aliases.append(self._alias())
        return aliases

    def _parse_reporter(self):
        self._keyword()
        reporter = catalog.Reporter(self._alias(), self.ctx)
        while self._at_keyword(("source", "aliases", "prefix_format",
                                "prefix_args", "device_arg")):
            keyword = self._keyword()
            if keyword == "source":
                reporter.set_source(self._expect_name("kernel or user"))
            elif keyword == "aliases":
                reporter.set_aliases(self._alias_list())
            elif keyword == "prefix_format":
                reporter.set_prefix_format(self._expect(STRING).value)
            elif keyword == "prefix_args":
                reporter.set_prefix_args(self._name_list())
            else:
                reporter.set_device_arg(self._expect_name("prefix arg"))
        self.ctx.catalog.reporters.register_reporter(reporter, self.ctx)

    def _parse_meta_reporter(self):
        self._keyword()
        meta = catalog.MetaReporter(self._expect_name("meta_reporter name"),
                                    self.ctx)
        while self._at_keyword(("variants",)):
            self._keyword()
            meta.set_variant_names(self._name_list())
        self.ctx.catalog.reporters.register_meta_reporter(meta, self.ctx)


class EventCtlgParser(_CatalogParserBase):
    """Parser of the exceptions file and driver files.

    Args:
        tokens (list of :class:`Token`)
        ctx (:class:`~catalog.LoadContext`)
        driver (:class:`~catalog.EventCtlgFile`): the file being parsed.
    """

    entry_keywords = EVENT_ENTRY_KEYWORDS
    field_keywords = EVENT_FIELD_KEYWORDS

    def __init__(self, tokens, ctx, driver):
        super().__init__(tokens, ctx)
        self.driver = driver
        self.fields = catalog.FieldSet(ctx)
        self._exception_type = None

    def _parse_entry(self, keyword):
        if keyword == "subsystem":
            self._keyword()
            self.fields.tally("subsystem")
            self.driver.subsystem = self._expect_name("subsystem name")
        elif keyword == "file":
            self._keyword()
            self.driver.set_source_file(self._expect(STRING).value)
        elif keyword == "filter":
            self._parse_filter()
        elif keyword == "devspec":
            self._parse_devspec()
        elif keyword == "@copy":
            self._keyword()
            name = self._expect_name("text copy name")
            self.driver.add_text_copy(name, self._text(), self.ctx)
        elif keyword == "message":
            self._parse_message()
        else:
            self._parse_exception()

    def _parse_filter(self):
        self._keyword()
        name = self._expect_name("prefix arg")
        op = self._expect(OP, expected="operator").value
        value = self._expect(STRING).value
        self.driver.add_filter(catalog.MessageFilter(name, op, value, self.ctx))

    def _parse_devspec(self):
        self.ctx.lineno = self._next().lineno
        self._expect(PUNCT, "(")
        name = self._expect_name("prefix arg")
        self._expect(PUNCT, ")")
        self._expect(OP, "=")
        path = self._expect(STRING).value
        self.driver.add_devspec(name, path, self.ctx)

    def _parse_exception(self):
        self._keyword()
        type_name = self._expect_name("exception type")
        fields = catalog.FieldSet(self.ctx)
        lineno = self.ctx.lineno
        description = action = ""
        while self._at_keyword(("description", "action")):
            keyword = self._keyword()
            fields.tally(keyword)
            if keyword == "description":
                description = self._text()
            else:
                action = self._text()
        self.ctx.lineno = lineno
        fields.require("description")
        fields.require("action")
        self.ctx.catalog.exceptions.add(type_name, description, action,
                                        self.ctx)

    def _parse_message(self):
        self._keyword_with_exception()
        reporter_name = self._expect_name("reporter name")
        sev_name = ""
        if self._peek().kind == NAME and self._peek().value not in KEYWORDS:
            sev_name = self._next().value
        fmt_tok = self._expect(STRING, expected="format string")
        # regex statements of a catalog copy go after this line
        self.ctx.lineno = fmt_tok.end_lineno
        event = catalog.SyslogEvent(reporter_name, sev_name, fmt_tok.value,
                                    self.driver, self.ctx)
        if self._exception_type is not None:
            event.set_exception(self._exception_type)

        while self._at_keyword(self.field_keywords):
            keyword = self._keyword()
            if keyword == "description":
                event.set_description(self._text())
            elif keyword == "action":
                event.set_action(self._text())
            elif keyword == "class":
                event.set_class(self._expect_name("class"))
            elif keyword == "type":
                event.set_type(self._expect_name("type"))
            elif keyword == "sl_severity":
                event.set_sl_severity(self._expect_name("sl_severity"))
            elif keyword == "refcode":
                event.set_refcode(self._expect(STRING).value)
            elif keyword == "priority":
                event.set_priority(self._expect_name("priority"))
            else:
                alias_name = self._expect_name("reporter name")
                event.set_regex(alias_name, self._expect(STRING).value)
        self.ctx.lineno = event.lineno
        self.ctx.catalog.events.register_event(event)

    def _keyword_with_exception(self):
        # message[exception_type]:
        tok = self._next()
        self.ctx.lineno = tok.lineno
        self._exception_type = None
        if self._at_punct("["):
            self._next()
            self._exception_type = self._expect_name("exception type")
            self._expect(PUNCT, "]")
        if self._at_punct(":"):
            self._next()

    def _finish(self):
        if self.driver.events:
            self.fields.require("subsystem")


def parse_reporters(text, ctx):
    """Parse the content of a reporters file into ctx.catalog.

    Returns:
        int: number of syntax errors.
    """
    tokens = Scanner(text, ctx.diag).tokens()
    return ReporterCtlgParser(tokens, ctx).parse()


def parse_events(text, ctx, driver):
    """Parse the content of the exceptions file or a driver file.

    Returns:
        int: number of syntax errors.
    """
    tokens = Scanner(text, ctx.diag).tokens()
    return EventCtlgParser(tokens, ctx, driver).parse()
