# coding: utf-8

"""In-memory message catalog.

A :class:`Catalog` bundles three parts loaded from a catalog directory:

* :class:`ReporterCatalog`: logging functions (reporters), their aliases,
  and meta-reporters (unions of aliases).
* :class:`ExceptionCatalog`: catch-all explanations keyed by type.
* :class:`EventCatalog`: the message entries of all driver files,
  in catalog order.

The objects are built by :mod:`syslogela.grammar` and
:mod:`syslogela.load`; semantic errors found while building them
are reported to the :class:`LoadContext` of the file being read,
and do not stop the load.
"""

import logging
import os

from . import _common
from . import regex as regex_mod
from ._common import FormatCompileError

_logger = logging.getLogger(__name__)

# how the regex text of match variants is obtained
REGEX_COMPUTE = "compute"
REGEX_READ = "read"
REGEX_WRITE = "write"
REGEX_POLICIES = (REGEX_COMPUTE, REGEX_READ, REGEX_WRITE)

DEFAULT_PRIORITY = "L"


class LoadContext:
    """State shared by the objects built from one catalog file.

    Args:
        catalog (Catalog): catalog being populated.
        diag (:class:`~_common.Diagnostics`): error accumulator of the file.
        policy (str, optional): one of :data:`REGEX_POLICIES`.
        compiler (:class:`~regex.FormatCompiler`, optional):
            format converter, used unless policy is :data:`REGEX_READ`.
        copy (optional): writer of the regex-annotated copy
            of the file, in :data:`REGEX_WRITE` policy.
    """

    def __init__(self, catalog, diag, policy=REGEX_COMPUTE,
                 compiler=None, copy=None):
        self.catalog = catalog
        self.diag = diag
        self.policy = policy
        if compiler is None:
            compiler = regex_mod.PrintfFormatCompiler()
        self.compiler = compiler
        self.copy = copy
        self.lineno = 0
        self.regex_reported = False

    def error(self, msg):
        self.diag.error(msg, self.lineno)

    def warning(self, msg):
        self.diag.warning(msg, self.lineno)

    def lookup(self, name, table, member):
        """Look up an enumeration value, reporting unknown names.

        Returns:
            value in table, or None.
        """
        value = _common.lookup_name(name, table)
        if value is None:
            self.error("unrecognized value for {0}: {1}".format(member, name))
        return value


class FieldSet:
    """Statements seen in one catalog entry."""

    def __init__(self, ctx):
        self._ctx = ctx
        self._seen = set()

    def tally(self, name):
        if name in self._seen:
            self._ctx.error("{0} statement seen multiple times "
                            "in same catalog entry.".format(name))
        else:
            self._seen.add(name)

    def require(self, name):
        if name not in self._seen:
            self._ctx.error("{0} statement required but missing.".format(name))


class ReporterAlias:
    """A name under which a reporter is called, with its severity."""

    def __init__(self, name, severity=_common.LOG_SEV_UNKNOWN):
        self.name = name
        self.severity = severity
        self.reporter = None

    def __str__(self):
        return "{0}({1})".format(self.name, _common.severity_name(self.severity))


def _name_list(names):
    if names is None:
        return " [NONE]"
    return "".join(" " + str(n) for n in names)


class Reporter:
    """A logging function (e.g., dev_err) and the prefix it adds
    to every message.
    """

    def __init__(self, base_alias, ctx):
        self.name = base_alias.name
        self.base_alias = base_alias
        self.aliases = None
        self.from_kernel = False
        self.prefix_format = ""
        self.prefix_args = None
        self.device_arg = ""
        self._ctx = ctx
        self.fields = FieldSet(ctx)

    def set_source(self, source):
        self.fields.tally("source")
        value = self._ctx.lookup(source, _common.SOURCE_NAMES, "source")
        self.from_kernel = True if value is None else value

    def set_aliases(self, aliases):
        self.fields.tally("aliases")
        if self.aliases is None:
            self.aliases = aliases

    def set_prefix_format(self, fmt):
        self.fields.tally("prefix_format")
        self.prefix_format = fmt

    def set_prefix_args(self, args):
        self.fields.tally("prefix_args")
        if self.prefix_args is None:
            self.prefix_args = args

    def prefix_arg_exists(self, arg):
        return self.prefix_args is not None and arg in self.prefix_args

    def set_device_arg(self, arg):
        self.fields.tally("device_arg")
        self.device_arg = arg
        if arg != "none" and not self.prefix_arg_exists(arg):
            self._ctx.error("device_arg {0} not in prefix_args".format(arg))

    @property
    def has_prefix_args(self):
        return bool(self.prefix_args)

    def all_aliases(self):
        yield self.base_alias
        if self.aliases:
            yield from self.aliases

    def validate(self):
        if self.device_arg == "":
            if self.prefix_args:
                if self.prefix_arg_exists("device"):
                    self.device_arg = "device"
                else:
                    self._ctx.error('No "device" arg in prefix_args, '
                                    'so device_arg statement must specify '
                                    'a prefix arg or none.')
            else:
                self.device_arg = "none"

    def __str__(self):
        return "\n".join([
            "reporter: {0}".format(self.base_alias),
            "source: {0}".format("kernel" if self.from_kernel else "user"),
            "aliases:" + _name_list(self.aliases),
            'prefix_format: "{0}"'.format(self.prefix_format),
            "prefix_args:" + _name_list(self.prefix_args),
            "device_arg: {0}".format(self.device_arg),
        ]) + "\n"


class MetaReporter:
    """A named union of reporter aliases, for a message that
    can be logged by more than one reporter.
    """

    def __init__(self, name, ctx):
        self.name = name
        self.variant_names = None
        self.variants = []
        self._ctx = ctx
        self.fields = FieldSet(ctx)

    def set_variant_names(self, names):
        self.fields.tally("variants")
        if self.variant_names is None:
            self.variant_names = names

    @property
    def from_kernel(self):
        if len(self.variants) == 0:
            return False
        return self.variants[0].reporter.from_kernel

    def validate(self, reporters):
        self.fields.require("variants")
        if self.variant_names is None:
            return

        names_seen = set()
        for vname in self.variant_names:
            if vname in names_seen:
                self._ctx.error("duplicate name in variants list: " + vname)
                continue
            names_seen.add(vname)

            alias = reporters.find(vname)
            if alias is not None:
                self.variants.append(alias)
                continue
            nested = reporters.find_meta_reporter(vname)
            if nested is not None:
                # variants of a meta-reporter are always aliases
                self.variants.extend(nested.variants)
            else:
                self._ctx.error("unknown reporter: " + vname)

        origins = set(alias.reporter.from_kernel for alias in self.variants)
        if len(origins) > 1:
            self._ctx.error("meta_reporter variants "
                            "can't be from both kernel and user space.")

    def __str__(self):
        return "meta_reporter: {0}\nvariants:{1}\n".format(
            self.name, _name_list(self.variants))


class ReporterCatalog:
    """Reporters, their aliases and meta-reporters."""

    def __init__(self):
        self.reporters = []
        self.meta_reporters = []
        self._aliases = {}
        self._meta_map = {}

    def register_reporter(self, reporter, ctx):
        if reporter is None:
            return
        self.reporters.append(reporter)
        for alias in reporter.all_aliases():
            self.register_alias(alias, reporter, ctx)
        reporter.validate()

    def register_alias(self, alias, reporter, ctx):
        alias.reporter = reporter
        if alias.name in self._aliases:
            ctx.error("duplicate reporter name: " + alias.name)
        else:
            self._aliases[alias.name] = alias

    def register_meta_reporter(self, meta, ctx):
        if meta is None:
            return
        meta.validate(self)
        if self.find(meta.name) or self.find_meta_reporter(meta.name):
            ctx.error("meta_reporter name already in use: " + meta.name)
        else:
            self._meta_map[meta.name] = meta
            self.meta_reporters.append(meta)

    def find(self, name):
        """Find a reporter alias by name, or None."""
        return self._aliases.get(name)

    def find_meta_reporter(self, name):
        return self._meta_map.get(name)

    def __len__(self):
        return len(self._aliases)


class ExceptionMsg:
    """Explanation shared by all messages of an exception type."""

    def __init__(self, type_name, description, action):
        self.type = type_name
        self.description = description
        self.action = action

    def __repr__(self):
        return "ExceptionMsg({0!r})".format(self.type)


class ExceptionCatalog:

    def __init__(self):
        self._exceptions = {}

    def add(self, type_name, description, action, ctx):
        if type_name in self._exceptions:
            ctx.error("multiple entries for exception " + type_name)
        else:
            self._exceptions[type_name] = ExceptionMsg(
                type_name, description, action)

    def find(self, type_name):
        return self._exceptions.get(type_name)

    def __len__(self):
        return len(self._exceptions)

    def __iter__(self):
        return iter(self._exceptions.values())


def resolve_severity(alias, msg_severity, ctx):
    """The severity should be implied by the reporter alias or
    specified in the message statement, but not both.

    Returns:
        int: the effective severity.
    """
    reporter_sev = alias.severity
    unknown = _common.LOG_SEV_UNKNOWN
    if reporter_sev == unknown and msg_severity == unknown:
        ctx.error("message statement must specify severity because "
                  "reporter {0} does not.".format(alias.name))
        return unknown
    elif reporter_sev != unknown and msg_severity != unknown:
        ctx.error("reporter {0} specifies severity, so message statement "
                  "should not.".format(alias.name))
        if reporter_sev != msg_severity:
            ctx.error("severity specified by message statement conflicts "
                      "with severity specified by reporter {0}".format(
                          alias.name))
        return reporter_sev
    elif reporter_sev == unknown:
        return msg_severity
    else:
        return reporter_sev


class MatchVariant:
    """The regular expression matching one catalog message
    as logged through one reporter alias.

    Unless the regex text is read from a precompiled catalog,
    it is computed from the reporter's prefix format and the
    message format when the variant is created.
    """

    def __init__(self, alias, msg_severity, event, ctx):
        self.reporter_alias = alias
        self.event = event
        self.severity = resolve_severity(alias, msg_severity, ctx)
        self.regex_text = ""
        self.regex = None
        if ctx.policy != REGEX_READ:
            self._compute(ctx)
            if ctx.copy is not None and self.regex_text:
                stmt = 'regex {0} "{1}"\n'.format(
                    alias.name, _common.add_escapes(self.regex_text))
                ctx.copy.inject_text(stmt, ctx.lineno)

    @property
    def reporter(self):
        return self.reporter_alias.reporter

    def _compute(self, ctx):
        reporter = self.reporter
        try:
            self.regex_text = regex_mod.compute_regex_text(
                reporter.prefix_format, self.event.format,
                reporter.has_prefix_args, ctx.compiler)
        except FormatCompileError as e:
            ctx.error(str(e))
            return
        self._compile(ctx)

    def _compile(self, ctx):
        try:
            self.regex = regex_mod.compile_regex(self.regex_text)
        except FormatCompileError as e:
            self.regex = None
            ctx.error(str(e))

    def set_regex(self, regex_text, ctx):
        """Take the regex text from a regex statement."""
        if ctx.policy == REGEX_READ:
            self.regex_text = regex_text
            self._compile(ctx)
        elif ctx.policy == REGEX_WRITE:
            if not ctx.regex_reported:
                ctx.error("Adding regex statements to file "
                          "that already has them.")
                ctx.regex_reported = True

    def match(self, message, want_prefix_args):
        """Test the message body against this variant.

        If want_prefix_args is true and the reporter has prefix args,
        the captured values are stored in message.prefix_args,
        and the driver's message filters are applied.

        Returns:
            bool
        """
        if self.regex is None:
            return False
        mo = self.regex.match(message.message)
        if mo is None:
            return False
        reporter = self.reporter
        if want_prefix_args and reporter.has_prefix_args:
            ngroups = self.regex.groups
            for i, arg_name in enumerate(reporter.prefix_args):
                # group 0 is the whole line
                value = mo.group(i + 1) if i < ngroups else None
                message.prefix_args[arg_name] = value if value is not None else ""
            if not self.event.driver.message_passes_filters(message):
                # from a different driver, perhaps
                message.prefix_args.clear()
                return False
        return True

    def report(self, sole_variant):
        if sole_variant:
            indent = ""
            lines = []
        else:
            indent = "  "
            lines = ["variant: " + self.reporter_alias.name]
        lines.append("{0}regex_text: {1}".format(indent, self.regex_text))
        lines.append("{0}severity: {1}".format(
            indent, _common.severity_name(self.severity)))
        return "\n".join(lines) + "\n"


class SyslogEvent:
    """A catalog message: a format string logged by a reporter,
    with the explanation and servicelog attributes of the message.
    """

    def __init__(self, reporter_name, sev_name, fmt, driver, ctx):
        self.reporter_name = reporter_name
        self.format = fmt
        self.escaped_format = _common.add_escapes(fmt)
        self.driver = driver
        self.source_file = driver.cur_source_file
        self.description = ""
        self.action = ""
        self.err_class = _common.SYCL_UNKNOWN
        self.err_type = _common.SYTY_BOGUS
        self.sl_severity = 0
        self.refcode = ""
        self.priority = DEFAULT_PRIORITY
        self.exception_msg = None
        self.matched_variant = None
        self.lineno = ctx.lineno
        self._ctx = ctx
        self.fields = FieldSet(ctx)
        self.match_variants = []
        self._mk_match_variants(reporter_name, sev_name, ctx)
        if self.match_variants:
            self.from_kernel = self.match_variants[0].reporter.from_kernel
        else:
            self.from_kernel = False

    def _mk_match_variants(self, reporter_name, sev_name, ctx):
        if sev_name == "":
            msg_severity = _common.LOG_SEV_UNKNOWN
        elif sev_name == "default":
            # printk without KERN_* uses default_message_loglevel,
            # i.e., KERN_WARNING in practice
            msg_severity = _common.LOG_WARNING
        else:
            msg_severity = ctx.lookup(sev_name, _common.SEVERITY_NAMES,
                                      "severity level")
            if msg_severity is None:
                msg_severity = _common.LOG_SEV_UNKNOWN

        reporters = ctx.catalog.reporters
        alias = reporters.find(reporter_name)
        if alias is not None:
            self.match_variants.append(
                MatchVariant(alias, msg_severity, self, ctx))
            return
        meta = reporters.find_meta_reporter(reporter_name)
        if meta is not None:
            for alias in meta.variants:
                self.match_variants.append(
                    MatchVariant(alias, msg_severity, self, ctx))
        else:
            ctx.error("logging function not found in reporter catalog: "
                      + reporter_name)

    @property
    def is_exception(self):
        return self.exception_msg is not None

    def set_exception(self, type_name):
        self.exception_msg = self._ctx.catalog.exceptions.find(type_name)
        if self.exception_msg is None:
            self._ctx.error("unknown exception type: " + type_name)

    def paste_copies(self, text):
        """Replace each "@paste name" in text with the
        driver's text copy of that name."""
        paste = "@paste "
        i = 0
        while i < len(text):
            i = text.find(paste, i)
            if i < 0:
                break
            start = i + len(paste)
            j = start
            while j < len(text) and (text[j].isalnum() or text[j] == "_"):
                j += 1
            if j == start:
                self._ctx.error("malformed @paste")
                return text
            name = text[start:j]
            copy = self.driver.find_text_copy(name)
            if copy is None:
                self._ctx.error("cannot find text copy to paste: " + name)
                return text
            text = text[:i] + copy + text[j:]
            i += len(copy)
        return text

    def set_description(self, text):
        self.fields.tally("description")
        self.description = self.paste_copies(text)

    def set_action(self, text):
        self.fields.tally("action")
        self.action = self.paste_copies(text)

    def set_class(self, name):
        self.fields.tally("class")
        value = self._ctx.lookup(name, _common.CLASS_NAMES, "class")
        self.err_class = _common.SYCL_UNKNOWN if value is None else value

    def set_type(self, name):
        self.fields.tally("type")
        value = self._ctx.lookup(name, _common.TYPE_NAMES, "type")
        self.err_type = _common.SYTY_UNKNOWN if value is None else value

    def set_sl_severity(self, name):
        self.fields.tally("sl_severity")
        value = self._ctx.lookup(name, _common.SL_SEVERITY_NAMES, "sl_severity")
        self.sl_severity = 0 if value is None else value

    def set_refcode(self, refcode):
        self.fields.tally("refcode")
        self.refcode = refcode

    def set_priority(self, name):
        self.fields.tally("priority")
        value = self._ctx.lookup(name, _common.PRIORITY_NAMES, "priority")
        self.priority = "" if value is None else value

    def set_regex(self, alias_name, regex_text):
        for variant in self.match_variants:
            if variant.reporter_alias.name == alias_name:
                variant.set_regex(regex_text, self._ctx)
                return
        self._ctx.error("regex statement: reporter {0} is not associated "
                        "with this message.".format(alias_name))

    def verify_complete(self):
        if self.exception_msg is None:
            self.fields.require("description")
            self.fields.require("action")
            self.fields.require("class")
            if bool(self.err_type) == bool(self.sl_severity):
                self._ctx.error("You must specify either type or "
                                "sl_severity, but not both.")
        for variant in self.match_variants:
            if not variant.regex_text:
                self._ctx.error(
                    "Catalog doesn't provide regex for this message "
                    "(reporter {0}) and it can't be computed.".format(
                        variant.reporter_alias.name))

    def match(self, message, want_prefix_args=True):
        """Match a parsed message against the variants of this event,
        in declaration order. The first matching variant wins
        and is also recorded as :attr:`matched_variant`.

        Returns:
            :class:`MatchVariant` or None.
        """
        self.matched_variant = None
        if not message.parsed:
            return None
        if message.from_kernel != self.from_kernel:
            return None
        for variant in self.match_variants:
            if variant.match(message, want_prefix_args):
                self.matched_variant = variant
                break
        return self.matched_variant

    def get_severity(self):
        if self.matched_variant is not None:
            return self.matched_variant.severity
        if self.match_variants:
            return self.match_variants[0].severity
        return _common.LOG_SEV_UNKNOWN

    @property
    def explanation(self):
        """(description, action), from the exception if any."""
        if self.exception_msg is not None:
            return self.exception_msg.description, self.exception_msg.action
        return self.description, self.action

    def __str__(self):
        lines = ['message: {0} "{1}"'.format(self.reporter_name,
                                             self.escaped_format)]
        buf = "\n".join(lines) + "\n"
        sole_variant = len(self.match_variants) == 1
        for variant in self.match_variants:
            buf += variant.report(sole_variant)

        lines = ["subsystem: " + self.driver.subsystem]
        if self.source_file is not None:
            lines.append('file: "{0}"'.format(self.source_file))
        if self.exception_msg is not None:
            lines.append("exception: " + self.exception_msg.type)
            return buf + "\n".join(lines) + "\n"
        lines += ["description {{", self.description, "}}",
                  "action {{", self.action, "}}",
                  "class: " + _common.lookup_value(self.err_class,
                                                   _common.CLASS_NAMES)]
        if self.err_type:
            lines.append("type: " + _common.lookup_value(
                self.err_type, _common.TYPE_NAMES))
        else:
            lines.append("sl_severity: " + _common.lookup_value(
                self.sl_severity, _common.SL_SEVERITY_NAMES))
        if self.priority:
            lines.append("priority: " + self.priority)
        lines.append('refcode: "{0}"'.format(self.refcode))
        return buf + "\n".join(lines) + "\n"

    def __repr__(self):
        return "SyslogEvent({0!r}, {1!r})".format(self.reporter_name,
                                                  self.format)


class MessageFilter:
    """A message passes the filter if it has no prefix arg of this
    name, or the arg has the required value."""

    def __init__(self, arg_name, op, arg_value, ctx):
        if op != "=":
            ctx.error("filter op must be '='")
        self.arg_name = arg_name
        self.arg_value = arg_value

    def message_passes_filter(self, message):
        value = message.prefix_args.get(self.arg_name)
        return value is None or value == self.arg_value


class DevspecMacro:
    """Template of the path of a sysfs devspec node,
    e.g., :samp:`/sys/bus/pci/devices/$device/devspec`.
    """

    _final = "/devspec"

    def __init__(self, name, path, ctx):
        self.name = name
        self.path = path
        self.valid = False
        self.prefix = ""
        self.suffix = ""
        embedded_name = "/$" + name + "/"
        pos1 = path.find(embedded_name)
        if pos1 < 0:
            ctx.error("could not find ${0} component of {1}".format(name, path))
            return
        if not path.endswith(self._final):
            ctx.error("devspec is not final component of " + path)
            return
        self.prefix = path[:pos1 + 1]
        self.suffix = path[pos1 + len(embedded_name) - 1:]
        self.valid = True

    def get_devspec_path(self, device_id):
        if not self.valid:
            return ""
        return self.prefix + device_id + self.suffix


class EventCtlgFile:
    """One driver catalog file.

    Args:
        path (str): path of the catalog file.
        subsystem (str, optional): subsystem tag of the driver.
    """

    def __init__(self, path, subsystem=""):
        self.path = path
        self.name = os.path.basename(path)
        self.subsystem = subsystem
        self.text_copies = {}
        self.devspec_macros = {}
        self.filters = []
        self.source_files = []
        self.cur_source_file = None
        self.events = []

    def add_text_copy(self, name, text, ctx):
        if name in self.text_copies:
            ctx.error("duplicate name for text copy: " + name)
        else:
            self.text_copies[name] = text

    def find_text_copy(self, name):
        return self.text_copies.get(name)

    def add_devspec(self, name, path, ctx):
        macro = DevspecMacro(name, path, ctx)
        if not macro.valid:
            return
        if name in self.devspec_macros:
            ctx.error("duplicate devspec entry for " + name)
        else:
            self.devspec_macros[name] = macro

    def find_devspec(self, name):
        return self.devspec_macros.get(name)

    def add_filter(self, msg_filter):
        self.filters.append(msg_filter)

    def message_passes_filters(self, message):
        return all(f.message_passes_filter(message) for f in self.filters)

    def set_source_file(self, path):
        self.cur_source_file = path
        self.source_files.append(path)

    def __repr__(self):
        return "EventCtlgFile({0!r}, {1!r})".format(self.path, self.subsystem)


class EventCatalog:
    """Driver files and their events, in catalog order."""

    def __init__(self):
        self.drivers = []
        self.events = []

    def register_driver(self, driver):
        if driver is not None:
            self.drivers.append(driver)

    def register_event(self, event):
        if event is None:
            return
        self.events.append(event)
        event.driver.events.append(event)
        event.verify_complete()

    def __len__(self):
        return len(self.events)

    def __iter__(self):
        return iter(self.events)


class Catalog:
    """The whole message catalog, as returned by
    :func:`syslogela.load.load`.

    Attributes:
        reporters (ReporterCatalog)
        exceptions (ExceptionCatalog)
        events (EventCatalog)
        errors (int): number of semantic errors found while loading.
        diagnostics (list of :class:`~_common.Diagnostics`):
            errors and warnings per catalog file.
    """

    def __init__(self, directory=None):
        self.directory = directory
        self.reporters = ReporterCatalog()
        self.exceptions = ExceptionCatalog()
        self.events = EventCatalog()
        self.diagnostics = []

    @property
    def errors(self):
        return sum(diag.count for diag in self.diagnostics)

    def dump(self):
        """Render reporters, meta-reporters and events
        in catalog syntax, separated with "-----" lines."""
        buf = []
        for reporter in self.reporters.reporters:
            buf.append("-----\n" + str(reporter))
        for meta in self.reporters.meta_reporters:
            buf.append("-----\n" + str(meta))
        for event in self.events:
            buf.append("-----\n" + str(event))
        return "".join(buf)
