# coding: utf-8

"""Streaming syslog lines through the catalog.

:class:`LineReader` reads lines of limited length from a file or stream,
optionally following the file as it grows.
:class:`Ingester` parses and classifies each line, skipping lines
before the bookmark or outside the date window, and passes matches
to its subclasses: :class:`Explainer` prints explanations,
and :class:`SvcLogger` appends service events to a store.
"""

import logging
import os
import sys
import time

from . import date
from . import servicelog
from . import vpd as vpd_mod
from ._common import ConfigError, ServiceLogError, indent_text_block, severity_name
from .classify import Classifier
from .message import SyslogMessage

_logger = logging.getLogger(__name__)

EXPLAIN_LINE_SIZE = 256
SVCLOG_LINE_SIZE = 512
FOLLOW_INTERVAL = 2

BOOKMARK_PATH = "/var/log/ppc64-diag/last_syslog_event"
BOOKMARK_LINE_SIZE = SVCLOG_LINE_SIZE

STATE_SKIPPING = "skipping"
STATE_STREAMING = "streaming"


class LineReader:
    """Iterator of the lines of a message file.

    A line is read with at most size-1 characters.
    A longer line is truncated to size-2 characters and a line feed,
    and the rest of it is discarded as a fragment.

    In follow mode, the reader waits for new lines at the end of file,
    and reopens the file when it is rotated or truncated.
    An incomplete last line is kept until its line feed arrives.

    Args:
        path (str, optional): message file.
        stream (file object, optional): used if path is not given
            (e.g., stdin).
        size (int, optional): line buffer size.
        follow (bool, optional): follow the file; needs path.
        interval (float, optional): polling interval in seconds.
        should_stop (callable, optional): polled at end of file
            in follow mode; returning True ends the iteration.
    """

    def __init__(self, path=None, stream=None, size=EXPLAIN_LINE_SIZE,
                 follow=False, interval=FOLLOW_INTERVAL, should_stop=None,
                 sleep=time.sleep):
        if path is None and stream is None:
            stream = sys.stdin
        if follow and path is None:
            raise ConfigError("cannot follow messages from stdin")
        if size < 3:
            raise ValueError("line size too small: {0}".format(size))
        self.path = path
        self.stream = stream
        self.size = size
        self.follow = follow
        self.interval = interval
        self._should_stop = should_stop
        self._sleep = sleep
        self.truncated = 0
        self.fragments = 0

    def open(self):
        """Open the message file.

        Raises:
            OSError: if the file cannot be opened.
        """
        if self.path is None:
            return self.stream
        return open(self.path, "r", errors="replace")

    def __iter__(self):
        f = self.open()
        try:
            prev_truncated = False
            for line in self._raw_lines(f):
                truncated = False
                if len(line) >= self.size - 1 and not line.endswith("\n"):
                    # e.g., syslog-ng statistics
                    _logger.debug("message truncated to %d characters",
                                  self.size - 1)
                    line = line[:self.size - 2] + "\n"
                    truncated = True
                    self.truncated += 1
                skip_fragment = prev_truncated
                prev_truncated = truncated
                if skip_fragment:
                    self.fragments += 1
                    continue
                yield line
        finally:
            if self.path is not None:
                f.close()

    def _raw_lines(self, f):
        if not self.follow:
            while True:
                line = f.readline(self.size - 1)
                if line == "":
                    return
                yield line

        orig = f
        pending = ""
        try:
            while True:
                line = pending + f.readline(self.size - 1 - len(pending))
                if line.endswith("\n") or len(line) >= self.size - 1:
                    pending = ""
                    yield line
                    continue
                pending = line
                if self._should_stop is not None and self._should_stop():
                    if pending:
                        yield pending
                    return
                self._sleep(self.interval)
                reopened = self._check_rotation(f)
                if reopened is not None:
                    if pending:
                        _logger.debug("incomplete line dropped on rotation: %r",
                                      pending)
                    pending = ""
                    if f is not orig:
                        f.close()
                    f = reopened
        finally:
            # the first file is closed by the caller
            if f is not orig:
                f.close()

    def _check_rotation(self, f):
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            # not recreated yet
            return None
        if st.st_ino != os.fstat(f.fileno()).st_ino or st.st_size < f.tell():
            _logger.debug("%s rotated or truncated, reopening", self.path)
            try:
                return self.open()
            except OSError as e:
                _logger.debug("cannot reopen %s: %s", self.path, e)
        return None


class Bookmark:
    """The last matched line of the message file,
    to resume from on the next run.

    Args:
        path (str): bookmark file.
        backup_path (str, optional): backup of the previous bookmark,
            defaults to path + ".bak".
        size (int, optional): line buffer size, the same as the one
            of the lines that are bookmarked.
    """

    def __init__(self, path=BOOKMARK_PATH, backup_path=None,
                 size=BOOKMARK_LINE_SIZE):
        self.path = path
        self.size = size
        if backup_path is None:
            backup_path = path + ".bak"
        self.backup_path = backup_path

    def _read(self, path):
        try:
            with open(path, "r", errors="replace") as f:
                return f.readline(self.size - 1)
        except FileNotFoundError:
            return None
        except OSError as e:
            _logger.debug("cannot read bookmark %s: %s", path, e)
            return None

    def load(self, now=None):
        """Read the bookmarked line.

        If the bookmark is missing or has no valid date, e.g., after
        a crash in :meth:`save`, the previous bookmark is read from
        the backup instead.

        Returns:
            str: the line, or None if there is no bookmark.

        Raises:
            ConfigError: if the bookmark has no valid date
                and no valid backup exists.
        """
        line = self._read(self.path)
        if line is not None and date.parse_syslog_date(line, now=now) is not None:
            return line

        backup = self._read(self.backup_path)
        if backup is not None and \
                date.parse_syslog_date(backup, now=now) is not None:
            _logger.debug("bookmark %s unusable, using backup %s",
                          self.path, self.backup_path)
            return backup
        if line is None:
            return None
        raise ConfigError("Cannot read date from {0}".format(self.path))

    def _write(self, path, data):
        with open(path, "w") as f:
            f.write(data)

    def save(self, line):
        """Replace the bookmark with line, keeping a backup of the
        previous one. If writing fails, the backup is restored.

        Returns:
            bool: True if saved.
        """
        try:
            os.rename(self.path, self.backup_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            _logger.debug("can't rename %s to %s: %s",
                          self.path, self.backup_path, e)
            return False
        try:
            self._write(self.path, line)
            return True
        except OSError as e:
            _logger.debug("cannot write bookmark %s: %s", self.path, e)
        try:
            os.rename(self.backup_path, self.path)
        except OSError as e:
            _logger.debug("can't recover %s from %s: %s",
                          self.path, self.backup_path, e)
        return False


class Ingester:
    """Classify a stream of syslog lines.

    If begin is given, lines before begin are skipped; in addition,
    if bookmark_line is given (and no explicit begin), lines are skipped
    through the bookmarked line. The lines after it are not checked
    against its date.
    Lines dated at or after end are skipped.

    Subclasses receive the results via :meth:`handle_match`
    and :meth:`handle_unrecognized`.

    Args:
        catalog (:class:`~catalog.Catalog`): loaded catalog.
        begin (datetime.datetime, optional)
        end (datetime.datetime, optional)
        bookmark_line (str, optional): last matched line of the previous run.
        all_matches (bool, optional): handle every matching event
            of a line instead of the first one.
        now (datetime.datetime, optional): reference time of
            timestamp year inference.
    """

    def __init__(self, catalog, begin=None, end=None, bookmark_line=None,
                 all_matches=False, now=None):
        self.classifier = Classifier(catalog)
        self.end = end
        self.all_matches = all_matches
        self.now = now
        self.bookmark_line = None
        # only an explicit begin bounds the lines after the skipped ones
        self.window_begin = begin
        if begin is None and bookmark_line:
            ret = date.parse_syslog_date(bookmark_line, now=now)
            if ret is None:
                raise ConfigError("Cannot read date from bookmark")
            begin = ret[0]
            self.bookmark_line = bookmark_line.rstrip("\n")
        self.begin = begin
        self.state = STATE_SKIPPING if begin is not None else STATE_STREAMING
        self.stats = {"lines": 0, "old": 0, "unparsed": 0,
                      "out_of_window": 0, "unrecognized": 0, "matched": 0}

    def _is_old_message(self, line):
        ret = date.parse_syslog_date(line, now=self.now)
        if ret is None or ret[0] < self.begin:
            return True
        if ret[0] == self.begin and self.bookmark_line:
            if line.rstrip("\n") == self.bookmark_line:
                # the last one to skip
                self.state = STATE_STREAMING
            return True
        self.state = STATE_STREAMING
        return False

    def _in_window(self, message):
        if self.window_begin is not None and message.date < self.window_begin:
            return False
        if self.end is not None and message.date >= self.end:
            return False
        return True

    def process_line(self, line):
        """Classify one line.

        Returns:
            list of :class:`~classify.Match`: handled matches.
        """
        self.stats["lines"] += 1
        if self.state == STATE_SKIPPING and self._is_old_message(line):
            self.stats["old"] += 1
            return []

        message = SyslogMessage(line, now=self.now)
        if not message.parsed:
            _logger.debug("unparsed message: %s", line.rstrip("\n"))
            self.stats["unparsed"] += 1
            self.handle_unrecognized(line, message)
            return []
        if not self._in_window(message):
            self.stats["out_of_window"] += 1
            return []

        if self.all_matches:
            l_match = []
            for match in self.classifier.matches(message):
                l_match.append(match)
                self.handle_match(line, message, match)
        else:
            match = self.classifier.classify(message)
            l_match = [match] if match is not None else []
            if match is not None:
                self.handle_match(line, message, match)
        if l_match:
            self.stats["matched"] += 1
        else:
            self.stats["unrecognized"] += 1
            self.handle_unrecognized(line, message)
        return l_match

    def run(self, lines):
        """Process all lines, then :meth:`finish`.

        Returns:
            dict: counters of processed lines.
        """
        for line in lines:
            self.process_line(line)
        self.finish()
        return self.stats

    def handle_match(self, line, message, match):
        pass

    def handle_unrecognized(self, line, message):
        pass

    def finish(self):
        pass


class Explainer(Ingester):
    """Print the explanation of every recognized message.

    Args:
        catalog (:class:`~catalog.Catalog`)
        out (file object, optional): defaults to stdout.
        **kwargs: see :class:`Ingester`.
    """

    def __init__(self, catalog, out=None, **kwargs):
        super().__init__(catalog, **kwargs)
        self._out = out if out is not None else sys.stdout
        self.skipped = 0

    def _flush_skipped(self):
        if self.skipped > 0:
            self._out.write("\n[Skipped {0} unrecognized messages]\n".format(
                self.skipped))
            self.skipped = 0

    def handle_unrecognized(self, line, message):
        self.skipped += 1

    def handle_match(self, line, message, match):
        self._flush_skipped()
        self._out.write(self.report(line, message, match))

    def finish(self):
        self._flush_skipped()

    @staticmethod
    def report(line, message, match):
        event = match.event
        reporter = match.variant.reporter
        if not line.endswith("\n"):
            line += "\n"
        buf = ["\n", line,
               'matches: {0} "{1}"\n'.format(event.reporter_name,
                                             event.escaped_format)]
        if match.prefix_args:
            buf.append("  ".join("{0}={1}".format(name, match.prefix_args.get(name, ""))
                                 for name in reporter.prefix_args) + "\n")
            message.prefix_args = dict(match.prefix_args)
            if message.set_devspec_path(event):
                buf.append("devspec: {0}\n".format(message.devspec_path))
        buf.append("subsystem: {0}\n".format(event.driver.subsystem))
        buf.append("severity: {0}\n".format(severity_name(match.variant.severity)))
        if event.source_file is not None:
            buf.append('file: "{0}"\n'.format(event.source_file))
        description, action = event.explanation
        buf.append("description:\n{0}\n".format(indent_text_block(description, 2)))
        buf.append("action:\n{0}\n".format(indent_text_block(action, 2)))
        return "".join(buf)


class SvcLogger(Ingester):
    """Append a service event for every recognized message
    that is neither a catch-all nor informational.

    Args:
        catalog (:class:`~catalog.Catalog`)
        store (:class:`~servicelog.ServiceLog`): opened store.
        bookmark (:class:`Bookmark`, optional): saved on every match.
        vpd (:class:`~vpd.VpdLookup`, optional)
        devtree_root (str, optional)
        **kwargs: see :class:`Ingester`.
    """

    def __init__(self, catalog, store, bookmark=None, vpd=None,
                 devtree_root=vpd_mod.DEFAULT_DEVTREE_ROOT, **kwargs):
        super().__init__(catalog, **kwargs)
        self.store = store
        self.bookmark = bookmark
        self.vpd = vpd if vpd is not None else vpd_mod.NullVpd()
        self.devtree_root = devtree_root
        self.logged = []

    def handle_match(self, line, message, match):
        if self.bookmark is not None:
            self.bookmark.save(line)
        event = match.event
        if event.is_exception:
            return
        if servicelog.is_informational(event, match.variant.severity):
            return
        callout = vpd_mod.resolve_callout(event, message, self.vpd,
                                          self.devtree_root)
        sl_event = servicelog.ServiceEvent.create(match, message, callout)
        try:
            event_id = self.store.append(sl_event)
        except ServiceLogError as e:
            _logger.error("%s", e)
            return
        self.logged.append(event_id)
        _logger.debug("servicelog event %s: %s", event_id, event)
