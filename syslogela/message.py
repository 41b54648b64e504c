# coding: utf-8

import logging
import re

from . import date

_logger = logging.getLogger(__name__)

KERNEL_PREFIX = "kernel:"

# "[%5lu.%06lu] ", as used by printk() with CONFIG_PRINTK_TIME
_printk_timestamp = re.compile(r"^\[ {0,4}[0-9]+\.[0-9]{6}\] ")


def skip_printk_timestamp(msg):
    """If the message begins with what looks like a printk timestamp,
    skip past that.

    Returns:
        str: message without the timestamp.
    """
    if msg.startswith("["):
        mo = _printk_timestamp.match(msg)
        if mo:
            return msg[mo.end():]
    return msg


class SyslogMessage:
    """A line of text logged by syslog.

    The line is split into date, hostname, origin (kernel or user space)
    and the message body, which is matched against the catalog.
    If the line cannot be split, :attr:`parsed` is False
    and the other attributes are left empty.

    Example:
        >>> msg = SyslogMessage("Jan  5 10:22:01 host kernel: mydrv 0000:01:00.0: link down")
        >>> msg.hostname, msg.from_kernel, msg.message
        ('host', True, 'mydrv 0000:01:00.0: link down')

    Args:
        line (str): A log line; one trailing line feed is removed.
        now (datetime.datetime, optional): reference time
            for inferring the year of the timestamp.
    """

    def __init__(self, line, now=None):
        self.line = line
        self.parsed = False
        self.date = None
        self.hostname = ""
        self.from_kernel = False
        self.message = ""
        self.prefix_args = {}
        self.devspec_path = ""
        self._parse(line, now)

    def _parse(self, line, now):
        if line.endswith("\n"):
            line = line[:-1]
        if "\n" in line:
            _logger.debug("multi-line string given as a syslog message")
            return

        # ": " should divide the prefix from the message.
        # Lines like "Sep 21 11:56:10 myhost last message repeated 3 times"
        # are ignored.
        colon_space = line.find(": ")
        if colon_space < 0:
            return

        ret = date.parse_syslog_date(line, now=now)
        if ret is None:
            return
        dt, date_end = ret

        # hostname and prefix are the next two space-separated tokens
        rest = line[date_end:]
        offset = date_end + len(rest) - len(rest.lstrip(" "))
        host_end = line.find(" ", offset)
        if host_end < 0 or host_end == offset:
            return
        hostname = line[offset:host_end]

        prefix_start = host_end
        while prefix_start < len(line) and line[prefix_start] == " ":
            prefix_start += 1
        if prefix_start >= len(line) or prefix_start > colon_space:
            return
        prefix_end = line.find(" ", prefix_start)
        if prefix_end < 0:
            prefix_end = len(line)
        prefix = line[prefix_start:prefix_end]

        if prefix == KERNEL_PREFIX:
            self.from_kernel = True
            self.message = skip_printk_timestamp(line[colon_space + 2:])
        else:
            # For non-kernel messages, the message includes the prefix,
            # which could be multiple words (e.g., gconfd messages).
            self.from_kernel = False
            self.message = line[prefix_start:]
        self.date = dt
        self.hostname = hostname
        self.parsed = True

    def echo(self):
        """Render the parsed message as a syslog line."""
        sdate = date.format_syslog_date(self.date) if self.date else ""
        if self.from_kernel:
            return sdate + " " + self.hostname + " " + KERNEL_PREFIX + " " + self.message
        else:
            return sdate + " " + self.hostname + " " + self.message

    def set_devspec_path(self, event):
        """Compute the path to the /sys/.../devspec node for the device
        specified in this message, which has been matched to event.

        The driver's devspec macros are tried in name order,
        and the first one whose name is a prefix arg
        of this message is used.

        Returns:
            bool: True if :attr:`devspec_path` was set.
        """
        if event is None or event.driver is None:
            return False
        driver = event.driver
        if len(driver.devspec_macros) == 0 or len(self.prefix_args) == 0:
            return False
        for name in sorted(driver.devspec_macros):
            if name in self.prefix_args:
                macro = driver.devspec_macros[name]
                self.devspec_path = macro.get_devspec_path(self.prefix_args[name])
                return True
        return False

    def get_device_id(self, variant):
        """Get the device ID from the (matched) message."""
        if variant is None:
            return ""
        reporter = variant.reporter_alias.reporter
        if reporter.device_arg == "none":
            return ""
        return self.prefix_args.get(reporter.device_arg, "")

    def __repr__(self):
        if not self.parsed:
            return "SyslogMessage(unparsed: {0!r})".format(self.line)
        return "SyslogMessage({0}, {1!r}, kernel={2}, {3!r})".format(
            self.date, self.hostname, self.from_kernel, self.message)
