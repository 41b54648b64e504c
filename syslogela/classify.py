# coding: utf-8

import logging
from collections import namedtuple

_logger = logging.getLogger(__name__)

Match = namedtuple("Match", ["event", "variant", "prefix_args"])
Match.__doc__ = """A catalog event matched by a message.

Attributes:
    event (:class:`~catalog.SyslogEvent`)
    variant (:class:`~catalog.MatchVariant`): the first matching variant.
    prefix_args (dict): prefix args captured by the variant.
"""


class Classifier:
    """Match parsed syslog messages against all events of a catalog.

    Events are tried in catalog order. An event with an exception
    type is a catch-all: it is considered only as long as no other
    event has matched, and only the first matching catch-all counts.

    Args:
        catalog (:class:`~catalog.Catalog`): loaded catalog.
    """

    def __init__(self, catalog):
        self.catalog = catalog

    def matches(self, message):
        """Yield every matching concrete event of the message,
        or the first matching catch-all if no concrete event matches.

        Yields:
            :class:`Match`
        """
        if not message.parsed:
            return
        reported = False
        unreported_exception = None
        for event in self.catalog.events:
            if event.is_exception and (reported or unreported_exception):
                continue
            message.prefix_args = {}
            variant = event.match(message, True)
            if variant is None:
                continue
            found = Match(event, variant, dict(message.prefix_args))
            if event.is_exception:
                unreported_exception = found
            else:
                reported = True
                yield found
        if not reported and unreported_exception is not None:
            message.prefix_args = dict(unreported_exception.prefix_args)
            yield unreported_exception

    def classify(self, message):
        """Find the event to report for the message: the first
        concrete match, else the first catch-all match.

        Returns:
            :class:`Match` or None.
        """
        if not message.parsed:
            return None
        exception_match = None
        for event in self.catalog.events:
            if event.is_exception:
                if exception_match is not None:
                    continue
                message.prefix_args = {}
                variant = event.match(message, True)
                if variant is not None:
                    exception_match = Match(event, variant,
                                            dict(message.prefix_args))
                continue
            message.prefix_args = {}
            variant = event.match(message, True)
            if variant is not None:
                return Match(event, variant, dict(message.prefix_args))
        if exception_match is not None:
            message.prefix_args = dict(exception_match.prefix_args)
        return exception_match
