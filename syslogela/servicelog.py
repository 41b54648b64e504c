# coding: utf-8

"""Service events derived from matched syslog messages,
and the stores they are appended to.
"""

import datetime
import logging
import os
import sys
from abc import ABC, abstractmethod

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from . import _common
from ._common import ServiceLogError

_logger = logging.getLogger(__name__)

DEFAULT_URL = "sqlite:////var/lib/syslogela/servicelog.db"

SL_TYPE_OS = "os"

SL_DISP_RECOVERABLE = 0
SL_DISP_UNRECOVERABLE = 1
SL_DISP_BYPASSED = 2

SL_CALLHOME_NONE = 0
SL_CALLHOME_CANDIDATE = 1

# callout types (RTAS FRU id component types)
CALLOUT_HARDWARE = 0x10
CALLOUT_CODE = 0x20
CALLOUT_CONFIG_ERROR = 0x30

PROCEDURE = "see explain_syslog"

Base = declarative_base()


def is_informational(event, severity=None):
    """Informational events are recognized but not logged.

    Args:
        event (:class:`~catalog.SyslogEvent`)
        severity (int, optional): syslog severity of the matched
            variant; defaults to :meth:`~catalog.SyslogEvent.get_severity`.
    """
    if severity is None:
        severity = event.get_severity()
    if severity in (_common.LOG_DEBUG, _common.LOG_INFO):
        return True
    # catch-all events
    if severity in (_common.LOG_SEV_UNKNOWN, _common.LOG_SEV_ANY):
        return True
    if event.sl_severity in (_common.SL_SEV_DEBUG, _common.SL_SEV_INFO):
        return True
    return event.err_type == _common.SYTY_INFO


def svclog_severity(event, severity=None):
    """Use the servicelog severity of the event if given,
    else estimate it from the syslog severity and error type."""
    if event.sl_severity != 0:
        return event.sl_severity
    if severity is None:
        severity = event.get_severity()

    if severity == _common.LOG_DEBUG:
        return _common.SL_SEV_DEBUG
    elif severity in (_common.LOG_NOTICE, _common.LOG_INFO):
        return _common.SL_SEV_INFO
    elif severity == _common.LOG_WARNING:
        return _common.SL_SEV_WARNING

    # syslog severity is at least LOG_ERR
    if event.err_type in (_common.SYTY_PERM, _common.SYTY_CONFIG,
                          _common.SYTY_PEND, _common.SYTY_PERF,
                          _common.SYTY_UNKNOWN):
        return _common.SL_SEV_ERROR
    elif event.err_type == _common.SYTY_INFO:
        return _common.SL_SEV_INFO
    else:
        return _common.SL_SEV_WARNING


def svclog_disposition(event, severity=None):
    if event.sl_severity != 0:
        # sl_severity given in lieu of type
        if event.sl_severity >= _common.SL_SEV_ERROR_LOCAL:
            return SL_DISP_UNRECOVERABLE
        return SL_DISP_RECOVERABLE

    if event.err_type in (_common.SYTY_PERM, _common.SYTY_CONFIG,
                          _common.SYTY_PEND):
        return SL_DISP_UNRECOVERABLE
    elif event.err_type == _common.SYTY_PERF:
        return SL_DISP_BYPASSED
    elif event.err_type == _common.SYTY_UNKNOWN:
        if severity is None:
            severity = event.get_severity()
        if severity <= _common.LOG_ERR:
            return SL_DISP_UNRECOVERABLE
        return SL_DISP_RECOVERABLE
    else:
        return SL_DISP_RECOVERABLE


def callout_type(event):
    # err_type is valid only if sl_severity is not given
    if event.sl_severity == 0 and event.err_type == _common.SYTY_CONFIG:
        return CALLOUT_CONFIG_ERROR
    if event.err_class == _common.SYCL_HARDWARE:
        return CALLOUT_HARDWARE
    return CALLOUT_CODE


def is_predictive(event):
    return event.err_type in (_common.SYTY_PEND, _common.SYTY_PERF,
                              _common.SYTY_UNKNOWN, _common.SYTY_TEMP)


def sanitize_line(line):
    """Replace apostrophes, which servicelog cannot store,
    with back-quotes."""
    return line.replace("'", "`")


class ServiceEvent(Base):
    """A serviceable event, with one callout and the OS-specific data."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True)
    time_event = Column(DateTime, index=True, nullable=False)
    type = Column(String(16), nullable=False, default=SL_TYPE_OS)
    severity = Column(Integer, nullable=False)
    refcode = Column(String(64), nullable=True)
    description = Column(Text, nullable=False)
    serviceable = Column(Boolean, nullable=False, default=False)
    predictive = Column(Boolean, nullable=False, default=False)
    disposition = Column(Integer, nullable=False)
    call_home_status = Column(Integer, nullable=False, default=SL_CALLHOME_NONE)
    closed = Column(Boolean, nullable=False, default=False)

    # callout
    callout_priority = Column(String(1), nullable=True)
    callout_type = Column(Integer, nullable=True)
    callout_procedure = Column(String(128), nullable=True)
    callout_location = Column(String(1000), nullable=True)
    callout_fru = Column(String(64), nullable=True)
    callout_serial = Column(String(64), nullable=True)
    callout_ccin = Column(String(64), nullable=True)

    # OS data
    subsystem = Column(String(64), nullable=True)
    driver = Column(String(256), nullable=True)
    device = Column(String(256), nullable=True)

    @staticmethod
    def create(match, message, callout, now=None):
        """Build the service event for a matched message.

        Args:
            match (:class:`~classify.Match`): the reported match.
            message (:class:`~message.SyslogMessage`): the matched message.
            callout (:class:`~vpd.Callout`): resolved callout VPD.
            now (datetime.datetime, optional): event time.
        """
        event = match.event
        severity = match.variant.severity
        sl_sev = svclog_severity(event, severity)
        description, action = event.explanation
        text = ("Message forwarded from syslog:\n"
                + sanitize_line(message.line.rstrip("\n"))
                + "\n Description: " + description
                + "\n Action: " + action)
        serviceable = sl_sev >= _common.SL_SEV_ERROR_LOCAL
        return ServiceEvent(
            time_event=now or datetime.datetime.now(),
            type=SL_TYPE_OS,
            severity=sl_sev,
            refcode=event.refcode or None,
            description=text,
            serviceable=serviceable,
            predictive=is_predictive(event),
            disposition=svclog_disposition(event, severity),
            call_home_status=(SL_CALLHOME_CANDIDATE if serviceable
                              else SL_CALLHOME_NONE),
            closed=False,
            callout_priority=event.priority or None,
            callout_type=callout_type(event),
            callout_procedure=PROCEDURE,
            callout_location=callout.location or None,
            callout_fru=callout.fru or None,
            callout_serial=callout.serial or None,
            callout_ccin=callout.ccin or None,
            subsystem=event.driver.subsystem or "none",
            driver=event.driver.name or "none",
            device=message.get_device_id(match.variant) or "none",
        )

    def to_dict(self):
        return {
            "id": self.id,
            "time_event": self.time_event.isoformat() if self.time_event else None,
            "type": self.type,
            "severity": self.severity,
            "refcode": self.refcode,
            "description": self.description,
            "serviceable": self.serviceable,
            "predictive": self.predictive,
            "disposition": self.disposition,
            "call_home_status": self.call_home_status,
            "closed": self.closed,
            "callout": {
                "priority": self.callout_priority,
                "type": self.callout_type,
                "procedure": self.callout_procedure,
                "location": self.callout_location,
                "fru": self.callout_fru,
                "serial": self.callout_serial,
                "ccin": self.callout_ccin,
            },
            "subsystem": self.subsystem,
            "driver": self.driver,
            "device": self.device,
        }

    def format(self):
        """Render the event as text, one attribute per line."""
        sev_name = _common.lookup_value(self.severity,
                                        _common.SL_SEVERITY_NAMES)
        lines = [
            "Servicelog ID:      {0}".format(self.id),
            "Event Timestamp:    {0}".format(self.time_event),
            "Type:               {0}".format(self.type),
            "Severity:           {0} ({1})".format(self.severity, sev_name),
            "Reference Code:     {0}".format(self.refcode or "none"),
            "Serviceable Event:  {0}".format("Yes" if self.serviceable else "No"),
            "Predictive Event:   {0}".format("Yes" if self.predictive else "No"),
            "Disposition:        {0}".format(self.disposition),
            "Call Home Status:   {0}".format(self.call_home_status),
            "Subsystem:          {0}".format(self.subsystem),
            "Driver:             {0}".format(self.driver),
            "Device:             {0}".format(self.device),
            "Description:",
            self.description,
            "Callout:",
            "  Priority:         {0}".format(self.callout_priority),
            "  Type:             {0:#x}".format(self.callout_type or 0),
            "  Procedure:        {0}".format(self.callout_procedure),
            "  Location:         {0}".format(self.callout_location or "none"),
            "  FRU:              {0}".format(self.callout_fru or "none"),
            "  Serial:           {0}".format(self.callout_serial or "none"),
            "  CCIN:             {0}".format(self.callout_ccin or "none"),
        ]
        return "\n".join(lines) + "\n"

    def __repr__(self):
        return "ServiceEvent(id={0}, severity={1}, refcode={2!r})".format(
            self.id, self.severity, self.refcode)


class ServiceLog(ABC):
    """Interface of service event stores.

    Stores are opened and closed once per run;
    they can be used as context managers.
    """

    @abstractmethod
    def open(self):
        raise NotImplementedError

    @abstractmethod
    def append(self, event):
        """Store the event.

        Returns:
            int: id of the stored event.

        Raises:
            ServiceLogError
        """
        raise NotImplementedError

    @abstractmethod
    def close(self):
        raise NotImplementedError

    def query(self, min_severity=None, since=None, limit=None):
        """Stored events, oldest first."""
        raise NotImplementedError

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class SqlServiceLog(ServiceLog):
    """Service event store in a SQL database.

    Args:
        url (str, optional): SQLAlchemy database URL.
    """

    def __init__(self, url=DEFAULT_URL):
        self.url = url
        self._engine = None
        self._session_factory = None

    def open(self):
        try:
            url = make_url(self.url)
            if url.get_backend_name() == "sqlite" and url.database \
                    and url.database != ":memory:":
                dirname = os.path.dirname(url.database)
                if dirname:
                    os.makedirs(dirname, exist_ok=True)
            self._engine = create_engine(self.url, echo=False)
            Base.metadata.create_all(bind=self._engine)
        except (ArgumentError, SQLAlchemyError, OSError) as e:
            self._engine = None
            raise ServiceLogError("cannot open servicelog {0}: {1}".format(
                self.url, e))
        self._session_factory = sessionmaker(bind=self._engine,
                                             expire_on_commit=False)
        _logger.debug("servicelog opened: %s", self.url)

    def _session(self):
        if self._session_factory is None:
            raise ServiceLogError("servicelog is not open")
        return self._session_factory()

    def append(self, event):
        session = self._session()
        try:
            session.add(event)
            session.commit()
            return event.id
        except SQLAlchemyError as e:
            session.rollback()
            raise ServiceLogError("failed to log servicelog event: {0}".format(e))
        finally:
            session.close()

    def query(self, min_severity=None, since=None, limit=None):
        session = self._session()
        try:
            q = session.query(ServiceEvent)
            if min_severity is not None:
                q = q.filter(ServiceEvent.severity >= min_severity)
            if since is not None:
                q = q.filter(ServiceEvent.time_event >= since)
            q = q.order_by(ServiceEvent.id)
            if limit is not None:
                q = q.limit(limit)
            return q.all()
        except SQLAlchemyError as e:
            raise ServiceLogError("servicelog query failed: {0}".format(e))
        finally:
            session.close()

    def close(self):
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None


class PrintServiceLog(ServiceLog):
    """Prints events instead of storing them (debug mode)."""

    def __init__(self, stream=None):
        self._stream = stream
        self._events = []

    def open(self):
        pass

    def append(self, event):
        self._events.append(event)
        event.id = len(self._events)
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(event.format())
        stream.write("\n")
        return event.id

    def query(self, min_severity=None, since=None, limit=None):
        l_event = [ev for ev in self._events
                   if (min_severity is None or ev.severity >= min_severity)
                   and (since is None or ev.time_event >= since)]
        if limit is not None:
            l_event = l_event[:limit]
        return l_event

    def close(self):
        pass
