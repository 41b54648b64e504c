import datetime
import io
import os
import tempfile
import unittest

import syslogela
from syslogela import _common
from syslogela import servicelog
from syslogela import vpd
from syslogela._common import ServiceLogError

import catalog_data


class _Event:
    """Stand-in for the attributes the servicelog rules look at."""

    def __init__(self, severity, err_type=_common.SYTY_BOGUS, sl_severity=0,
                 err_class=_common.SYCL_UNKNOWN):
        self.severity = severity
        self.err_type = err_type
        self.sl_severity = sl_severity
        self.err_class = err_class

    def get_severity(self):
        return self.severity


class TestRules(unittest.TestCase):

    def test_informational(self):
        assert servicelog.is_informational(_Event(_common.LOG_INFO))
        assert servicelog.is_informational(_Event(_common.LOG_DEBUG))
        assert servicelog.is_informational(_Event(_common.LOG_SEV_UNKNOWN))
        assert servicelog.is_informational(
            _Event(_common.LOG_ERR, sl_severity=_common.SL_SEV_INFO))
        assert servicelog.is_informational(
            _Event(_common.LOG_ERR, err_type=_common.SYTY_INFO))
        assert not servicelog.is_informational(
            _Event(_common.LOG_ERR, err_type=_common.SYTY_PERM))
        assert not servicelog.is_informational(
            _Event(_common.LOG_WARNING, err_type=_common.SYTY_TEMP))

    def test_severity(self):
        sev = servicelog.svclog_severity
        assert sev(_Event(_common.LOG_ERR, sl_severity=_common.SL_SEV_FATAL)) == \
            _common.SL_SEV_FATAL
        assert sev(_Event(_common.LOG_NOTICE, _common.SYTY_PERM)) == \
            _common.SL_SEV_INFO
        assert sev(_Event(_common.LOG_WARNING, _common.SYTY_PERM)) == \
            _common.SL_SEV_WARNING
        assert sev(_Event(_common.LOG_CRIT, _common.SYTY_PERM)) == \
            _common.SL_SEV_ERROR
        assert sev(_Event(_common.LOG_ERR, _common.SYTY_TEMP)) == \
            _common.SL_SEV_WARNING

    def test_disposition(self):
        disp = servicelog.svclog_disposition
        assert disp(_Event(_common.LOG_ERR, sl_severity=_common.SL_SEV_ERROR_LOCAL)) == \
            servicelog.SL_DISP_UNRECOVERABLE
        assert disp(_Event(_common.LOG_ERR, sl_severity=_common.SL_SEV_WARNING)) == \
            servicelog.SL_DISP_RECOVERABLE
        assert disp(_Event(_common.LOG_ERR, _common.SYTY_PEND)) == \
            servicelog.SL_DISP_UNRECOVERABLE
        assert disp(_Event(_common.LOG_ERR, _common.SYTY_PERF)) == \
            servicelog.SL_DISP_BYPASSED
        assert disp(_Event(_common.LOG_ERR, _common.SYTY_UNKNOWN)) == \
            servicelog.SL_DISP_UNRECOVERABLE
        assert disp(_Event(_common.LOG_WARNING, _common.SYTY_UNKNOWN)) == \
            servicelog.SL_DISP_RECOVERABLE
        assert disp(_Event(_common.LOG_ERR, _common.SYTY_TEMP)) == \
            servicelog.SL_DISP_RECOVERABLE

    def test_callout_type(self):
        assert servicelog.callout_type(
            _Event(_common.LOG_ERR, _common.SYTY_CONFIG,
                   err_class=_common.SYCL_HARDWARE)) == servicelog.CALLOUT_CONFIG_ERROR
        assert servicelog.callout_type(
            _Event(_common.LOG_ERR, _common.SYTY_PERM,
                   err_class=_common.SYCL_HARDWARE)) == servicelog.CALLOUT_HARDWARE
        assert servicelog.callout_type(
            _Event(_common.LOG_ERR, _common.SYTY_PERM,
                   err_class=_common.SYCL_SOFTWARE)) == servicelog.CALLOUT_CODE

    def test_predictive(self):
        assert servicelog.is_predictive(_Event(_common.LOG_ERR, _common.SYTY_TEMP))
        assert not servicelog.is_predictive(_Event(_common.LOG_ERR, _common.SYTY_PERM))

    def test_sanitize(self):
        assert servicelog.sanitize_line("can't open") == "can`t open"


class TestServiceEvent(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls._tmp = tempfile.TemporaryDirectory()
        catalog_dir = catalog_data.write_catalog(
            os.path.join(cls._tmp.name, "catalog"))
        cls.classifier = syslogela.Classifier(
            syslogela.load(catalog_dir, strict=True))

    @classmethod
    def tearDownClass(cls):
        cls._tmp.cleanup()

    def _create(self, line, callout=vpd.EMPTY_CALLOUT):
        msg = syslogela.SyslogMessage(line, now=catalog_data.NOW)
        match = self.classifier.classify(msg)
        return servicelog.ServiceEvent.create(
            match, msg, callout, now=datetime.datetime(2024, 1, 5, 12, 0))

    def test_create(self):
        callout = vpd.Callout("U78A9.001.1234567-P1-C5", "10N9824", "YL10JP", "5767")
        ev = self._create(catalog_data.LINK_DOWN, callout)
        assert ev.type == servicelog.SL_TYPE_OS
        assert ev.severity == _common.SL_SEV_ERROR_LOCAL
        assert ev.serviceable
        assert ev.call_home_status == servicelog.SL_CALLHOME_CANDIDATE
        assert ev.disposition == servicelog.SL_DISP_UNRECOVERABLE
        assert not ev.predictive
        assert ev.refcode == "#MYDRV01"
        assert ev.callout_type == servicelog.CALLOUT_HARDWARE
        assert ev.callout_priority == "L"
        assert ev.callout_procedure == servicelog.PROCEDURE
        assert ev.callout_location == "U78A9.001.1234567-P1-C5"
        assert ev.callout_ccin == "5767"
        assert ev.subsystem == "net"
        assert ev.driver == "mydrv"
        assert ev.device == "0000:01:00.0"
        assert ev.description == (
            "Message forwarded from syslog:\n"
            + catalog_data.LINK_DOWN.rstrip("\n")
            + "\n Description: The link of the adapter went down."
            + "\n Action: Check the cable and the switch port.")

    def test_create_without_callout(self):
        ev = self._create(catalog_data.QUEUE_STALLED)
        assert ev.severity == _common.SL_SEV_WARNING
        assert not ev.serviceable
        assert ev.predictive
        assert ev.callout_priority == "M"
        assert ev.callout_location is None
        assert ev.callout_fru is None
        assert ev.device == "none"

    def test_sanitized_description(self):
        line = "Jan  5 10:30:00 host1 diskmon[812]: disk can't failed\n"
        ev = self._create(line)
        assert "disk can`t failed" in ev.description

    def test_format(self):
        ev = self._create(catalog_data.LINK_DOWN)
        ev.id = 7
        text = ev.format()
        assert "Servicelog ID:      7\n" in text
        assert "Reference Code:     #MYDRV01\n" in text
        assert "  Type:             0x10\n" in text
        d = ev.to_dict()
        assert d["callout"]["type"] == servicelog.CALLOUT_HARDWARE
        assert d["time_event"] == "2024-01-05T12:00:00"


class TestStore(unittest.TestCase):

    def _event(self, severity, refcode, hour=12):
        return servicelog.ServiceEvent(
            time_event=datetime.datetime(2024, 1, 5, hour, 0),
            severity=severity, refcode=refcode, description="test",
            disposition=servicelog.SL_DISP_RECOVERABLE)

    def test_sql(self):
        with servicelog.SqlServiceLog("sqlite://") as store:
            id1 = store.append(self._event(_common.SL_SEV_WARNING, "#A", 10))
            id2 = store.append(self._event(_common.SL_SEV_ERROR, "#B", 11))
            assert id2 > id1
            events = store.query()
            assert [ev.refcode for ev in events] == ["#A", "#B"]
            assert events[0].type == servicelog.SL_TYPE_OS
            assert not events[0].closed

            events = store.query(min_severity=_common.SL_SEV_ERROR)
            assert [ev.refcode for ev in events] == ["#B"]
            events = store.query(since=datetime.datetime(2024, 1, 5, 10, 30))
            assert [ev.refcode for ev in events] == ["#B"]
            assert len(store.query(limit=1)) == 1

    def test_sqlite_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "sub", "servicelog.db")
            store = servicelog.SqlServiceLog("sqlite:///" + path)
            store.open()
            try:
                store.append(self._event(_common.SL_SEV_ERROR, "#C"))
            finally:
                store.close()
            assert os.path.exists(path)

            with servicelog.SqlServiceLog("sqlite:///" + path) as store:
                assert [ev.refcode for ev in store.query()] == ["#C"]

    def test_open_error(self):
        with self.assertRaises(ServiceLogError):
            servicelog.SqlServiceLog("nosuchdb://localhost/x").open()

    def test_not_open(self):
        store = servicelog.SqlServiceLog("sqlite://")
        with self.assertRaises(ServiceLogError):
            store.append(self._event(_common.SL_SEV_ERROR, "#D"))

    def test_print(self):
        out = io.StringIO()
        with servicelog.PrintServiceLog(stream=out) as store:
            assert store.append(self._event(_common.SL_SEV_ERROR, "#E")) == 1
            assert store.append(self._event(_common.SL_SEV_INFO, "#F")) == 2
            assert [ev.refcode for ev in store.query(
                min_severity=_common.SL_SEV_ERROR)] == ["#E"]
        assert "Reference Code:     #E\n" in out.getvalue()


if __name__ == "__main__":
    unittest.main()
