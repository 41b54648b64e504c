import datetime
import unittest

from syslogela.message import SyslogMessage, skip_printk_timestamp

import catalog_data


class TestMessage(unittest.TestCase):

    def test_kernel(self):
        msg = SyslogMessage(catalog_data.LINK_DOWN, now=catalog_data.NOW)
        assert msg.parsed
        assert msg.date == datetime.datetime(2024, 1, 5, 10, 22, 1)
        assert msg.hostname == "host1"
        assert msg.from_kernel
        assert msg.message == "mydrv 0000:01:00.0: link down"

    def test_printk_timestamp(self):
        msg = SyslogMessage(catalog_data.QUEUE_STALLED, now=catalog_data.NOW)
        assert msg.parsed
        assert msg.message == "queue 3 stalled"

        assert skip_printk_timestamp("[    0.000000] Linux") == "Linux"
        assert skip_printk_timestamp("[ab] Linux") == "[ab] Linux"

    def test_user(self):
        msg = SyslogMessage(catalog_data.DISK_FAILED, now=catalog_data.NOW)
        assert msg.parsed
        assert not msg.from_kernel
        # the message includes the program prefix
        assert msg.message == "diskmon[812]: disk sda failed"

    def test_unparsed(self):
        msg = SyslogMessage(catalog_data.REPEATED, now=catalog_data.NOW)
        assert not msg.parsed

        msg = SyslogMessage("not a syslog line: at all")
        assert not msg.parsed

        msg = SyslogMessage("Jan  5 10:22:01 host1 kernel: a\nb: c")
        assert not msg.parsed

        # ": " must not appear before the prefix
        msg = SyslogMessage("Jan  5 10:22:01 host1: kernel x")
        assert not msg.parsed

    def test_echo(self):
        msg = SyslogMessage(catalog_data.LINK_DOWN, now=catalog_data.NOW)
        assert msg.echo() == catalog_data.LINK_DOWN.rstrip("\n")
        msg = SyslogMessage(catalog_data.DISK_FAILED, now=catalog_data.NOW)
        assert msg.echo() == catalog_data.DISK_FAILED.rstrip("\n")


if __name__ == "__main__":
    unittest.main()
