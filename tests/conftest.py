# tests/conftest.py
import os, tempfile

# keep log files out of the working tree; must run before netspamlock imports
os.environ.setdefault("NETSPAMLOCK_LOG_DIR", tempfile.mkdtemp(prefix="netspamlock-logs-"))

import ipaddress
from dataclasses import replace

import psutil
import pytest

from netspamlock.census.census import ConnectionSource, TcpRecord
from netspamlock.errors import RuleNotFound, StoreError
from netspamlock.firewall.rules import RuleStore

LOCAL_V4 = "192.168.1.5"
LOCAL_V6 = "2001:db8::5"


def ip(text):
    return ipaddress.ip_address(text)


def inbound(remote, port=22, status=psutil.CONN_ESTABLISHED, local=LOCAL_V4):
    return TcpRecord(local, port, remote, 50000, status)


def listener(port=22, local="0.0.0.0"):
    return TcpRecord(local, port, "", 0, psutil.CONN_LISTEN)


class FakeSource(ConnectionSource):
    def __init__(self, records, self_set=None, error=None):
        self.records = records
        self.self_set = self_set if self_set is not None else frozenset({ip(LOCAL_V4), ip(LOCAL_V6)})
        self.error = error

    def connections(self):
        if self.error:
            raise self.error
        return list(self.records)

    def self_addresses(self, extra=(), include_broadcast=True):
        return frozenset(self.self_set | {ip(a) for a in extra})


class MemoryRuleStore(RuleStore):
    """Rule store in a dict that records every call made to it."""

    def __init__(self, rules=None, fail_on=None):
        super().__init__(lock_path=None)
        self.rules = dict(rules or {})
        self.calls = []
        self.fail_on = fail_on or set()

    def _maybe_fail(self, op):
        self.calls.append(op)
        if op in self.fail_on:
            raise StoreError(f"{op} denied")

    def get_rule(self, name):
        self._maybe_fail("get")
        if name not in self.rules:
            raise RuleNotFound(name)
        return replace(self.rules[name])

    def add_rule(self, rule):
        self._maybe_fail("add")
        self.rules[rule.name] = replace(rule)

    def update_rule(self, rule):
        self._maybe_fail("update")
        if rule.name not in self.rules:
            raise RuleNotFound(rule.name)
        self.rules[rule.name] = replace(rule)


@pytest.fixture
def store():
    return MemoryRuleStore()
