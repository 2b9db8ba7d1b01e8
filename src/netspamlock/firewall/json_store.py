# src/netspamlock/firewall/json_store.py
import json, os
from dataclasses import asdict
from pathlib import Path

from netspamlock.errors import RuleNotFound, StoreError
from netspamlock.firewall.rules import BlockRule, RuleStore
from netspamlock.utils.logger import get_logger

_logger = get_logger()


class JsonRuleStore(RuleStore):
    """Block rules kept in a JSON document: {"rules": {name: {...}}}."""

    def __init__(self, path, lock_path=None):
        super().__init__(lock_path)
        self.path = Path(path)

    def _load(self):
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"Rule store {self.path} is corrupt: {e}")
        except OSError as e:
            raise StoreError(f"Cannot read rule store {self.path}: {e}")
        rules = data.get("rules") if isinstance(data, dict) else None
        if not isinstance(rules, dict):
            raise StoreError(f"Rule store {self.path} has no rules table")
        return rules

    def _save(self, rules):
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            if self.path.parent != Path("."):
                self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({"rules": rules}, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write rule store {self.path}: {e}")

    def get_rule(self, name):
        entry = self._load().get(name)
        if entry is None:
            raise RuleNotFound(name)
        if not isinstance(entry, dict) or not isinstance(entry.get("addresses") or "", str):
            raise StoreError(f"Rule {name!r} in {self.path} is malformed")
        return BlockRule(
            name=name,
            description=entry.get("description", ""),
            action=entry.get("action", ""),
            direction=entry.get("direction", ""),
            enabled=bool(entry.get("enabled", False)),
            interfaces=entry.get("interfaces", ""),
            addresses=entry.get("addresses") or "",
        )

    def add_rule(self, rule):
        rules = self._load()
        if rule.name in rules:
            raise StoreError(f"Rule {rule.name!r} already exists")
        rules[rule.name] = asdict(rule)
        self._save(rules)
        _logger.info(f"[STORE] Created rule {rule.name} in {self.path}")

    def update_rule(self, rule):
        rules = self._load()
        if rule.name not in rules:
            raise RuleNotFound(rule.name)
        rules[rule.name] = asdict(rule)
        self._save(rules)
        _logger.info(f"[STORE] Updated rule {rule.name} in {self.path}")
