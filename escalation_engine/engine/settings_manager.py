"""
Settings Manager for the Escalation Engine.

Maintains the admin-editable configuration sets: departments, statuses,
roles and hostels. The first status is the initial status of every new
escalation; a status still held by a ticket cannot be removed or renamed.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Union

from .policy import Action, require
from .state_manager import RecordStore
from ..config import load_default_settings
from ..errors import Conflict, NotFound, ValidationError
from ..models import ConfigurationSet, Principal, SettingKind

logger = logging.getLogger(__name__)


class SettingsManager:
    """Reads and edits the configuration sets held in the record store."""

    def __init__(self, store: RecordStore, defaults_path: Optional[Union[str, Path]] = None):
        self.store = store
        self.defaults_path = defaults_path
        self._lock = threading.RLock()

    def get_settings(self) -> ConfigurationSet:
        """Return the configuration sets, seeding defaults on a fresh store."""
        settings = self.store.get_settings()
        if settings is None:
            settings = self.seed_settings()
        return settings

    def seed_settings(self) -> ConfigurationSet:
        """Fill empty lists from the shipped defaults, keeping edited lists."""
        defaults = load_default_settings(self.defaults_path)
        with self._lock:
            current = self.store.get_settings() or ConfigurationSet()
            seeded = {}
            for kind in SettingKind:
                values = current.values_for(kind)
                seeded[kind.value] = values if values else defaults.values_for(kind)
            settings = ConfigurationSet(**seeded)
            self.store.save_settings(settings)
        logger.info("Seeded configuration sets from defaults")
        return settings

    def _clean(self, value: Optional[str]) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValidationError("Value must not be empty")
        return cleaned

    def _check_status_unused(self, status: str, verb: str):
        in_use = self.store.count_escalations_with_status(status)
        if in_use:
            raise Conflict(f'Cannot {verb} status "{status}": {in_use} escalation(s) still use it')

    def add_setting(self, principal: Principal, kind: SettingKind, value: str) -> ConfigurationSet:
        require(principal, Action.EDIT_SETTINGS)
        value = self._clean(value)

        with self._lock:
            settings = self.get_settings()
            values = settings.values_for(kind)
            if value in values:
                raise Conflict(f'"{value}" already exists in {kind.value}')
            values.append(value)
            updated = settings.model_copy(update={kind.value: values})
            self.store.save_settings(updated)

        logger.info(f"{principal.id} added {kind.value} entry {value}")
        return updated

    def rename_setting(self, principal: Principal, kind: SettingKind, old: str,
                       new: str) -> ConfigurationSet:
        require(principal, Action.EDIT_SETTINGS)
        new = self._clean(new)

        with self._lock:
            settings = self.get_settings()
            values = settings.values_for(kind)
            if old not in values:
                raise NotFound(f'"{old}" is not configured in {kind.value}')
            if new == old:
                return settings
            if new in values:
                raise Conflict(f'"{new}" already exists in {kind.value}')
            if kind == SettingKind.STATUSES:
                self._check_status_unused(old, "rename")
            values[values.index(old)] = new
            updated = settings.model_copy(update={kind.value: values})
            self.store.save_settings(updated)

        logger.info(f"{principal.id} renamed {kind.value} entry {old} to {new}")
        return updated

    def remove_setting(self, principal: Principal, kind: SettingKind, value: str) -> ConfigurationSet:
        require(principal, Action.EDIT_SETTINGS)

        with self._lock:
            settings = self.get_settings()
            values = settings.values_for(kind)
            if value not in values:
                raise NotFound(f'"{value}" is not configured in {kind.value}')
            if kind == SettingKind.STATUSES:
                if len(values) == 1:
                    raise ValidationError("At least one status must remain configured")
                self._check_status_unused(value, "remove")
            values.remove(value)
            updated = settings.model_copy(update={kind.value: values})
            self.store.save_settings(updated)

        logger.info(f"{principal.id} removed {kind.value} entry {value}")
        return updated
