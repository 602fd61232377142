"""
Tests for the Settings Manager.
"""

import pytest

from escalation_engine.engine.settings_manager import SettingsManager
from escalation_engine.errors import Conflict, Forbidden, NotFound, ValidationError
from escalation_engine.models import ConfigurationSet, Principal, SettingKind


@pytest.fixture
def manager(store):
    return SettingsManager(store)


@pytest.fixture
def editor():
    return Principal(id="admin-1", email="admin@hostel.edu", is_admin=True)


class TestSeeding:

    def test_fresh_store_is_seeded(self, manager, store):
        settings = manager.get_settings()

        assert settings.default_status == "New"
        assert store.get_settings() == settings

    def test_seed_keeps_edited_lists(self, manager, store):
        store.save_settings(ConfigurationSet(departments=["Plumbing"]))

        settings = manager.seed_settings()

        assert settings.departments == ["Plumbing"]
        assert settings.statuses[0] == "New"

    def test_custom_defaults_file(self, store, tmp_path):
        path = tmp_path / "defaults.yaml"
        path.write_text("statuses: [Open, Done]\ndepartments: [Water]\n", encoding="utf-8")

        settings = SettingsManager(store, defaults_path=path).get_settings()

        assert settings.statuses == ["Open", "Done"]
        assert settings.roles == []


class TestEditing:

    def test_add_value(self, manager, editor):
        settings = manager.add_setting(editor, SettingKind.DEPARTMENTS, "  Laundry ")
        assert settings.departments[-1] == "Laundry"

    def test_non_admin_cannot_edit(self, manager):
        staff = Principal(id="s", email="s@hostel.edu", role="Supervisor")

        with pytest.raises(Forbidden):
            manager.add_setting(staff, SettingKind.HOSTELS, "Hostel Z")

    def test_duplicate_and_empty_values(self, manager, editor):
        with pytest.raises(Conflict):
            manager.add_setting(editor, SettingKind.DEPARTMENTS, "Water")
        with pytest.raises(ValidationError):
            manager.add_setting(editor, SettingKind.DEPARTMENTS, "   ")

    def test_rename_keeps_position(self, manager, editor):
        settings = manager.rename_setting(editor, SettingKind.STATUSES, "New", "Open")

        assert settings.statuses[0] == "Open"
        assert settings.default_status == "Open"

    def test_rename_unknown_value(self, manager, editor):
        with pytest.raises(NotFound):
            manager.rename_setting(editor, SettingKind.ROLES, "Janitor", "Cleaner")

    def test_remove_value(self, manager, editor):
        settings = manager.remove_setting(editor, SettingKind.HOSTELS, "Hostel D")
        assert "Hostel D" not in settings.hostels

    def test_status_in_use_cannot_be_removed_or_renamed(self, services, admin_principal, draft,
                                                        supervisor):
        services.escalations.create_escalation(admin_principal, draft)

        with pytest.raises(Conflict):
            services.settings.remove_setting(admin_principal, SettingKind.STATUSES, "New")
        with pytest.raises(Conflict):
            services.settings.rename_setting(admin_principal, SettingKind.STATUSES, "New", "Open")

    def test_last_status_cannot_be_removed(self, manager, editor, store):
        store.save_settings(ConfigurationSet(statuses=["Only"]))

        with pytest.raises(ValidationError):
            manager.remove_setting(editor, SettingKind.STATUSES, "Only")
