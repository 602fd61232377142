"""
Engine Package for the Escalation Engine.

Authorization policy, record stores and configuration-set management.
"""

from .policy import Action, can_perform, require
from .settings_manager import SettingsManager
from .state_manager import RecordStore, StateManager

__all__ = [
    "Action",
    "can_perform",
    "require",
    "RecordStore",
    "StateManager",
    "SettingsManager",
]
