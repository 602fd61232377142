"""
Hostel Escalation Engine

Role-based ticket tracking for a hostel administration: employee
account lifecycle, escalation routing by department and status
workflow with oversight notifications.
"""

__version__ = "1.0.0"
__author__ = "Escalation Engine Team"
__email__ = "team@example.com"

from .config import EngineConfig, load_config
from .services import Services, create_services

__all__ = [
    "EngineConfig",
    "load_config",
    "Services",
    "create_services",
]
