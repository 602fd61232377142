"""
Configuration for the Escalation Engine.

Settings come from an optional YAML file and are then overridden by
environment variables, which is how deployments supply the identity
provider's service credentials and the password-reset callback URL.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field

from .models import ConfigurationSet

logger = logging.getLogger(__name__)

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"


class RetryPolicy(BaseModel):
    """Bounded retry with increasing backoff for external calls."""
    attempts: int = Field(3, ge=1, description="Attempt ceiling per external call")
    backoff_seconds: float = Field(1.0, ge=0, description="Multiplied by the attempt number")
    lookup_timeout: float = Field(30.0, gt=0, description="Account lookups and creation")
    write_timeout: float = Field(15.0, gt=0, description="Claim and record writes")


class FirebaseSettings(BaseModel):
    """Service credentials for the identity provider and document store."""
    project_id: Optional[str] = None
    credentials_path: Optional[str] = None
    client_email: Optional[str] = None
    private_key: Optional[str] = None
    app_name: str = "escalation-engine"


class MailSettings(BaseModel):
    """Mail relay used to deliver notifications."""
    endpoint: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 10.0


class EngineConfig(BaseModel):
    """Top-level engine configuration."""
    mock_mode: bool = Field(True, description="Use in-memory provider, store and mail transport")
    state_file: Optional[str] = Field(None, description="JSON persistence for the in-memory store")
    audit_dir: str = "audit_logs"
    app_url: str = "http://localhost:3001"
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    firebase: FirebaseSettings = Field(default_factory=FirebaseSettings)
    mail: MailSettings = Field(default_factory=MailSettings)
    supervisor_roles: List[str] = Field(default_factory=lambda: ["Supervisor", "Warden"])
    oversight_role: str = "Hostel Office"
    resolved_statuses: List[str] = Field(default_factory=lambda: ["Resolved", "Closed"])
    notification_workers: int = Field(8, ge=1)

    @property
    def reset_password_url(self) -> str:
        return f"{self.app_url.rstrip('/')}/reset-password"


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_overrides() -> Dict[str, Any]:
    """Collect configuration overrides from the environment."""
    overrides: Dict[str, Any] = {}
    firebase: Dict[str, Any] = {}
    mail: Dict[str, Any] = {}

    if "ESCALATION_MOCK_MODE" in os.environ:
        overrides["mock_mode"] = _env_flag(os.environ["ESCALATION_MOCK_MODE"])
    if os.environ.get("ESCALATION_STATE_FILE"):
        overrides["state_file"] = os.environ["ESCALATION_STATE_FILE"]
    if os.environ.get("ESCALATION_AUDIT_DIR"):
        overrides["audit_dir"] = os.environ["ESCALATION_AUDIT_DIR"]
    if os.environ.get("APP_URL"):
        overrides["app_url"] = os.environ["APP_URL"]

    if os.environ.get("FIREBASE_PROJECT_ID"):
        firebase["project_id"] = os.environ["FIREBASE_PROJECT_ID"]
    if os.environ.get("FIREBASE_CREDENTIALS"):
        firebase["credentials_path"] = os.environ["FIREBASE_CREDENTIALS"]
    if os.environ.get("FIREBASE_CLIENT_EMAIL"):
        firebase["client_email"] = os.environ["FIREBASE_CLIENT_EMAIL"]
    if os.environ.get("FIREBASE_PRIVATE_KEY"):
        # Keys pasted into env files carry literal "\n" sequences
        firebase["private_key"] = os.environ["FIREBASE_PRIVATE_KEY"].replace("\\n", "\n")

    if os.environ.get("MAIL_ENDPOINT"):
        mail["endpoint"] = os.environ["MAIL_ENDPOINT"]
    if os.environ.get("MAIL_API_KEY"):
        mail["api_key"] = os.environ["MAIL_API_KEY"]

    if firebase:
        overrides["firebase"] = firebase
    if mail:
        overrides["mail"] = mail
    return overrides


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """
    Load the engine configuration.

    Args:
        path: Optional YAML file. Environment variables take precedence
              over values read from it.

    Returns:
        Validated EngineConfig
    """
    data: Dict[str, Any] = {}

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        with open(config_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {config_path}")

    config = EngineConfig(**_merge(data, _env_overrides()))
    logger.info(f"Engine configuration ready (mock_mode={config.mock_mode})")
    return config


def load_default_settings(path: Optional[Union[str, Path]] = None) -> ConfigurationSet:
    """Read the initial departments, statuses, roles and hostels."""
    defaults_path = Path(path) if path else DEFAULTS_FILE
    with open(defaults_path, encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    return ConfigurationSet(**data)
