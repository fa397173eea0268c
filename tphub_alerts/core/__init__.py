"""
Core infrastructure package for the TPHub Alerts backend.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL connectivity via asyncpg
- Request authentication (cron secret, session tokens)
- FastAPI dependency injection utilities

Usage:
    from tphub_alerts.core import get_settings, SettingsDep, CronAuthDep
"""

from tphub_alerts.core.config import Settings, get_settings
from tphub_alerts.core.database import close_db, get_db_pool, init_db
from tphub_alerts.core.dependencies import (
    CronAuthDep,
    SettingsDep,
    StaffUserDep,
    get_settings_dependency,
    require_cron_secret,
    require_staff_user,
)

__all__ = [
    # Configuration management
    'Settings',
    'get_settings',
    # Database pool lifecycle
    'init_db',
    'close_db',
    'get_db_pool',
    # FastAPI dependency injection
    'get_settings_dependency',
    'require_cron_secret',
    'require_staff_user',
    'SettingsDep',
    'CronAuthDep',
    'StaffUserDep',
]
