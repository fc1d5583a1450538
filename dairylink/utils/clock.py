"""Device wall-clock helpers

Devices live in one configured timezone. "Today" for the correction write and
every timestamp rendered back to a device are computed in DEVICE_TIMEZONE, and
stored timestamps are naive local times in that zone.
"""
from datetime import datetime
from zoneinfo import ZoneInfo
from flask import current_app, has_app_context

DEFAULT_DEVICE_TIMEZONE = 'Asia/Kolkata'


def device_timezone():
    """Get the configured device timezone (falls back outside an app context)"""
    name = DEFAULT_DEVICE_TIMEZONE
    if has_app_context():
        name = current_app.config.get('DEVICE_TIMEZONE') or DEFAULT_DEVICE_TIMEZONE
    return ZoneInfo(name)


def local_now():
    """Current device-local time as a naive datetime"""
    return datetime.now(device_timezone()).replace(tzinfo=None)
