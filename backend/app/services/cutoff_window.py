"""
Cutoff Window Resolver

Decides which delivery date the current buying shift works on.

The buyer's shift starts at the cutoff hour (18:00 local). From then on the
shift collects for the next day; before it, the shift keeps working today's
deliveries:

- local time >= 18:00 -> tomorrow
- local time <  18:00 -> today

When the operator switches the rules off (``enable_cutoff_rules`` = false) the
resolver always answers tomorrow relative to now. If the switch cannot be read
the rules are treated as enabled.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.settings import get_settings
from app.logging_config import get_logger
from app.models.app_setting import AppSetting

logger = get_logger(__name__)

CUTOFF_SETTING_KEY = "enable_cutoff_rules"
_DISABLED_VALUES = frozenset({"false", "0", "no", "off"})


@dataclass(frozen=True)
class CutoffWindow:
    """Resolved shift window"""
    target_date: date
    cutoff_enabled: bool
    local_time: datetime
    cutoff_hour: int
    # True when the switch could not be read and the default was assumed
    used_default: bool = False


def parse_cutoff_flag(value: Optional[str]) -> bool:
    """Anything other than an explicit 'off' value keeps the rules on."""
    if value is None:
        return True
    return value.strip().lower() not in _DISABLED_VALUES


def to_local_time(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Aware datetimes are moved to the distribution-center zone; naive ones are taken as local."""
    if now.tzinfo is None:
        return now
    return now.astimezone(tz or get_settings().distribution_center_tz)


def resolve_target_delivery_date(
    now: datetime,
    cutoff_enabled: bool,
    cutoff_hour: Optional[int] = None,
    tz: Optional[tzinfo] = None,
) -> date:
    """
    Delivery date the shift running at ``now`` is responsible for.

    Args:
        now: Current time; aware values are converted to local time
        cutoff_enabled: Value of the cutoff switch
        cutoff_hour: Shift boundary (defaults to PROCUREMENT_CUTOFF_HOUR)
        tz: Local zone (defaults to DISTRIBUTION_CENTER_TIMEZONE)
    """
    if cutoff_hour is None:
        cutoff_hour = get_settings().PROCUREMENT_CUTOFF_HOUR
    local_now = to_local_time(now, tz)
    today = local_now.date()

    if not cutoff_enabled:
        return today + timedelta(days=1)
    if local_now.hour >= cutoff_hour:
        return today + timedelta(days=1)
    return today


def _read_cutoff_flag(db: Session) -> Tuple[bool, bool]:
    """Returns (enabled, used_default)."""
    try:
        setting = db.query(AppSetting).filter(AppSetting.key == CUTOFF_SETTING_KEY).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(
            "Error reading cutoff settings, defaulting to standard rules",
            extra={"setting": CUTOFF_SETTING_KEY, "error": str(e)},
        )
        return True, True
    if setting is None:
        return True, False
    return parse_cutoff_flag(setting.value), False


def read_cutoff_rules_enabled(db: Session) -> bool:
    """Current value of the cutoff switch; never raises."""
    enabled, _used_default = _read_cutoff_flag(db)
    return enabled


def set_cutoff_rules_enabled(db: Session, enabled: bool) -> AppSetting:
    """Turn the cutoff rules on or off."""
    setting = db.query(AppSetting).filter(AppSetting.key == CUTOFF_SETTING_KEY).first()
    if setting is None:
        setting = AppSetting(
            key=CUTOFF_SETTING_KEY,
            description="Apply the 18:00 shift cutoff when choosing the delivery date",
        )
        db.add(setting)
    setting.value = "true" if enabled else "false"
    setting.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(setting)
    logger.info("Cutoff rules switched", extra={"enabled": enabled})
    return setting


def get_target_delivery_date(db: Session, now: Optional[datetime] = None) -> CutoffWindow:
    """
    Read the cutoff switch once and resolve the shift's delivery date.

    Args:
        db: Database session
        now: Injected current time (defaults to the real clock)
    """
    settings = get_settings()
    if now is None:
        now = datetime.now(timezone.utc)

    enabled, used_default = _read_cutoff_flag(db)
    tz = settings.distribution_center_tz
    target = resolve_target_delivery_date(
        now, enabled, cutoff_hour=settings.PROCUREMENT_CUTOFF_HOUR, tz=tz
    )
    if not enabled:
        logger.info("Cutoff rules disabled, targeting next day", extra={"target_date": str(target)})

    return CutoffWindow(
        target_date=target,
        cutoff_enabled=enabled,
        local_time=to_local_time(now, tz),
        cutoff_hour=settings.PROCUREMENT_CUTOFF_HOUR,
        used_default=used_default,
    )
