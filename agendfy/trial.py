"""
Trial clock - pure date arithmetic for the registration trial.

Every professional gets TRIAL_DURATION_DAYS of premium access starting at
registration. Nothing here touches the store; callers pass `now` explicitly.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import ProfessionalAccount, TrialInfo, UserRole, as_utc

TRIAL_DURATION_DAYS = 3
ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_trial_end_date(start_date: datetime) -> datetime:
    """Trial ends exactly TRIAL_DURATION_DAYS after it starts (same time of day)"""
    return start_date + timedelta(days=TRIAL_DURATION_DAYS)


def start_trial(now: datetime) -> TrialInfo:
    """Trial record written when a professional registers"""
    return TrialInfo(active=True, started_at=now, ends_at=calculate_trial_end_date(now))


def days_remaining(ends_at: datetime, now: datetime) -> int:
    """Whole days left, rounded up and never negative"""
    remaining = (as_utc(ends_at) - as_utc(now)) / ONE_DAY
    return max(0, math.ceil(remaining))


def is_expired(ends_at: datetime, now: datetime) -> bool:
    return as_utc(now) >= as_utc(ends_at)


def is_trial_active(account: Optional[ProfessionalAccount], now: datetime) -> bool:
    """
    CEO and client accounts never run on a trial, so they always have access.
    A professional needs an active trial flag AND an end date still in the future.
    """
    if account is None:
        return False
    if account.role in (UserRole.CEO.value, UserRole.CLIENT.value):
        return True
    trial = account.trial
    if not trial or not trial.ends_at:
        return False
    return trial.active and not is_expired(trial.ends_at, now)


def get_trial_info(account: Optional[ProfessionalAccount], now: datetime) -> dict:
    """Trial summary for banners; `expiresToday` flags the last partial day"""
    if account is not None and account.role in (UserRole.CEO.value, UserRole.CLIENT.value):
        return {
            "hasTrialAccess": True,
            "daysRemaining": None,
            "isExpired": False,
            "expiresToday": False,
        }

    trial = account.trial if account else None
    if not trial or not trial.ends_at:
        return {
            "hasTrialAccess": False,
            "daysRemaining": None,
            "isExpired": True,
            "expiresToday": False,
        }

    expired = is_expired(trial.ends_at, now)
    return {
        "hasTrialAccess": trial.active and not expired,
        "daysRemaining": days_remaining(trial.ends_at, now),
        "isExpired": expired,
        "expiresToday": not expired and (as_utc(trial.ends_at) - as_utc(now)) < ONE_DAY,
    }
