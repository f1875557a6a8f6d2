"""Resource downgrade - bring an account that lost premium access back within free limits"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ...models import Appointment, ProfessionalAccount, Service, ServiceStatus
from ...plan_limits import FREE_LIMITS, account_has_premium
from .repository import AccountRepository, AppointmentRepository, ServiceRepository

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class DowngradeReport:
    services_disabled: int = 0
    total_services: int = 0
    clients_count: int = 0
    appointments_count: int = 0
    skipped: bool = False


def select_services_to_disable(active_services: list[Service], limit: int) -> list[Service]:
    """Newest services are kept; everything past `limit` (the oldest) is returned"""
    if len(active_services) <= limit:
        return []
    newest_first = sorted(active_services, key=lambda s: s.created_at or _OLDEST, reverse=True)
    return newest_first[limit:]


def count_distinct_clients(appointments: list[Appointment]) -> int:
    """Clients are not stored on their own: one client per WhatsApp number"""
    return len({apt.client_whatsapp for apt in appointments if apt.client_whatsapp})


class ResourceDowngradeEnforcer:
    """
    Disables excess active services and records client/appointment overage.

    Nothing is deleted. Services are only flipped to inactive so an upgrade
    can bring them back. Every run rewrites the whole planTransition
    record; on an account already within limits it reports zero disabled.
    """

    def __init__(self, db):
        self.accounts = AccountRepository(db)
        self.services = ServiceRepository(db)
        self.appointments = AppointmentRepository(db)

    def enforce(self, account: ProfessionalAccount, now: datetime) -> DowngradeReport:
        if account_has_premium(account):
            logger.info(f"ℹ️ {account.id} still has premium access, skipping downgrade")
            return DowngradeReport(skipped=True)

        # A failed listing aborts here, before anything has been written
        services = self.services.list_by_professional(account.id)
        active_services = [s for s in services if s.status == ServiceStatus.ACTIVE.value]

        to_disable = select_services_to_disable(active_services, FREE_LIMITS.services)
        for service in to_disable:
            self.services.set_status(service.id, ServiceStatus.INACTIVE.value, now)
        if to_disable:
            logger.warning(
                f"⚠️ Disabled {len(to_disable)} of {len(active_services)} active services for "
                f"{account.id} (free limit {FREE_LIMITS.services})"
            )

        appointments = self.appointments.list_by_professional(account.id)
        clients_count = count_distinct_clients(appointments)

        transition = {
            "lastCheck": now,
            "servicesDisabled": len(to_disable),
            "totalClients": clients_count,
            "totalAppointments": len(appointments),
            "notified": False,
        }
        self.accounts.set(account.id, {"planTransition": transition}, merge=True)

        return DowngradeReport(
            services_disabled=len(to_disable),
            total_services=len(services),
            clients_count=clients_count,
            appointments_count=len(appointments),
        )

    def check_excess_resources(self, account: ProfessionalAccount) -> dict:
        """Overage summary for the dashboard warning banner"""
        if account_has_premium(account):
            return {"hasExcess": False, "excessServices": 0, "excessClients": 0, "message": ""}

        services = self.services.list_by_professional(account.id)
        active_count = sum(1 for s in services if s.status == ServiceStatus.ACTIVE.value)
        excess_services = max(0, active_count - FREE_LIMITS.services)

        clients_count = count_distinct_clients(self.appointments.list_by_professional(account.id))
        excess_clients = max(0, clients_count - FREE_LIMITS.clients)

        messages = []
        if excess_services > 0:
            messages.append(
                f"You have {excess_services} service(s) over the free plan limit. "
                "The oldest ones were disabled automatically."
            )
        if excess_clients > 0:
            messages.append(
                f"You have {clients_count} clients. The free plan limit is {FREE_LIMITS.clients}. "
                "Upgrade to keep growing your client base."
            )

        return {
            "hasExcess": excess_services > 0 or excess_clients > 0,
            "excessServices": excess_services,
            "excessClients": excess_clients,
            "message": " ".join(messages),
        }

    def mark_notification_seen(self, professional_id: str) -> None:
        self.accounts.update_fields(professional_id, {"planTransition.notified": True})


def enforce_downgrade(db, account: Optional[ProfessionalAccount], now: datetime) -> Optional[DowngradeReport]:
    """Run the enforcer for a professional account that no longer has premium access"""
    if account is None or not account.is_professional or account_has_premium(account):
        return None
    return ResourceDowngradeEnforcer(db).enforce(account, now)
