"""Account router - session load, registration and plan usage endpoints"""

import logging

from fastapi import APIRouter, Depends

from ...auth import get_current_account, get_current_claims, get_current_uid
from ...database import get_db
from ...models import ProfessionalAccount
from ...trial import utcnow
from .account_service import AccountService
from .schemas import ExcessResourcesResponse, LimitedResource, RegisterProfessionalRequest, UsageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account", tags=["Account"])


def get_account_service(db=Depends(get_db)) -> AccountService:
    """Dependency injection for AccountService"""
    return AccountService(db)


@router.post("/professional")
async def register_professional(
    body: RegisterProfessionalRequest,
    uid: str = Depends(get_current_uid),
    claims: dict = Depends(get_current_claims),
    service: AccountService = Depends(get_account_service),
):
    """Create the professional account and start the trial (idempotent)"""
    return service.register_professional(uid, claims.get("email"), body, utcnow())


@router.get("/session")
async def load_session(
    account: ProfessionalAccount = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    """Account view for the signed-in user, with an expired trial reconciled"""
    return service.load_session(account, utcnow())


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    account: ProfessionalAccount = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    return service.get_usage(account, utcnow())


@router.post("/limits/{resource}/check")
async def check_limit(
    resource: LimitedResource,
    account: ProfessionalAccount = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    """403 when the current plan does not allow one more `resource`"""
    return service.ensure_can_create(account, resource, utcnow())


@router.get("/excess-resources", response_model=ExcessResourcesResponse)
async def get_excess_resources(
    account: ProfessionalAccount = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    return service.check_excess_resources(account, utcnow())


@router.post("/plan-transition/seen")
async def mark_plan_transition_seen(
    account: ProfessionalAccount = Depends(get_current_account),
    service: AccountService = Depends(get_account_service),
):
    return service.mark_transition_seen(account)
