# licitahub/routers/billing.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

from licitahub.core.auth import User, get_current_user, get_or_create_profile
from licitahub.core.errors import BillingError
from licitahub.database import get_db
from licitahub.models import Profile
from licitahub.models.schemas import BillingSessionResponse, SubscriptionStatusResponse
from licitahub.services.billing import BillingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/billing", tags=["Billing"])


async def get_billing_service():
    """One billing client per request, closed when the request ends"""
    service = BillingService()
    try:
        yield service
    finally:
        await service.close()


async def _ensure_customer_id(db: Session, profile: Profile, billing: BillingService):
    """Find the profile's Stripe customer by email the first time it is needed"""
    if profile.stripe_customer_id or not profile.email:
        return profile.stripe_customer_id

    customer_id = await billing.find_customer_id(profile.email)
    if customer_id:
        profile.stripe_customer_id = customer_id
        db.commit()
    return customer_id


def _billing_failure(action: str, error: Exception) -> HTTPException:
    logger.error(f"❌ Billing {action} failed: {str(error)}")
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Erro ao comunicar com o provedor de pagamentos: {str(error)}"
    )


@router.get("/subscription", response_model=SubscriptionStatusResponse)
async def get_subscription(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    """Refresh the subscription state from Stripe and store it on the profile"""
    profile = get_or_create_profile(db, current_user)

    try:
        customer_id = await _ensure_customer_id(db, profile, billing)
        if customer_id:
            subscribed, subscription_end = await billing.get_subscription_status(customer_id)
        else:
            subscribed, subscription_end = False, None
    except BillingError as e:
        raise _billing_failure("status check", e)

    profile.subscribed = subscribed
    profile.subscription_end = subscription_end
    db.commit()

    logger.info(f"Subscription for {current_user.user_id}: subscribed={subscribed}, end={subscription_end}")
    return SubscriptionStatusResponse(subscribed=subscribed, subscription_end=subscription_end)


@router.post("/checkout", response_model=BillingSessionResponse)
async def create_checkout(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    """Start a subscription checkout and return the hosted page URL"""
    profile = get_or_create_profile(db, current_user)

    try:
        customer_id = await _ensure_customer_id(db, profile, billing)
        url = await billing.create_checkout_session(
            user_id=current_user.user_id,
            email=profile.email,
            customer_id=customer_id
        )
    except BillingError as e:
        raise _billing_failure("checkout", e)

    return BillingSessionResponse(url=url)


@router.post("/portal", response_model=BillingSessionResponse)
async def create_portal(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing: BillingService = Depends(get_billing_service)
):
    """Open the self-service billing portal for an existing customer"""
    profile = get_or_create_profile(db, current_user)

    try:
        customer_id = await _ensure_customer_id(db, profile, billing)
        if not customer_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Nenhuma assinatura encontrada para este usuário"
            )
        url = await billing.create_portal_session(customer_id)
    except BillingError as e:
        raise _billing_failure("portal", e)

    return BillingSessionResponse(url=url)
