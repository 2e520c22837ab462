from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from licitahub.core.auth import User, get_current_user, get_or_create_profile, require_subscription, user_roles, ADMIN_ROLE
from licitahub.core.config import settings
from licitahub.core.errors import DetailError, SearchError
from licitahub.core.rate_limit import limiter
from licitahub.database import get_db
from licitahub.models.schemas import (
    DetailErrorResponse,
    DetailRequest,
    DetailResponse,
    ProfileResponse,
    SearchCriteria,
    SearchErrorResponse,
    SearchResponse,
)
from licitahub.services.pncp_client import PNCPClientService
from licitahub.services.search import SearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# ========== DEPENDENCIES ==========

async def get_pncp_client():
    """One PNCP HTTP client per request, closed when the request ends"""
    client = PNCPClientService()
    try:
        yield client
    finally:
        await client.close()

def get_search_service(pncp_client: PNCPClientService = Depends(get_pncp_client)) -> SearchService:
    return SearchService(pncp_client)

# ========== USER INFO ROUTE ==========

@router.get("/auth/me", response_model=ProfileResponse, tags=["Authentication"])
async def get_me(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get current user's profile, roles and subscription state"""
    profile = get_or_create_profile(db, current_user)
    roles = user_roles(db, current_user.user_id)
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        subscribed=profile.subscribed,
        subscription_end=profile.subscription_end,
        created_at=profile.created_at,
        roles=roles,
        is_admin=ADMIN_ROLE in roles
    )

# ========== PROCUREMENT SEARCH ROUTE ==========

@router.post(
    "/search",
    response_model=SearchResponse,
    responses={400: {"model": SearchErrorResponse}, 422: {"model": SearchErrorResponse}, 500: {"model": SearchErrorResponse}},
    tags=["Licitações"]
)
@limiter.limit(settings.SEARCH_RATE_LIMIT)
async def search_procurements(
    request: Request,
    criteria: Optional[SearchCriteria] = None,
    current_user: User = Depends(require_subscription),
    search_service: SearchService = Depends(get_search_service)
):
    """
    Search PNCP procurements published in a date window.

    All body fields are optional. Results keep fetch order and are capped at 200.
    Modalities whose pages failed upstream are listed in `failedCategories`.
    """
    criteria = criteria or SearchCriteria()
    try:
        logger.info(f"Procurement search by {current_user.user_id}")
        return await search_service.search(criteria)
    except SearchError:
        raise
    except Exception as e:
        logger.error(f"Procurement search failed: {str(e)}", exc_info=True)
        raise SearchError(f"Erro ao buscar licitações: {str(e)}")

# ========== PROCUREMENT DETAIL ROUTE ==========

@router.post(
    "/procurements/detail",
    response_model=DetailResponse,
    responses={404: {"model": DetailErrorResponse}, 422: {"model": DetailErrorResponse}, 502: {"model": DetailErrorResponse}},
    tags=["Licitações"]
)
@limiter.limit(settings.SEARCH_RATE_LIMIT)
async def get_procurement_detail(
    request: Request,
    detail_request: DetailRequest,
    current_user: User = Depends(require_subscription),
    search_service: SearchService = Depends(get_search_service)
):
    """Fetch one procurement by CNPJ, year and sequence number"""
    try:
        record = await search_service.get_detail(detail_request)
        return DetailResponse(detail=record)
    except DetailError:
        raise
    except Exception as e:
        logger.error(f"Detail lookup failed: {str(e)}", exc_info=True)
        raise DetailError(f"Erro ao buscar detalhes: {str(e)}")
