# licitahub/routers/admin.py
from fastapi import APIRouter, Depends, HTTPException, status
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from licitahub.core.auth import ADMIN_ROLE, User, get_current_user, get_profile, is_admin, require_admin
from licitahub.database import get_db
from licitahub.models import AdminBootstrap, Profile, UserRole
from licitahub.models.schemas import ProfileResponse, PromoteRequest, PromoteResponse, UserListResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])

FIRST_ADMIN_MESSAGE = "Você é agora o primeiro administrador do sistema!"
PROMOTED_MESSAGE = "Usuário promovido a administrador com sucesso!"
ALREADY_ADMIN_MESSAGE = "Este usuário já é um administrador"
NOT_ALLOWED_MESSAGE = (
    "Apenas administradores podem promover outros usuários. "
    "Entre em contato com um admin existente."
)


def _claim_first_admin(db: Session, user_id: str) -> bool:
    """
    Try to become the first administrator.

    The bootstrap row has a fixed primary key, so exactly one caller can ever
    insert it. Losing the race (or arriving later) surfaces as IntegrityError.
    """
    try:
        db.add(AdminBootstrap(id=1, user_id=user_id))
        db.add(UserRole(user_id=user_id, role=ADMIN_ROLE))
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        return False


@router.get("/users", response_model=UserListResponse)
async def list_users(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List every profile with its roles, newest first"""
    profiles = db.query(Profile).order_by(Profile.created_at.desc()).all()

    users = []
    for profile in profiles:
        roles = [r.role for r in profile.roles]
        users.append(ProfileResponse(
            id=profile.id,
            email=profile.email,
            full_name=profile.full_name,
            subscribed=profile.subscribed,
            subscription_end=profile.subscription_end,
            created_at=profile.created_at,
            roles=roles,
            is_admin=ADMIN_ROLE in roles
        ))

    return UserListResponse(users=users)


@router.post("/promote", response_model=PromoteResponse)
async def promote_user(
    promote_request: Optional[PromoteRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Grant the admin role.

    - While no admin exists, the caller becomes the first admin (``userId`` is ignored).
    - Afterwards only admins may promote, and ``userId`` is required.
    """
    try:
        if _claim_first_admin(db, current_user.user_id):
            logger.info(f"👑 User {current_user.user_id} became the first administrator")
            return PromoteResponse(success=True, message=FIRST_ADMIN_MESSAGE)

        if not is_admin(db, current_user.user_id):
            logger.warning(f"User {current_user.user_id} tried to promote without admin role")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_ALLOWED_MESSAGE)

        target_id = promote_request.user_id if promote_request else None
        if not target_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userId is required")

        if get_profile(db, target_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuário não encontrado")

        try:
            db.add(UserRole(user_id=target_id, role=ADMIN_ROLE))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=ALREADY_ADMIN_MESSAGE)

        logger.info(f"User {target_id} promoted to admin by {current_user.user_id}")
        return PromoteResponse(success=True, message=PROMOTED_MESSAGE)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Promotion failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to promote user: {str(e)}"
        )
