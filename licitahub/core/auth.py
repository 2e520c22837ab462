from datetime import datetime
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from licitahub.core.config import settings
from licitahub.database import get_db
from licitahub.models import Profile, UserRole

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

security = HTTPBearer()

# Pydantic Models for API
class User(BaseModel):
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None

# Token verification (tokens are issued by the external identity provider)
def decode_access_token(token: str) -> dict:
    options = {} if settings.JWT_AUDIENCE else {"verify_aud": False}
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        options=options
    )

# Database operations
def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.id == user_id).first()

def get_or_create_profile(db: Session, user: User) -> Profile:
    """Profiles are created lazily the first time an identity reaches the API"""
    profile = get_profile(db, user.user_id)
    if profile is None:
        try:
            profile = Profile(id=user.user_id, email=user.email, full_name=user.full_name)
            db.add(profile)
            db.commit()
            db.refresh(profile)
            logger.info(f"Created profile for user {user.user_id}")
            return profile
        except IntegrityError:
            # A concurrent request for the same identity inserted it first
            db.rollback()
            profile = get_profile(db, user.user_id)
            if profile is None:
                raise

    if user.email and profile.email != user.email:
        profile.email = user.email
        db.commit()
    return profile

def user_roles(db: Session, user_id: str) -> list:
    return [r.role for r in db.query(UserRole).filter(UserRole.user_id == user_id).all()]

def is_admin(db: Session, user_id: str) -> bool:
    return db.query(UserRole).filter(
        UserRole.user_id == user_id,
        UserRole.role == ADMIN_ROLE
    ).first() is not None

def has_active_subscription(profile: Profile, now: Optional[datetime] = None) -> bool:
    if not profile.subscribed:
        return False
    if profile.subscription_end is None:
        return True
    end = profile.subscription_end.replace(tzinfo=None)
    return end > (now or datetime.utcnow())

# FastAPI dependency for protected routes
async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Validate the bearer token and make sure the identity has a profile"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception

    metadata = payload.get("user_metadata") or {}
    user = User(
        user_id=str(user_id),
        email=payload.get("email"),
        full_name=metadata.get("full_name") if isinstance(metadata, dict) else None
    )
    get_or_create_profile(db, user)

    # Set user info on request state for audit middleware
    request.state.user_id = user.user_id

    return user

async def require_admin(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> User:
    if not is_admin(db, current_user.user_id):
        logger.info(f"User {current_user.user_id} is not an admin")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acesso negado. Apenas administradores podem acessar este recurso."
        )
    return current_user

async def require_subscription(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> User:
    """Search is a paid feature: admins and active subscribers only"""
    if not settings.REQUIRE_SUBSCRIPTION:
        return current_user

    profile = get_profile(db, current_user.user_id)
    if profile is not None and has_active_subscription(profile):
        return current_user
    if is_admin(db, current_user.user_id):
        return current_user

    raise HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail="Assinatura ativa necessária para buscar licitações."
    )
