# licitahub/routers/saved_filters.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
import logging

from licitahub.core.auth import User, get_current_user
from licitahub.database import get_db
from licitahub.models import SavedFilter
from licitahub.models.schemas import SavedFilterCreate, SavedFilterResponse
from licitahub.services.categories import normalize_category

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/saved-filters", tags=["Saved Filters"])

@router.get("", response_model=List[SavedFilterResponse])
def list_saved_filters(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the current user's saved filters, most recent first"""
    return db.query(SavedFilter).filter(
        SavedFilter.user_id == current_user.user_id
    ).order_by(SavedFilter.created_at.desc(), SavedFilter.id.desc()).all()

@router.post("", response_model=SavedFilterResponse, status_code=status.HTTP_201_CREATED)
def create_saved_filter(
    filter_data: SavedFilterCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Save the given search criteria under a name.
    Saved filters are snapshots: to change one, delete it and save a new one.
    """
    saved = SavedFilter(
        user_id=current_user.user_id,
        name=filter_data.name,
        keyword=filter_data.keyword,
        category=normalize_category(filter_data.category),
        locality=filter_data.locality,
        value_min=filter_data.value_min,
        value_max=filter_data.value_max,
        date_from=filter_data.date_from,
        date_to=filter_data.date_to
    )

    db.add(saved)
    db.commit()
    db.refresh(saved)

    logger.info(f"User {current_user.user_id} saved filter '{saved.name}' ({saved.id})")
    return saved

@router.delete("/{filter_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_saved_filter(
    filter_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete one of the current user's saved filters"""
    saved = db.query(SavedFilter).filter(
        SavedFilter.id == filter_id,
        SavedFilter.user_id == current_user.user_id
    ).first()

    if not saved:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Saved filter not found or doesn't belong to you"
        )

    db.delete(saved)
    db.commit()

    return None
