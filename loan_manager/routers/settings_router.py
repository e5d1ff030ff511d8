from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette import status

from loan_manager.core.security import require_admin
from loan_manager.models.user_model import User
from loan_manager.schemas.settings_schema import SettingsCreate, SettingsPatch, SettingsResult
from loan_manager.services import settings_service
from loan_manager.utils.database import get_db

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("", response_model=SettingsResult)
def get_settings(db: Session = Depends(get_db)):
    return {"message": "Fetched system settings", "settings": settings_service.get_settings(db)}


@router.post("", response_model=SettingsResult, status_code=status.HTTP_201_CREATED)
def create_settings(
        payload: SettingsCreate,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    row = settings_service.create_settings(db, payload)
    return {"message": "Settings created successfully", "settings": row}


@router.put("", response_model=SettingsResult, status_code=status.HTTP_201_CREATED)
def update_settings(
        payload: SettingsPatch,
        admin: User = Depends(require_admin),
        db: Session = Depends(get_db),
):
    row = settings_service.update_settings(db, payload)
    return {"message": "Settings updated successfully", "settings": row}
