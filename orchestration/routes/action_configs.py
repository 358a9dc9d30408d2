"""Autonomous action configuration routes."""

import logging
import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from orchestration.database import get_db
from orchestration.models.action_config import ActionConfig
from orchestration.schemas.orchestration import ActionConfigResponse, ActionConfigUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/action-configs", tags=["action-configs"])


@router.get("", response_model=List[ActionConfigResponse])
def list_action_configs(project_id: uuid.UUID, db: Session = Depends(get_db)):
    """List a project's action toggles."""
    return (
        db.query(ActionConfig)
        .filter(ActionConfig.project_id == project_id)
        .order_by(ActionConfig.action_category, ActionConfig.action_name)
        .all()
    )


@router.put("/{config_id}", response_model=ActionConfigResponse)
def update_action_config(config_id: uuid.UUID, data: ActionConfigUpdate, db: Session = Depends(get_db)):
    """Enable or disable an action, or change its approval and risk settings."""
    config = db.query(ActionConfig).filter(ActionConfig.id == config_id).first()
    if not config:
        raise HTTPException(status_code=404, detail="Action config not found")

    for field, value in data.model_dump(exclude_unset=True, exclude_none=True, mode="json").items():
        setattr(config, field, value)
    db.commit()
    db.refresh(config)

    logger.info(f"Action config {config.action_key} updated for project {config.project_id}")
    return config
