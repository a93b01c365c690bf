from typing import List
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lead_crm_svc.models import OptionSettings
from lead_crm_svc.models.options import GLOBAL_KEY
from lead_crm_svc.schemas.options import OptionsResponse, OptionsUpdate
from lead_crm_svc.services.unit_of_work import rollback_quietly, transaction

logger = logging.getLogger(__name__)


def _clean(values: List[str]) -> List[str]:
    cleaned = []
    for value in values:
        value = (value or "").strip()
        if value:
            cleaned.append(value)
    return cleaned


def ensure_settings(db: Session) -> OptionSettings:
    """Return the global settings row, creating it with defaults on first use."""
    settings = db.execute(select(OptionSettings).where(OptionSettings.key == GLOBAL_KEY)).scalar_one_or_none()
    if settings is not None:
        return settings

    settings = OptionSettings(key=GLOBAL_KEY)
    try:
        with transaction(db, "ensure_settings"):
            db.add(settings)
    except IntegrityError:
        # another request created it first
        rollback_quietly(db)
        return db.execute(select(OptionSettings).where(OptionSettings.key == GLOBAL_KEY)).scalar_one()
    db.refresh(settings)
    return settings


def get_options(db: Session) -> OptionsResponse:
    return OptionsResponse.model_validate(ensure_settings(db))


def update_options(db: Session, payload: OptionsUpdate) -> OptionsResponse:
    settings = ensure_settings(db)
    with transaction(db, "update_options"):
        if payload.courses is not None:
            settings.courses = _clean(payload.courses)
        if payload.locations is not None:
            settings.locations = _clean(payload.locations)
        if payload.statuses is not None:
            settings.statuses = _clean(payload.statuses)
        if payload.lead_stages is not None:
            settings.lead_stages = [
                {"label": stage.label.strip(), "subStages": _clean(stage.sub_stages)}
                for stage in payload.lead_stages
                if stage.label and stage.label.strip()
            ]
    db.refresh(settings)
    logger.info("Option settings updated")
    return OptionsResponse.model_validate(settings)
