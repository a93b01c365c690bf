from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from lead_crm_svc.models import User, get_db
from lead_crm_svc.routers.auth import require
from lead_crm_svc.schemas.common import ApiResponse
from lead_crm_svc.schemas.options import OptionsResponse, OptionsUpdate
from lead_crm_svc.services import options_service
from lead_crm_svc.services.policy import Operation

options_router = APIRouter()


@options_router.get("/", response_model=ApiResponse[OptionsResponse])
def get_options(
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ReadOptions)),
) -> ApiResponse[OptionsResponse]:
    return ApiResponse(message="Options retrieved successfully", data=options_service.get_options(db))


@options_router.put("/", response_model=ApiResponse[OptionsResponse])
def update_options(
    payload: OptionsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require(Operation.ManageOptions)),
) -> ApiResponse[OptionsResponse]:
    return ApiResponse(message="Options updated successfully", data=options_service.update_options(db, payload))
