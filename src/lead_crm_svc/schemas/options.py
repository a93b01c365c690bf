from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from lead_crm_svc.schemas.common import CamelModel


class LeadStage(CamelModel):
    label: str
    sub_stages: List[str] = Field(default_factory=list)


class OptionsResponse(CamelModel):
    courses: List[str]
    locations: List[str]
    statuses: List[str]
    lead_stages: List[LeadStage]


class OptionsUpdate(CamelModel):
    courses: Optional[List[str]] = None
    locations: Optional[List[str]] = None
    statuses: Optional[List[str]] = None
    lead_stages: Optional[List[LeadStage]] = None
