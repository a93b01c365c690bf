from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from lead_crm_svc.schemas.common import CamelModel, Pagination


class StudentResponse(CamelModel):
    id: int
    student_name: str
    mobile_number: str
    email: str
    course: str
    center: str
    status: str
    attended_by: str
    created_by: str
    attended_at: str
    notes: str
    created_at: Optional[datetime] = None


class StudentList(CamelModel):
    students: List[StudentResponse]
    pagination: Pagination


class ImportRowError(CamelModel):
    row: int
    error: str


class ImportResult(CamelModel):
    imported: int = 0
    duplicates: int = 0
    failed: int = 0
    total: int = 0
    errors: List[ImportRowError] = []
    cancelled: bool = False
