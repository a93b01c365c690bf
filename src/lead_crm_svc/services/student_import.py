"""
Bulk student import.

Spreadsheets are streamed row by row (openpyxl read-only mode for ``.xlsx``,
the csv module over lines decoded one at a time for ``.csv``) and written in
fixed-size batches. Memory is bounded by the batch size: duplicate checks
query the store per batch, which already holds every earlier batch. Bad rows
are reported individually and never abort the import. A cancel event is
checked between batches.
"""
import codecs
import csv
import logging
import os
import threading
import zipfile
from datetime import date, datetime
from typing import IO, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lead_crm_svc import config
from lead_crm_svc.errors import Unavailable, ValidationFailed
from lead_crm_svc.models import Student
from lead_crm_svc.models.student import PLACEHOLDER
from lead_crm_svc.schemas.common import Pagination
from lead_crm_svc.schemas.student import ImportResult, ImportRowError
from lead_crm_svc.services.unit_of_work import transaction

logger = logging.getLogger(__name__)

HEADER_FIELDS = {
    "student name": "student_name",
    "studentname": "student_name",
    "name": "student_name",
    "mobile number": "mobile_number",
    "mobile number with country code": "mobile_number",
    "mobilenumber": "mobile_number",
    "phone": "mobile_number",
    "phone number": "mobile_number",
    "email": "email",
    "course": "course",
    "center": "center",
    "status": "status",
    "attended by": "attended_by",
    "attendedby": "attended_by",
    "attended": "attended_by",
    "created by": "created_by",
    "createdby": "created_by",
    "attended at": "attended_at",
    "attendedat": "attended_at",
    "notes": "notes",
    "note": "notes",
}

Row = Tuple[int, Dict[str, str]]


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # numeric phone cells come back as floats
        value = int(value)
    elif isinstance(value, (datetime, date)):
        value = value.isoformat()
    return str(value).strip()


def _xlsx_rows(fileobj: IO[bytes]) -> Iterator[Sequence]:
    try:
        workbook = load_workbook(fileobj, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError) as e:
        logger.error(e, exc_info=True)
        raise ValidationFailed("Could not read the spreadsheet", field="file") from e
    try:
        sheet = workbook.worksheets[0]
        for row in sheet.iter_rows(values_only=True):
            yield row
    finally:
        workbook.close()


class UnreadableRow:
    """Placeholder yielded for a CSV record that could not be decoded or parsed.

    ``fatal`` rows end the read: the csv module cannot resynchronise after a
    parse error, so nothing past it is trusted.
    """

    def __init__(self, reason: str, fatal: bool = False) -> None:
        self.reason = reason
        self.fatal = fatal


def _decoded_lines(fileobj: IO[bytes], bad_lines: List[int]) -> Iterator[str]:
    # decode line by line so one bad byte only spoils its own record
    for line_num, raw in enumerate(fileobj, start=1):
        if line_num == 1 and raw.startswith(codecs.BOM_UTF8):
            raw = raw[len(codecs.BOM_UTF8):]
        try:
            yield raw.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning("CSV line %s is not valid UTF-8: %s", line_num, e)
            bad_lines.append(line_num)
            yield raw.decode("utf-8", errors="replace")


def _csv_rows(fileobj: IO[bytes]) -> Iterator:
    bad_lines: List[int] = []
    reader = csv.reader(_decoded_lines(fileobj, bad_lines))
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            logger.error("CSV parse error near line %s: %s", reader.line_num, e)
            yield UnreadableRow(f"Could not parse row: {e}", fatal=True)
            return
        if bad_lines:
            del bad_lines[:]
            yield UnreadableRow("Row is not valid UTF-8 text")
        else:
            yield row


def iter_sheet_rows(fileobj: IO[bytes], filename: str) -> Iterator[Sequence]:
    extension = os.path.splitext(filename or "")[1].lower()
    if extension == ".xlsx":
        return _xlsx_rows(fileobj)
    if extension == ".csv":
        return _csv_rows(fileobj)
    raise ValidationFailed(
        "Invalid file type. Only Excel (.xlsx) and CSV files are allowed.",
        field="file",
    )


def map_header(header: Sequence) -> Dict[str, int]:
    """Map model fields to column indexes. The first matching column wins."""
    columns: Dict[str, int] = {}
    for index, cell in enumerate(header):
        field = HEADER_FIELDS.get(_cell_text(cell).lower())
        if field and field not in columns:
            columns[field] = index
    if "mobile_number" not in columns:
        raise ValidationFailed("The header row must include a mobile number column", field="file")
    return columns


def parse_row(row: Sequence, columns: Dict[str, int], max_length: int) -> Dict[str, str]:
    """Build student values from a row; raise ValueError when the row is malformed."""
    values = {}
    for field, index in columns.items():
        text = _cell_text(row[index]) if index < len(row) else ""
        if len(text) > max_length:
            raise ValueError(f"Value for {field} exceeds {max_length} characters")
        values[field] = text or PLACEHOLDER
    if values.get("mobile_number", PLACEHOLDER) == PLACEHOLDER:
        raise ValueError("Missing mobile number")
    return values


def _is_blank(row: Sequence) -> bool:
    return all(_cell_text(cell) == "" for cell in row)


class _BatchWriter:
    def __init__(self, db: Session, result: ImportResult) -> None:
        self.db = db
        self.result = result

    def record_failure(self, row_num: int, message: str) -> None:
        self.result.failed += 1
        self.result.errors.append(ImportRowError(row=row_num, error=message))

    def flush(self, batch: List[Row]) -> None:
        if not batch:
            return
        mobiles = {values["mobile_number"] for _, values in batch}
        existing = set(
            self.db.execute(select(Student.mobile_number).where(Student.mobile_number.in_(mobiles))).scalars().all()
        )

        # earlier batches are committed, so the store query covers them
        seen: Set[str] = set()
        fresh: List[Row] = []
        for row_num, values in batch:
            mobile = values["mobile_number"]
            if mobile in existing or mobile in seen:
                self.result.duplicates += 1
                continue
            seen.add(mobile)
            fresh.append((row_num, values))
        if not fresh:
            return

        try:
            with transaction(self.db, "import_students"):
                self.db.add_all([Student(**values) for _, values in fresh])
            self.result.imported += len(fresh)
        except (SQLAlchemyError, Unavailable) as e:
            logger.warning("Batch insert of %s students failed, retrying row by row: %s", len(fresh), e)
            self._insert_each(fresh)

    def _insert_each(self, rows: List[Row]) -> None:
        for row_num, values in rows:
            try:
                with transaction(self.db, "import_student_row"):
                    self.db.add(Student(**values))
                self.result.imported += 1
            except (SQLAlchemyError, Unavailable) as e:
                logger.error("Student row %s failed: %s", row_num, e)
                self.record_failure(row_num, "Failed to insert")


def import_students(
    db: Session,
    fileobj: IO[bytes],
    filename: str,
    cancel_event: Optional[threading.Event] = None,
    batch_size: Optional[int] = None,
    max_cell_length: Optional[int] = None,
) -> ImportResult:
    """Import students from an uploaded spreadsheet.

    Rows are numbered as the spreadsheet shows them, header included. A row
    whose mobile number is already stored, or appeared earlier in the file,
    counts as a duplicate. Once the header is read, unreadable CSV records
    become row errors, so committed batches are always reported in the result.
    """
    batch_size = batch_size or config.STUDENT_IMPORT_BATCH_SIZE
    max_cell_length = max_cell_length or config.STUDENT_IMPORT_MAX_CELL_LENGTH

    rows = iter_sheet_rows(fileobj, filename)
    header = next(rows, None)
    if isinstance(header, UnreadableRow):
        raise ValidationFailed(f"Could not read the header row: {header.reason}", field="file")
    if header is None or _is_blank(header):
        raise ValidationFailed("The file must contain a header row and data", field="file")
    columns = map_header(header)

    result = ImportResult()
    writer = _BatchWriter(db, result)
    batch: List[Row] = []

    for row_num, row in enumerate(rows, start=2):
        if isinstance(row, UnreadableRow):
            result.total += 1
            writer.record_failure(row_num, row.reason)
            if row.fatal:
                break
            continue
        if _is_blank(row):
            continue
        result.total += 1
        try:
            batch.append((row_num, parse_row(row, columns, max_cell_length)))
        except ValueError as e:
            writer.record_failure(row_num, str(e))
            continue

        if len(batch) >= batch_size:
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break
            writer.flush(batch)
            batch = []

    if not result.cancelled:
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
        else:
            writer.flush(batch)

    logger.info(
        "Student import %s: imported=%s duplicates=%s failed=%s total=%s cancelled=%s",
        filename,
        result.imported,
        result.duplicates,
        result.failed,
        result.total,
        result.cancelled,
    )
    return result


def list_students(
    db: Session,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> Tuple[List[Student], Pagination]:
    stmt = select(Student)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                Student.student_name.ilike(pattern),
                Student.mobile_number.ilike(pattern),
                Student.email.ilike(pattern),
                Student.course.ilike(pattern),
                Student.center.ilike(pattern),
            )
        )
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    stmt = stmt.order_by(Student.created_at.desc(), Student.id.desc()).offset((page - 1) * limit).limit(limit)
    return list(db.execute(stmt).scalars().all()), Pagination.build(page, limit, total)
