"""
Excel workbook table I/O.

Every call opens the file, works on one sheet and writes the whole workbook
back. Read-modify-write cycles hold a re-entrant lock shared by every store
pointing at the same path, which serializes writers inside one process only;
separate processes sharing the file can still overwrite each other.
"""
import io
import logging
import threading
import zipfile
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import InvalidFileException

from consumables.domain.errors import StorageError
from consumables.infrastructure.workbook.schema import (
    ALL_SHEETS,
    SheetSchema,
    cell_text,
    date_cell_text,
)

logger = logging.getLogger(__name__)

_path_locks: dict[str, threading.RLock] = {}
_path_locks_guard = threading.Lock()

RowMatcher = Callable[[Mapping[str, Any]], bool]


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _path_locks_guard:
        return _path_locks.setdefault(key, threading.RLock())


def _is_blank(values: Sequence[Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def find_sheet(workbook: Workbook, name: str):
    """Exact title first, then a trimmed substring match in either direction."""
    if name in workbook.sheetnames:
        return workbook[name]
    for title in workbook.sheetnames:
        trimmed = title.strip()
        if trimmed and (trimmed == name or name in trimmed or trimmed in name):
            return workbook[title]
    return None


def build_workbook(contents: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None) -> Workbook:
    """New workbook with every sheet and header row, optionally pre-filled."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    for schema in ALL_SHEETS:
        sheet = workbook.create_sheet(schema.name)
        sheet.append(schema.headers)
        for record in (contents or {}).get(schema.name, ()):
            _append_row(sheet, [_cell_value(record.get(name)) for _, name in schema.columns])
    return workbook


def workbook_bytes(workbook: Workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class _Text(str):
    """A value written as a string cell even when it starts with '='."""


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str):
        # Control characters are not allowed in worksheet XML.
        return _Text(ILLEGAL_CHARACTERS_RE.sub("", value))
    return value


def _append_row(sheet, values: Sequence[Any]) -> None:
    sheet.append(values)
    row_idx = sheet.max_row
    for col_idx, value in enumerate(values, 1):
        if isinstance(value, _Text) and value.startswith("="):
            sheet.cell(row=row_idx, column=col_idx).data_type = "s"


class WorkbookStore:
    def __init__(self, path) -> None:
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    # ==================== FILE LIFECYCLE ====================

    def exists(self) -> bool:
        return self.path.exists()

    def ensure_exists(self) -> None:
        with self._lock:
            if self.path.exists():
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._save(build_workbook())
            logger.info(f"Created workbook with default sheets: {self.path}")

    def read_bytes(self) -> bytes:
        with self._lock:
            self.ensure_exists()
            try:
                return self.path.read_bytes()
            except OSError as e:
                raise StorageError(f"Excel 파일을 읽을 수 없습니다: {self.path}") from e

    def _open(self, data_only: bool = False) -> Workbook:
        try:
            return load_workbook(self.path, data_only=data_only)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
            logger.error(f"Failed to read workbook {self.path}: {e}")
            raise StorageError(f"Excel 파일을 읽을 수 없습니다: {self.path}") from e

    def _save(self, workbook: Workbook) -> None:
        try:
            workbook.save(self.path)
        except OSError as e:
            logger.error(f"Failed to write workbook {self.path}: {e}")
            raise StorageError(f"Excel 파일을 저장할 수 없습니다: {self.path}") from e

    # ==================== READS ====================

    def read_raw(self, schema: SheetSchema) -> list[tuple]:
        """All rows of the sheet, header and blank rows included."""
        with self._lock:
            if not self.path.exists():
                logger.warning(f"Workbook not found: {self.path}")
                return []
            workbook = self._open(data_only=True)
        sheet = find_sheet(workbook, schema.name)
        if sheet is None:
            logger.warning(f"Sheet '{schema.name}' not found in {self.path}: {workbook.sheetnames}")
            return []
        return list(sheet.iter_rows(values_only=True))

    def read_rows(self, schema: SheetSchema) -> list[dict[str, Any]]:
        """Rows keyed by canonical field name; unknown headers pass through."""
        raw = self.read_raw(schema)
        if not raw:
            return []
        fields = [schema.field_for(header) for header in raw[0]]
        records = []
        for values in raw[1:]:
            if _is_blank(values):
                continue
            record = {}
            for name, value in zip(fields, values):
                if not name:
                    continue
                record[name] = date_cell_text(value) if name in schema.date_fields else value
            records.append(record)
        return records

    # ==================== WRITES ====================

    def append_rows(self, schema: SheetSchema, records: Sequence[Mapping[str, Any]]) -> None:
        if not records:
            return
        with self._lock:
            self.ensure_exists()
            workbook = self._open()
            header, body = self._load_table(workbook, schema)
            columns = self._column_index(schema, header)
            for record in records:
                row = [""] * len(header)
                for _, name in schema.columns:
                    row[columns[name]] = _cell_value(record.get(name))
                body.append(row)
            self._replace_sheet(workbook, schema, header, body)
            self._save(workbook)
        logger.info(f"Appended {len(records)} row(s) to '{schema.name}'")

    def update_rows(
        self,
        schema: SheetSchema,
        matcher: RowMatcher,
        changes: Mapping[str, Any],
    ) -> bool:
        """Apply ``changes`` to the first row ``matcher`` accepts.

        Returns False when the workbook, sheet or row does not exist.
        """
        unknown = set(changes) - {name for _, name in schema.columns}
        if unknown:
            raise ValueError(f"unknown fields for '{schema.name}': {sorted(unknown)}")
        with self._lock:
            if not self.path.exists():
                return False
            workbook = self._open()
            if find_sheet(workbook, schema.name) is None:
                return False
            header, body = self._load_table(workbook, schema)
            columns = self._column_index(schema, header)
            for row in body:
                row.extend([""] * (len(header) - len(row)))
                record = {name: row[idx] for name, idx in columns.items()}
                if matcher(record):
                    for name, value in changes.items():
                        row[columns[name]] = _cell_value(value)
                    break
            else:
                return False
            self._replace_sheet(workbook, schema, header, body)
            self._save(workbook)
        return True

    # ==================== SHEET HELPERS ====================

    def _load_table(self, workbook: Workbook, schema: SheetSchema) -> tuple[list, list[list]]:
        sheet = find_sheet(workbook, schema.name)
        if sheet is None:
            return list(schema.headers), []
        rows = [[_stored_value(cell) for cell in cells] for cells in sheet.iter_rows()]
        if not rows or _is_blank(rows[0]):
            return list(schema.headers), [r for r in rows[1:] if not _is_blank(r)]
        header = [cell_text(h) for h in rows[0]]
        body = [r for r in rows[1:] if not _is_blank(r)]
        return header, body

    @staticmethod
    def _column_index(schema: SheetSchema, header: list) -> dict[str, int]:
        """Map canonical fields to column positions, adding missing columns."""
        columns: dict[str, int] = {}
        for idx, value in enumerate(header):
            name = schema.field_for(value)
            if name and name not in columns:
                columns[name] = idx
        for label, name in schema.columns:
            if name not in columns:
                header.append(label)
                columns[name] = len(header) - 1
        return columns

    @staticmethod
    def _replace_sheet(workbook: Workbook, schema: SheetSchema, header: list, body: list[list]) -> None:
        sheet = find_sheet(workbook, schema.name)
        if sheet is not None:
            title = sheet.title
            position = workbook.index(sheet)
            workbook.remove(sheet)
        else:
            title = schema.name
            position = len(workbook.sheetnames)
        sheet = workbook.create_sheet(title, position)
        sheet.append(header)
        width = len(header)
        for row in body:
            padded = list(row) + [""] * (width - len(row))
            _append_row(sheet, ["" if v is None else v for v in padded])


def _stored_value(cell) -> Any:
    """Cell value for rewriting; string cells stay strings, formulas stay formulas."""
    if cell.data_type == "s" and isinstance(cell.value, str):
        return _Text(cell.value)
    return cell.value
