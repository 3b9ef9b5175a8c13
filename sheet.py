import csv
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from openpyxl import load_workbook

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
# A CSV cell holding a formula call, e.g. =IMAGE("https://...")
CSV_FORMULA_RE = re.compile(r"^=[A-Za-z_][A-Za-z0-9_.]*\(")


@dataclass
class SheetTable:
    """
    A sheet held in memory: header row, data rows and their formulas.

    rows[i] / formulas[i] are data row i (sheet row i + 2). formulas hold ""
    where a cell has no formula.
    """

    path: Path
    headers: List[str]
    rows: List[List[Any]]
    formulas: List[List[str]]
    sheet_name: Optional[str] = None
    workbook: Any = field(default=None, repr=False)

    def column_index(self, name: str) -> Optional[int]:
        try:
            return self.headers.index(name)
        except ValueError:
            return None

    def cell(self, row_index: int, name: str) -> Any:
        idx = self.column_index(name)
        if idx is None:
            return None
        row = self.rows[row_index]
        return row[idx] if idx < len(row) else None

    def formula(self, row_index: int, name: str) -> str:
        idx = self.column_index(name)
        if idx is None:
            return ""
        row = self.formulas[row_index]
        return row[idx] if idx < len(row) else ""


def _header_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _pad(row: List[Any], width: int, fill: Any) -> List[Any]:
    return (row + [fill] * (width - len(row)))[:width]


def _load_excel(path: Path, sheet_name: Optional[str]) -> SheetTable:
    # Two views of the same file: cached values, and the workbook that keeps formulas (and is saved back).
    values_wb = load_workbook(path, data_only=True)
    formulas_wb = load_workbook(path, keep_vba=path.suffix.lower() == ".xlsm")
    name = sheet_name or formulas_wb.active.title
    if name not in formulas_wb.sheetnames:
        raise RuntimeError(f"Sheet not found: {name}")
    values_ws = values_wb[name]
    formulas_ws = formulas_wb[name]

    value_rows = [list(r) for r in values_ws.iter_rows(values_only=True)]
    formula_rows = [list(r) for r in formulas_ws.iter_rows(values_only=True)]
    if not value_rows:
        return SheetTable(path, [], [], [], name, formulas_wb)

    headers = [_header_text(h) for h in value_rows[0]]
    width = len(headers)
    rows: List[List[Any]] = []
    formulas: List[List[str]] = []
    for r, values in enumerate(value_rows[1:], start=1):
        raw_formulas = formula_rows[r] if r < len(formula_rows) else []
        fx = [v if isinstance(v, str) and v.startswith("=") else "" for v in raw_formulas]
        rows.append(_pad(values, width, None))
        formulas.append(_pad(fx, width, ""))
    return SheetTable(path, headers, rows, formulas, name, formulas_wb)


def _load_csv(path: Path) -> SheetTable:
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        all_rows = list(csv.reader(f))
    if not all_rows:
        return SheetTable(path, [], [], [])

    headers = [_header_text(h) for h in all_rows[0]]
    width = len(headers)
    rows: List[List[Any]] = []
    formulas: List[List[str]] = []
    for raw in all_rows[1:]:
        values: List[Any] = []
        fx: List[str] = []
        for cell in raw:
            if CSV_FORMULA_RE.match(cell.strip()):
                values.append("")
                fx.append(cell.strip())
            else:
                values.append(cell)
                fx.append("")
        rows.append(_pad(values, width, ""))
        formulas.append(_pad(fx, width, ""))
    return SheetTable(path, headers, rows, formulas)


def load_sheet(path: str, sheet_name: Optional[str] = None) -> SheetTable:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Sheet not found: {p}")
    if p.suffix.lower() in EXCEL_SUFFIXES:
        return _load_excel(p, sheet_name)
    if p.suffix.lower() == ".csv":
        return _load_csv(p)
    raise RuntimeError(f"Unsupported sheet type: {p.suffix} (use .xlsx, .xlsm or .csv)")


def ensure_column(table: SheetTable, name: str) -> int:
    """Return the column index of `name`, appending an empty column to the sheet if missing."""
    idx = table.column_index(name)
    if idx is not None:
        return idx
    table.headers.append(name)
    for row in table.rows:
        row.extend([None] * (len(table.headers) - len(row)))
    for fx in table.formulas:
        fx.extend([""] * (len(table.headers) - len(fx)))
    idx = len(table.headers) - 1
    if table.workbook is not None:
        table.workbook[table.sheet_name].cell(row=1, column=idx + 1, value=name)
    return idx


def set_cell(table: SheetTable, row_index: int, name: str, value: Any) -> None:
    """Write a value into data row `row_index` under header `name`."""
    idx = table.column_index(name)
    if idx is None:
        raise KeyError(f"Missing column: {name}")
    row = table.rows[row_index]
    row.extend([None] * (idx + 1 - len(row)))
    row[idx] = value
    if table.workbook is not None:
        table.workbook[table.sheet_name].cell(row=row_index + 2, column=idx + 1, value=value)


def save_sheet(table: SheetTable) -> None:
    if table.workbook is not None:
        table.workbook.save(table.path)
        return

    def out(row_index: int, col: int) -> Any:
        fx = table.formulas[row_index][col] if col < len(table.formulas[row_index]) else ""
        if fx:
            return fx
        value = table.rows[row_index][col] if col < len(table.rows[row_index]) else ""
        return "" if value is None else value

    with table.path.open("w", encoding="utf-8", newline="") as f:
        w = csv.writer(f)
        w.writerow(table.headers)
        for i in range(len(table.rows)):
            w.writerow([out(i, c) for c in range(len(table.headers))])
