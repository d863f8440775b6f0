"""Already-parsed spreadsheet rows: header detection, column lookup, cell parsing.

Sheets arrive as a sequence of rows, each a sequence of raw cell values
(str, int, float, datetime or None), exactly as a spreadsheet reader yields
them. The header row is not assumed to be the first one.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterator, Sequence

HEADER_SCAN_ROWS = 20

_EXCEL_EPOCH = datetime(1899, 12, 30)
_DATE_FORMATS = ("%d/%m/%Y", "%d/%m/%Y %H:%M", "%d/%m/%Y %H:%M:%S", "%d-%m-%Y", "%Y/%m/%d")


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


@dataclass(frozen=True)
class Encabezado:
    indice: int  # 0-based index of the header row
    columnas: dict[str, int]  # casefolded header text -> column index
    nombres: tuple[str, ...]  # header texts as written


def detect_header(rows: Sequence[Sequence[Any]], keys: Sequence[str]) -> Encabezado | None:
    """First row among the first HEADER_SCAN_ROWS with a cell equal to one of keys.

    The comparison ignores case and surrounding blanks. When a header text
    repeats, the leftmost column wins.
    """
    wanted = {k.casefold() for k in keys}
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        texts = [cell_text(v) for v in row]
        if not any(t.casefold() in wanted for t in texts):
            continue
        columnas: dict[str, int] = {}
        for col, text in enumerate(texts):
            if text and text.casefold() not in columnas:
                columnas[text.casefold()] = col
        return Encabezado(index, columnas, tuple(t for t in texts if t))
    return None


class SheetRow:
    """One data row addressed by header name."""

    def __init__(self, values: Sequence[Any], encabezado: Encabezado, numero: int, prefijo: bool = False):
        self.values = values
        self.encabezado = encabezado
        self.numero = numero  # 1-based, as the sheet shows it
        self.prefijo = prefijo

    def _index(self, name: str) -> int | None:
        key = name.casefold()
        columnas = self.encabezado.columnas
        if key in columnas:
            return columnas[key]
        if self.prefijo:
            # "Frecuencia " or "Frecuencia (h)" still answer to "Frecuencia"
            for header, col in columnas.items():
                if header.strip().startswith(key):
                    return col
        return None

    def raw(self, name: str, *alternatives: str) -> Any:
        for candidate in (name, *alternatives):
            index = self._index(candidate)
            if index is not None:
                return self.values[index] if index < len(self.values) else None
        return None

    def get(self, name: str, *alternatives: str) -> str:
        """Trimmed text of the first of name/alternatives present in the header, else ''."""
        return cell_text(self.raw(name, *alternatives))

    def __repr__(self) -> str:
        return f"SheetRow(fila={self.numero}, values={list(self.values)!r})"


def data_rows(rows: Sequence[Sequence[Any]], encabezado: Encabezado, prefijo: bool = False) -> Iterator[SheetRow]:
    for index in range(encabezado.indice + 1, len(rows)):
        yield SheetRow(rows[index], encabezado, index + 1, prefijo)


# ── Cell parsing ─────────────────────────────────────────

def limpiar_numero(text: str) -> str:
    """Undo the usual typo of a letter O typed for a zero."""
    return text.replace("O", "0").replace("o", "0")


def parse_decimal(value: Any) -> Decimal | None:
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        number = Decimal(str(value))
        return number if number.is_finite() else None
    text = cell_text(value).replace(" ", "")
    if not text:
        return None
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    # NaN and Infinity are not cell values
    return number if number.is_finite() else None


def parse_entero(value: Any) -> int | None:
    number = parse_decimal(value)
    if number is None:
        return None
    return int(number.to_integral_value())


def parse_fecha(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # spreadsheet serial date
        try:
            return _EXCEL_EPOCH + timedelta(days=float(value))
        except (OverflowError, ValueError):
            return None
    text = cell_text(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None
