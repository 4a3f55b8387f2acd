"""Helpers shared by the CSV / XLSX bulk importers."""
import csv
import io
import unicodedata
from decimal import Decimal, InvalidOperation

import openpyxl
from django.conf import settings


def normalize_header(value) -> str:
    """Normalize header labels so "Pers No", "PERS_NO" and "pers-no" match."""
    cleaned = str(value or "").strip().lower()
    cleaned = unicodedata.normalize("NFKD", cleaned)
    cleaned = "".join(ch for ch in cleaned if not unicodedata.combining(ch))
    for ch in (" ", "-", "_", "/", "\\", ".", "(", ")", ":"):
        cleaned = cleaned.replace(ch, "")
    return cleaned


def build_header_map(fieldnames) -> dict:
    return {normalize_header(name): name for name in (fieldnames or []) if name is not None}


def row_value(row: dict, header_map: dict, *aliases: str) -> str:
    """Return the first non-empty value matching one of the provided aliases."""
    for alias in aliases:
        key = header_map.get(normalize_header(alias))
        if key is None:
            continue
        raw = row.get(key)
        if raw is None:
            continue
        text = str(raw).strip()
        if text != "":
            return text
    return ""


def parse_int(raw_value, *, field_label: str, default: int = 0) -> int:
    value = str(raw_value or "").strip().replace(",", "")
    if not value:
        return default
    try:
        return int(Decimal(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Invalid {field_label}: {raw_value}")


def parse_decimal(raw_value, *, field_label: str, default: Decimal = Decimal("0")) -> Decimal:
    value = str(raw_value or "").strip().replace(" ", "").replace(",", "")
    if not value:
        return default
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid {field_label}: {raw_value}")


def read_uploaded_bytes(uploaded_file) -> bytes:
    """Read an uploaded file after checking it is present and not too large."""
    if not uploaded_file:
        raise ValueError("No file provided.")
    max_size = getattr(settings, "IMPORT_MAX_UPLOAD_BYTES", 5 * 1024 * 1024)
    if getattr(uploaded_file, "size", 0) and uploaded_file.size > max_size:
        raise ValueError(f"File exceeds {max_size // (1024 * 1024)} MB.")
    raw = uploaded_file.read()
    if not raw:
        raise ValueError("The uploaded file is empty.")
    return raw


def decode_csv_bytes(raw: bytes) -> str:
    """Decode CSV bytes, accepting a UTF-8 BOM and falling back to latin-1."""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def build_csv_dict_reader(content: str) -> csv.DictReader:
    """Build a DictReader with automatic delimiter detection."""
    sample = content[:4096]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;|\t")
    except csv.Error:
        dialect = csv.excel
    return csv.DictReader(io.StringIO(content), dialect=dialect)


def read_xlsx_dict_rows(raw: bytes) -> list[dict]:
    """Return the active sheet of an .xlsx workbook as a list of dicts keyed by header."""
    wb = openpyxl.load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    try:
        ws = wb.active
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        fieldnames = [str(col).strip() if col is not None else "" for col in header]
        records = []
        for row in rows:
            if row is None or all(cell in (None, "") for cell in row):
                continue
            padded = list(row) + [None] * (len(fieldnames) - len(row))
            records.append(
                {name: ("" if value is None else value) for name, value in zip(fieldnames, padded) if name}
            )
        return records
    finally:
        wb.close()


def read_tabular_upload(uploaded_file) -> list[dict]:
    """Read a CSV or XLSX upload into a list of dict rows."""
    raw = read_uploaded_bytes(uploaded_file)
    name = (getattr(uploaded_file, "name", "") or "").lower()
    if name.endswith((".xlsx", ".xlsm")):
        return read_xlsx_dict_rows(raw)
    return list(build_csv_dict_reader(decode_csv_bytes(raw)))
