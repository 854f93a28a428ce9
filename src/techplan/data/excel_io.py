from __future__ import annotations

import io
import re
import unicodedata
from datetime import datetime, time

import pandas as pd


def read_excel_bytes(content: bytes) -> pd.DataFrame:
    """Read .xlsx bytes into a DataFrame.

    v1: reads first sheet.
    """
    bio = io.BytesIO(content)
    df = pd.read_excel(bio)
    df.columns = [str(c).strip() for c in df.columns]
    return df


def normalize_col_name(name: str) -> str:
    """Normalize spreadsheet column names to an ASCII-ish snake_case token.

    Handles accents, non-breaking spaces, tabs, and punctuation
    ("Hora de Inicio" -> "hora_de_inicio", "Break (min)" -> "break_min").
    """

    s = str(name or "").strip().lower()
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.replace("\u00a0", " ")
    s = re.sub(r"[\s\t]+", " ", s)
    s = re.sub(r"[^a-z0-9 ]+", " ", s)
    s = re.sub(r"\s+", "_", s).strip("_")
    return s


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [normalize_col_name(c) for c in df.columns]
    return df


def require_columns(df: pd.DataFrame, required: set[str]) -> None:
    missing = sorted(required - set(df.columns))
    if missing:
        raise ValueError(f"missing columns: {', '.join(missing)}")


def is_blank(value) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return str(value).strip() == "" or str(value).strip().lower() == "nan"


def to_int01(value) -> int:
    """Coerce common spreadsheet numeric/bool-ish values to 0/1."""
    if is_blank(value):
        return 0
    s = str(value).strip().lower()
    if s in {"1", "true", "yes", "y", "si", "sí", "x"}:
        return 1
    if s in {"0", "false", "no", "n"}:
        return 0
    try:
        return 1 if int(float(s)) != 0 else 0
    except ValueError:
        return 0


_DIGITS_RE = re.compile(r"^\d+$")


def parse_int_strict(value, *, field: str) -> int:
    """Parse an integer cell.

    Accepts ints, floats like 60.0, and digit-only strings.
    Raises ValueError otherwise.
    """
    if value is None:
        raise ValueError(f"{field} is empty")

    if isinstance(value, bool):
        raise ValueError(f"{field} is invalid: {value!r}")

    if isinstance(value, int):
        return int(value)

    if isinstance(value, float):
        if pd.isna(value):
            raise ValueError(f"{field} is empty")
        if float(value).is_integer():
            return int(value)
        raise ValueError(f"{field} is invalid (not an integer): {value!r}")

    s = str(value).strip()
    if not s:
        raise ValueError(f"{field} is empty")
    if _DIGITS_RE.match(s):
        return int(s)

    raise ValueError(f"{field} is invalid: {value!r}")


def coerce_float(value) -> float | None:
    """Coerce common spreadsheet numeric representations to float.

    Returns None when value is empty/NaN.
    Accepts numbers and strings (handles ',' as decimal separator).
    """
    if is_blank(value):
        return None

    if isinstance(value, (int, float)):
        return float(value)

    s = str(value).strip()

    # 1.234,56 -> 1234.56
    if "," in s and "." in s:
        s = s.replace(".", "").replace(",", ".")
    elif "," in s:
        s = s.replace(",", ".")

    try:
        return float(s)
    except ValueError:
        return None


def coerce_hhmm(value, *, field: str) -> str:
    """Coerce a time cell (``time``, ``datetime``, or ``"8:00"``) to ``HH:MM``."""
    if is_blank(value):
        raise ValueError(f"{field} is empty")
    if isinstance(value, datetime):
        return value.strftime("%H:%M")
    if isinstance(value, time):
        return value.strftime("%H:%M")

    s = str(value).strip()
    m = re.match(r"^(\d{1,2})[:.](\d{2})(?::\d{2})?$", s)
    if not m:
        raise ValueError(f"{field} is invalid (expected HH:MM): {value!r}")
    hour, minute = int(m.group(1)), int(m.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"{field} is invalid (expected HH:MM): {value!r}")
    return f"{hour:02d}:{minute:02d}"


def parse_work_days(value) -> list[int]:
    """Parse weekday indices (0=Sunday..6=Saturday).

    Accepts lists, ``"1,2,3,4,5"``, ranges such as ``"1-5"`` and mixes
    like ``"1-3,5"``. Returns a sorted, de-duplicated list.
    """
    if is_blank(value):
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        tokens = [str(v) for v in value]
    else:
        tokens = re.split(r"[,;\s]+", str(value).strip())

    days: set[int] = set()
    for token in tokens:
        token = token.strip()
        if not token:
            continue
        if "-" in token:
            lo, hi = token.split("-", 1)
            start = parse_int_strict(lo.strip(), field="work_days")
            end = parse_int_strict(hi.strip(), field="work_days")
            if start > end:
                raise ValueError(f"work_days is invalid: {value!r}")
            days.update(range(start, end + 1))
        else:
            days.add(parse_int_strict(float(token) if "." in token else token, field="work_days"))

    if any(d < 0 or d > 6 for d in days):
        raise ValueError(f"work_days out of range (0-6): {value!r}")
    return sorted(days)


def normalize_key(value) -> str | None:
    """Normalize identifiers read from spreadsheets.

    Numeric ids often come back as floats (``101.0``); those are turned into
    their integer text. Anything else is returned stripped.
    """
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    s = str(value).replace("\u00a0", " ").strip()
    if re.match(r"^\d+\.0+$", s):
        return s.split(".", 1)[0]
    return s
