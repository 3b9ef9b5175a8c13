import math
import re
from datetime import date, datetime, time as dt_time, timedelta
from typing import Any, List, Optional

from dateutil import parser as dateutil_parser

# ----------------------------
# Image URL helpers
# ----------------------------
IMAGE_EXT_RE = re.compile(r"\.(png|jpe?g|gif|webp)$", re.IGNORECASE)
THUMB_HOST_RE = re.compile(r"\.ytimg\.com", re.IGNORECASE)
IMAGE_FORMULA_RE = re.compile(r'^=(?:_xlfn\.)?IMAGE\(\s*"([^"]+)"', re.IGNORECASE)
YOUTUBE_THUMB_TEMPLATE = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


def is_valid_image_url(url: Any) -> bool:
    """http(s) URL that ends in an image extension or points at a YouTube thumbnail host."""
    if not url:
        return False
    s = str(url).strip()
    if not re.match(r"^https?://", s, re.IGNORECASE):
        return False
    base = s.split("?", 1)[0]
    if IMAGE_EXT_RE.search(base):
        return True
    return bool(THUMB_HOST_RE.search(s))


def is_image_formula(formula: Any) -> bool:
    return bool(re.match(r"^=(?:_xlfn\.)?IMAGE\(", str(formula or "").strip(), re.IGNORECASE))


def parse_image_formula(formula: Any) -> str:
    """Return the URL argument of =IMAGE("url", ...) or an empty string."""
    m = IMAGE_FORMULA_RE.match(str(formula or "").strip())
    return m.group(1) if m else ""


def youtube_thumb_from_id(video_id: Any, template: str = YOUTUBE_THUMB_TEMPLATE) -> str:
    vid = "" if video_id is None else str(video_id).strip()
    return template.format(video_id=vid) if vid else ""


def sanitize_filename(name: Any, fallback_ext: str) -> str:
    base = re.sub(r"[^\w.-]+", "_", str(name or "thumb"))[:100]
    return base if base.endswith(f".{fallback_ext}") else f"{base}.{fallback_ext}"


def file_ext_from_url(url: str, default: str) -> str:
    m = IMAGE_EXT_RE.search(str(url).split("?", 1)[0])
    return m.group(1).lower().replace("jpg", "jpeg") if m else default


def file_name_from_url(url: str) -> str:
    return str(url).rstrip().split("/")[-1] or "image"


def split_urls(raw: Any) -> List[str]:
    return [s.strip() for s in str(raw or "").split(",") if s.strip()]


# ----------------------------
# Scalar parsers
# ----------------------------
def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_percent(value: Any) -> Optional[float]:
    """
    Accept "44.5%", "44.5" or 0.445 and return a 0..1 fraction.
    Anything above 1 is read as a percentage.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        text = str(value).replace("%", "").replace(",", "").strip()
        try:
            num = float(text)
        except ValueError:
            return None
    if not math.isfinite(num):
        return None
    return num / 100 if num > 1 else num


def hhmmss_to_seconds(value: Any) -> Optional[int]:
    """H:MM:SS, MM:SS or plain seconds -> int seconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, timedelta):
        return int(round(value.total_seconds()))
    if isinstance(value, dt_time):
        return value.hour * 3600 + value.minute * 60 + value.second
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parts = [float(p) for p in text.split(":")]
        except ValueError:
            return None
        if len(parts) == 3:
            seconds = parts[0] * 3600 + parts[1] * 60 + parts[2]
        elif len(parts) == 2:
            seconds = parts[0] * 60 + parts[1]
        elif len(parts) == 1:
            seconds = parts[0]
        else:
            return None
    if not math.isfinite(seconds):
        return None
    return int(round(seconds))


def safe_parse_iso_date(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    if not s:
        return None
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", s):
        return s
    try:
        return dateutil_parser.parse(s).date().isoformat()
    except (ValueError, OverflowError):
        return None


# ----------------------------
# Per-column normalization
# ----------------------------
def normalize_image_cell(raw: Any, formula: Any) -> Optional[List[str]]:
    candidates = split_urls(raw)
    if is_image_formula(formula):
        url = parse_image_formula(formula)
        if url:
            candidates.insert(0, url)
    urls = [u for u in candidates if is_valid_image_url(u)]
    return urls or None


def normalize_for_property(
    prop_name: str,
    raw: Any,
    formula: Any = "",
    *,
    percent_props=(),
    duration_props=(),
    date_props=(),
    image_prop: Optional[str] = None,
) -> Any:
    """
    Turn a raw sheet cell into the value the property mapper expects.

    None means "clear this property" (or "no files" for the image property).
    Rule lists are matched on the Notion property name, case-insensitively.
    """
    key = prop_name.casefold()
    is_image = image_prop is not None and key == image_prop.casefold()

    if is_blank(raw):
        if is_image and is_image_formula(formula):
            url = parse_image_formula(formula)
            return [url] if url else None
        return None

    if key in {p.casefold() for p in percent_props}:
        return parse_percent(raw)
    if key in {p.casefold() for p in duration_props}:
        return hhmmss_to_seconds(raw)
    if key in {p.casefold() for p in date_props}:
        return safe_parse_iso_date(raw)
    if is_image:
        return normalize_image_cell(raw, formula)
    return raw
