import math
from typing import Any, Callable, Dict, List, Optional, Sequence

from tqdm import tqdm

from normalize import file_name_from_url, is_blank, is_image_formula, normalize_for_property

TITLE_PLACEHOLDER = "__TITLE__"


# ----------------------------
# Notion property builders
# ----------------------------
def rt(text: Any) -> List[Dict[str, Any]]:
    text = "" if text is None else str(text)
    return [{"text": {"content": text[:2000]}}]


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    text = str(value).replace(",", "").strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        num = float(text)
    except ValueError:
        return None
    return num if math.isfinite(num) else None


def to_checkbox(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "yes")


def as_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def prop_title(value: Any) -> Dict[str, Any]:
    return {"title": rt(as_text(value))}


def prop_rich_text(value: Any) -> Dict[str, Any]:
    return {"rich_text": rt(as_text(value))}


def prop_number(value: Any) -> Dict[str, Any]:
    return {"number": to_number(value)}


def prop_url(value: Any) -> Dict[str, Any]:
    if isinstance(value, (list, tuple)):
        value = value[0]
    return {"url": str(value)}


def prop_select(value: Any) -> Dict[str, Any]:
    return {"select": {"name": as_text(value)}}


def prop_multi_select(value: Any) -> Dict[str, Any]:
    names: List[str] = []
    for part in as_text(value).split(","):
        name = part.strip()
        if name and name not in names:
            names.append(name)
    return {"multi_select": [{"name": n} for n in names]}


def prop_checkbox(value: Any) -> Dict[str, Any]:
    return {"checkbox": to_checkbox(value)}


def prop_date(value: Any) -> Dict[str, Any]:
    return {"date": {"start": str(value)}}


def prop_files(urls: Optional[Sequence[str]]) -> Dict[str, Any]:
    if isinstance(urls, str):
        urls = [urls]
    files = [
        {"type": "external", "name": file_name_from_url(u), "external": {"url": u}}
        for u in (urls or [])
    ]
    return {"files": files}


PROPERTY_BUILDERS: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "title": prop_title,
    "rich_text": prop_rich_text,
    "number": prop_number,
    "url": prop_url,
    "select": prop_select,
    "multi_select": prop_multi_select,
    "checkbox": prop_checkbox,
    "date": prop_date,
    "files": prop_files,
}


def build_property(prop_type: str, value: Any) -> Dict[str, Any]:
    """
    Build a single Notion property payload for a normalized value.

    files always yields a list (empty when value is None); None on any other
    type clears the property; unknown types are written as rich_text.
    """
    if prop_type == "files":
        return prop_files(value)
    if value is None:
        return {prop_type: None}
    builder = PROPERTY_BUILDERS.get(prop_type)
    if builder is None:
        return prop_rich_text(value)
    return builder(value)


def resolve_property_name(mapped: str, title_prop_name: str) -> str:
    return title_prop_name if mapped == TITLE_PLACEHOLDER else mapped


def map_row_to_properties(
    headers: Sequence[str],
    row: Sequence[Any],
    row_formulas: Sequence[str],
    schema: Dict[str, str],
    title_prop_name: str,
    config,
    warned: Optional[set] = None,
) -> Dict[str, Any]:
    """Map one sheet row to the Notion properties of the listed columns that exist in the DB."""
    image_prop = config.image_property(title_prop_name)
    props: Dict[str, Any] = {}
    for i, sheet_col in enumerate(headers):
        if sheet_col not in config.column_map:
            continue
        prop_name = resolve_property_name(config.column_map[sheet_col], title_prop_name)
        if prop_name not in schema:
            continue

        prop_type = schema[prop_name]
        raw = row[i] if i < len(row) else None
        formula = row_formulas[i] if i < len(row_formulas) else ""
        # A formula cell without a cached value (file saved without recalculation) is left untouched.
        if formula and is_blank(raw) and not is_image_formula(formula):
            continue
        value = normalize_for_property(
            prop_name,
            raw,
            formula,
            percent_props=config.percent_properties,
            duration_props=config.duration_properties,
            date_props=config.date_properties,
            image_prop=image_prop,
        )

        if prop_type not in PROPERTY_BUILDERS and warned is not None and prop_name not in warned:
            warned.add(prop_name)
            tqdm.write(f"  [WARN] '{prop_name}' has unsupported type '{prop_type}'; writing it as rich_text")
        props[prop_name] = build_property(prop_type, value)
    return props
