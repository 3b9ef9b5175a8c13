import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from normalize import YOUTUBE_THUMB_TEMPLATE

NOTION_VERSION = "2022-06-28"
DEFAULT_CONFIG_PATH = Path("config") / "sync.yaml"

# Sheet header -> Notion property. "__TITLE__" is replaced by the DB's real title property name.
DEFAULT_COLUMN_MAP = {
    "Title": "__TITLE__",
    "STR": "STR",  # Number (Percent)
    "APV": "APV",  # Number (Percent)
    "AVD": "AVD",  # Number (seconds)
    "Publish Date": "Publish Date",
    "Video ID": "Video ID",
    "Thumbnail": "Thumbnail",  # Files & media
}


def read_notion_token_from_keys_file(keys_path: str = "keys") -> Optional[str]:
    """
    Best-effort read of a Notion integration token from a `keys` file.

    Expected format (example):
      internal integration = ntn_...
    """
    p = Path(keys_path)
    if not p.exists():
        return None
    raw = p.read_text(encoding="utf-8").strip()
    if "=" in raw:
        return raw.split("=", 1)[1].strip() or None
    return None


@dataclass(frozen=True)
class SyncConfig:
    notion_token: str = ""
    database_id: str = ""
    notion_version: str = NOTION_VERSION

    column_map: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_COLUMN_MAP)))
    unique_key_column: str = "Title"
    page_id_column: str = "Notion Page ID"
    error_column: str = "Sync Error"
    image_column: str = "Thumbnail"
    video_id_column: str = "Video ID"

    percent_properties: Tuple[str, ...] = ("STR", "APV")
    duration_properties: Tuple[str, ...] = ("AVD",)
    date_properties: Tuple[str, ...] = ("Publish Date",)

    rate_delay: float = 0.35
    upload_thumbs_as_files: bool = True
    upload_poll_attempts: int = 6
    upload_poll_delay: float = 0.9
    thumbnail_url_template: str = YOUTUBE_THUMB_TEMPLATE

    def __post_init__(self) -> None:
        # Copy so later changes to the caller's dict cannot leak in.
        object.__setattr__(self, "column_map", MappingProxyType(dict(self.column_map)))

    def image_property(self, title_prop_name: str) -> Optional[str]:
        """Notion property the image column feeds, if it is mapped at all."""
        mapped = self.column_map.get(self.image_column)
        if mapped is None:
            return None
        return title_prop_name if mapped == "__TITLE__" else mapped

    def with_overrides(self, **overrides: Any) -> "SyncConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _as_tuple(values: Any) -> Tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(str(v) for v in values)


def config_from_dict(data: Dict[str, Any]) -> SyncConfig:
    """Build a SyncConfig from the parsed YAML layout (notion/sheet/columns/rules/sync sections)."""
    notion = data.get("notion") or {}
    sheet = data.get("sheet") or {}
    rules = data.get("rules") or {}
    sync = data.get("sync") or {}

    kwargs: Dict[str, Any] = {}
    if notion.get("token"):
        kwargs["notion_token"] = str(notion["token"])
    if notion.get("database_id"):
        kwargs["database_id"] = str(notion["database_id"])
    if notion.get("version"):
        kwargs["notion_version"] = str(notion["version"])

    if data.get("columns"):
        kwargs["column_map"] = {str(k).strip(): str(v) for k, v in data["columns"].items()}
    for key in ("unique_key_column", "page_id_column", "error_column", "image_column", "video_id_column"):
        if key in sheet:
            kwargs[key] = str(sheet[key] or "")

    for key in ("percent", "duration", "date"):
        if key in rules:
            kwargs[f"{key}_properties"] = _as_tuple(rules[key])

    if "rate_delay" in sync:
        kwargs["rate_delay"] = float(sync["rate_delay"])
    if "upload_thumbs_as_files" in sync:
        kwargs["upload_thumbs_as_files"] = bool(sync["upload_thumbs_as_files"])
    if "upload_poll_attempts" in sync:
        kwargs["upload_poll_attempts"] = int(sync["upload_poll_attempts"])
    if "upload_poll_delay" in sync:
        kwargs["upload_poll_delay"] = float(sync["upload_poll_delay"])
    if sync.get("thumbnail_url_template"):
        kwargs["thumbnail_url_template"] = str(sync["thumbnail_url_template"])
    return SyncConfig(**kwargs)


def load_config(path: Optional[str] = None, keys_path: str = "keys") -> SyncConfig:
    """
    Load the YAML config (if any) and fill credentials from the environment.

    Token: YAML notion.token, NOTION_TOKEN / NOTION_API_KEY, then the `keys` file.
    Database id: YAML notion.database_id, then NOTION_DATABASE_ID.
    """
    data: Dict[str, Any] = {}
    cfg_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if cfg_path.exists():
        with cfg_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    elif path:
        raise FileNotFoundError(f"Config not found: {cfg_path}")

    cfg = config_from_dict(data)
    token = (
        cfg.notion_token
        or os.getenv("NOTION_TOKEN")
        or os.getenv("NOTION_API_KEY")
        or read_notion_token_from_keys_file(keys_path)
        or ""
    )
    database_id = cfg.database_id or os.getenv("NOTION_DATABASE_ID") or ""
    return replace(cfg, notion_token=token, database_id=database_id)
