#!/usr/bin/env python3
"""
Upsert the rows of a spreadsheet (.xlsx / .csv) into a Notion database.

Rows are matched by the unique-key column (written to the DB's title
property). The page id is written back into the sheet after creation so
reruns update instead of creating duplicates. A thumbnail is attached as
cover in a separate patch, and optionally imported into Notion-managed
storage and attached as a file.
"""
import argparse
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from tqdm import tqdm

from normalize import (
    file_ext_from_url,
    is_image_formula,
    is_valid_image_url,
    parse_image_formula,
    sanitize_filename,
    split_urls,
    youtube_thumb_from_id,
)
from notion_api import (
    find_title_property,
    notion_attach_upload,
    notion_create_page,
    notion_find_page_id_by_title,
    notion_get_database_schema,
    notion_headers,
    notion_patch_cover_external,
    notion_start_external_upload,
    notion_update_page,
    notion_wait_for_upload_ready,
)
from properties import map_row_to_properties
from sheet import SheetTable, ensure_column, load_sheet, save_sheet, set_cell
from sync_config import SyncConfig, load_config

SUCCESS = "success"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class SyncSummary:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0

    def add(self, outcome: str) -> None:
        if outcome == SUCCESS:
            self.succeeded += 1
        elif outcome == SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def message(self) -> str:
        return f"Notion sync → Success: {self.succeeded}, Skipped: {self.skipped}, Failed: {self.failed}"


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def pick_cover_url(table: SheetTable, row_index: int, config: SyncConfig) -> str:
    """First valid image-column URL, else the video thumbnail, else ""."""
    if config.image_column and table.column_index(config.image_column) is not None:
        urls = split_urls(table.cell(row_index, config.image_column))
        if not urls:
            fx = table.formula(row_index, config.image_column)
            if is_image_formula(fx) and parse_image_formula(fx):
                urls = [parse_image_formula(fx)]
        for url in urls:
            if is_valid_image_url(url):
                return url

    if config.video_id_column and table.column_index(config.video_id_column) is not None:
        thumb = youtube_thumb_from_id(table.cell(row_index, config.video_id_column), config.thumbnail_url_template)
        if is_valid_image_url(thumb):
            return thumb
    return ""


def import_thumbnail(
    page_id: str,
    key: str,
    cover_url: str,
    config: SyncConfig,
    headers: Dict[str, str],
    schema: Dict[str, str],
    title_prop_name: str,
) -> bool:
    """Import cover_url into Notion-managed storage and attach it. Never raises on API failures."""
    ext = file_ext_from_url(cover_url, "jpg")
    filename = sanitize_filename(f"thumb-{key}", ext)
    upload_id = notion_start_external_upload(headers, cover_url, filename)
    if not upload_id:
        return False
    if not notion_wait_for_upload_ready(headers, upload_id, config.upload_poll_attempts, config.upload_poll_delay):
        return False

    files_prop = config.image_property(title_prop_name)
    if not files_prop or schema.get(files_prop) != "files":
        files_prop = None
    return notion_attach_upload(page_id, headers, upload_id, filename, files_prop)


def sync_row(
    table: SheetTable,
    row_index: int,
    config: SyncConfig,
    headers: Dict[str, str],
    schema: Dict[str, str],
    title_prop_name: str,
    warned: Optional[set] = None,
) -> str:
    """Upsert one data row. Returns SUCCESS, SKIPPED or FAILED."""
    key = _text(table.cell(row_index, config.unique_key_column))
    if not key:
        return SKIPPED

    cover_url = pick_cover_url(table, row_index, config)
    page_id = _text(table.cell(row_index, config.page_id_column))
    try:
        props = map_row_to_properties(
            table.headers,
            table.rows[row_index],
            table.formulas[row_index],
            schema,
            title_prop_name,
            config,
            warned,
        )
        if not page_id:
            page_id = notion_find_page_id_by_title(config.database_id, headers, title_prop_name, key) or ""

        # Create and update never carry the cover; it is patched separately below.
        if page_id:
            notion_update_page(page_id, headers, props)
        else:
            page_id = notion_create_page(config.database_id, headers, props)
            set_cell(table, row_index, config.page_id_column, page_id)
            save_sheet(table)
    except Exception as e:
        tqdm.write(f"  [ERROR] Row {row_index + 2} ({key}): {e}")
        if config.error_column and table.column_index(config.error_column) is not None:
            set_cell(table, row_index, config.error_column, str(e))
            save_sheet(table)
        return FAILED

    has_error_col = bool(config.error_column) and table.column_index(config.error_column) is not None
    if has_error_col and _text(table.cell(row_index, config.error_column)):
        set_cell(table, row_index, config.error_column, "")
        save_sheet(table)

    # Cover and file import are best-effort: nothing here changes the row outcome.
    if is_valid_image_url(cover_url):
        try:
            notion_patch_cover_external(page_id, headers, cover_url)
            if config.upload_thumbs_as_files:
                import_thumbnail(page_id, key, cover_url, config, headers, schema, title_prop_name)
        except Exception as e:
            tqdm.write(f"    [WARN] Row {row_index + 2} ({key}) thumbnail step failed: {e}")
    return SUCCESS


def _dry_run_row(
    table: SheetTable,
    row_index: int,
    config: SyncConfig,
    headers: Dict[str, str],
    schema: Dict[str, str],
    title_prop_name: str,
    warned: set,
) -> str:
    key = _text(table.cell(row_index, config.unique_key_column))
    if not key:
        return SKIPPED
    props = map_row_to_properties(
        table.headers, table.rows[row_index], table.formulas[row_index], schema, title_prop_name, config, warned
    )
    page_id = _text(table.cell(row_index, config.page_id_column))
    if not page_id:
        try:
            page_id = notion_find_page_id_by_title(config.database_id, headers, title_prop_name, key) or ""
        except Exception as e:
            tqdm.write(f"  [ERROR] Row {row_index + 2} ({key}): {e}")
            return FAILED
    action = f"update {page_id}" if page_id else "create"
    cover_url = pick_cover_url(table, row_index, config)
    tqdm.write(f"  [would {action}] {key}")
    tqdm.write(f"    properties: {json.dumps(props, ensure_ascii=False)}")
    if cover_url:
        tqdm.write(f"    cover: {cover_url}")
    return SUCCESS


def sync_sheet_to_notion(table: SheetTable, config: SyncConfig, limit: int = 0, dry_run: bool = False) -> SyncSummary:
    """Run the full sync over every data row of the table, one row at a time."""
    summary = SyncSummary()
    if not dry_run and table.headers and table.column_index(config.page_id_column) is None:
        ensure_column(table, config.page_id_column)
        save_sheet(table)

    if not table.rows:
        print("No data rows under the header")
        return summary
    if table.column_index(config.unique_key_column) is None:
        raise RuntimeError(f"Missing required column: {config.unique_key_column}")

    headers = notion_headers(config.notion_token, config.notion_version)
    schema = notion_get_database_schema(config.database_id, headers)
    title_prop_name = find_title_property(schema)
    print("Notion database ID:", config.database_id)
    print("Notion database properties:", sorted(schema))

    indices = range(len(table.rows))
    if limit > 0:
        indices = indices[:limit]

    warned: set = set()
    for r in tqdm(indices, desc="Sync"):
        if dry_run:
            outcome = _dry_run_row(table, r, config, headers, schema, title_prop_name, warned)
        else:
            outcome = sync_row(table, r, config, headers, schema, title_prop_name, warned)
        summary.add(outcome)
        if outcome != SKIPPED and not dry_run:
            time.sleep(config.rate_delay)

    print(("[dry-run] " if dry_run else "") + summary.message())
    return summary


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync spreadsheet rows into a Notion database (upsert by title).")
    parser.add_argument("--sheet", required=True, help="Path to the .xlsx/.xlsm/.csv file")
    parser.add_argument("--sheet-name", help="Worksheet name for Excel files (default: active sheet)")
    parser.add_argument("--config", help="YAML config (default: config/sync.yaml if present)")
    parser.add_argument("--keys", default="keys", help="Keys file with 'internal integration = ntn_...'")
    parser.add_argument("--database-id", help="Notion database ID (overrides config / NOTION_DATABASE_ID)")
    parser.add_argument("--notion-token", help="Notion integration token (overrides config / env / keys file)")
    parser.add_argument("--sleep", type=float, help="Sleep between rows (seconds)")
    parser.add_argument(
        "--upload-thumbs",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Import the thumbnail into Notion-managed storage and attach it as cover + file.",
    )
    parser.add_argument("--limit", type=int, default=0, help="Process only the first N data rows (0 = all)")
    parser.add_argument("--dry-run", action="store_true", help="Print what would be created/updated; write nothing")
    args = parser.parse_args()

    config = load_config(args.config, keys_path=args.keys).with_overrides(
        database_id=args.database_id,
        notion_token=args.notion_token,
        rate_delay=args.sleep,
        upload_thumbs_as_files=args.upload_thumbs,
    )
    if not config.notion_token:
        raise SystemExit("Missing --notion-token (or set NOTION_TOKEN / NOTION_API_KEY, or put it in `keys`)")
    if not config.database_id:
        raise SystemExit("Missing --database-id (or set notion.database_id in the config / NOTION_DATABASE_ID)")

    try:
        table = load_sheet(args.sheet, args.sheet_name)
        summary = sync_sheet_to_notion(table, config, limit=args.limit, dry_run=args.dry_run)
    except (RuntimeError, FileNotFoundError) as e:
        raise SystemExit(f"Notion sync error: {e}")
    if summary.failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
