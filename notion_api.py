import time
from typing import Any, Dict, Optional

import requests
from tqdm import tqdm

from sync_config import NOTION_VERSION

NOTION_API = "https://api.notion.com/v1"
REQUEST_TIMEOUT = 60


def notion_headers(notion_token: str, notion_version: str = NOTION_VERSION) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {notion_token}",
        "Content-Type": "application/json",
        "Notion-Version": notion_version,
    }


def _error_body(res: requests.Response) -> Any:
    try:
        return res.json()
    except ValueError:
        return res.text


def _ok(res: requests.Response) -> bool:
    return 200 <= res.status_code < 300


def _json_object(res: requests.Response) -> Optional[Dict[str, Any]]:
    """Decoded JSON body if it is an object, else None."""
    try:
        data = res.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


# ----------------------------
# Schema
# ----------------------------
def notion_get_database_schema(database_id: str, headers: Dict[str, str]) -> Dict[str, str]:
    """Return {property name: property type} for the database."""
    url = f"{NOTION_API}/databases/{database_id}"
    res = requests.get(url, headers=headers, timeout=REQUEST_TIMEOUT)
    if res.status_code == 404:
        raise RuntimeError(
            "Notion returned 404 for the database. This usually means either:\n"
            "- the database ID is wrong, OR\n"
            "- your integration token does not have access to this database.\n\n"
            "Fix: open the database in Notion → ⋯ → Connections → Add connections → select your integration."
        )
    if res.status_code == 401:
        raise RuntimeError("Notion returned 401 (Unauthorized). Your NOTION_TOKEN/NOTION_API_KEY is invalid or expired.")
    if res.status_code == 403:
        raise RuntimeError(
            "Notion returned 403 (Forbidden). Your integration exists, but it is not permitted to access this database."
        )
    if not _ok(res):
        raise RuntimeError(f"Schema fetch failed ({res.status_code}): {_error_body(res)}")
    data = res.json()
    return {name: (prop or {}).get("type", "") for name, prop in (data.get("properties") or {}).items()}


def find_title_property(schema: Dict[str, str]) -> str:
    for name, prop_type in schema.items():
        if prop_type == "title":
            return name
    raise RuntimeError("Notion database has no title property")


# ----------------------------
# Pages
# ----------------------------
def notion_find_page_id_by_title(
    database_id: str, headers: Dict[str, str], title_prop_name: str, value: str
) -> Optional[str]:
    """First page whose title equals value exactly, or None."""
    payload = {
        "filter": {"property": title_prop_name, "title": {"equals": str(value)}},
        "page_size": 1,
    }
    url = f"{NOTION_API}/databases/{database_id}/query"
    res = requests.post(url, headers=headers, json=payload, timeout=REQUEST_TIMEOUT)
    if not _ok(res):
        raise RuntimeError(f"Lookup failed ({res.status_code}): {_error_body(res)}")
    results = res.json().get("results") or []
    if not results:
        return None
    return results[0].get("id") or None


def notion_create_page(database_id: str, headers: Dict[str, str], properties: Dict[str, Any]) -> str:
    """
    Create a page with properties only.

    Cover is never sent here; creating with a cover has been unreliable, so it
    always goes in a separate patch afterwards.
    """
    payload = {"parent": {"database_id": database_id}, "properties": properties}
    res = requests.post(f"{NOTION_API}/pages", headers=headers, json=payload, timeout=REQUEST_TIMEOUT)
    if not _ok(res):
        raise RuntimeError(f"Create failed ({res.status_code}): {_error_body(res)}")
    return res.json()["id"]


def notion_update_page(page_id: str, headers: Dict[str, str], properties: Dict[str, Any]) -> Dict[str, Any]:
    url = f"{NOTION_API}/pages/{page_id}"
    res = requests.patch(url, headers=headers, json={"properties": properties}, timeout=REQUEST_TIMEOUT)
    if not _ok(res):
        raise RuntimeError(f"Update failed ({res.status_code}): {_error_body(res)}")
    return res.json()


def notion_patch_cover_external(page_id: str, headers: Dict[str, str], cover_url: str) -> bool:
    """Best-effort: set an external cover. Failures are reported, never raised."""
    payload = {"cover": {"type": "external", "external": {"url": cover_url}}}
    try:
        res = requests.patch(f"{NOTION_API}/pages/{page_id}", headers=headers, json=payload, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        tqdm.write(f"    [WARN] Cover patch error: {e}")
        return False
    if not _ok(res):
        tqdm.write(f"    [WARN] Cover patch failed ({res.status_code}): {_error_body(res)}")
        return False
    return True


# ----------------------------
# File uploads (import an external URL into Notion-managed storage)
# ----------------------------
def notion_start_external_upload(headers: Dict[str, str], url: str, filename: str) -> Optional[str]:
    """Register an external-URL import. Returns the upload id, or None if unsupported/failed."""
    payload = {"mode": "external_url", "external_url": url, "filename": filename}
    try:
        res = requests.post(f"{NOTION_API}/file_uploads", headers=headers, json=payload, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        tqdm.write(f"    [WARN] File import error: {e}")
        return None
    if res.status_code != 200:
        tqdm.write(f"    [WARN] File import failed ({res.status_code}): {_error_body(res)}")
        return None
    data = _json_object(res)
    if data is None:
        tqdm.write(f"    [WARN] File import returned an unexpected body: {res.text[:200]}")
        return None
    return data.get("id") or None


def notion_wait_for_upload_ready(
    headers: Dict[str, str], upload_id: str, max_attempts: int = 6, wait_seconds: float = 0.9
) -> bool:
    """Poll the upload until it is `uploaded`. `failed`, a bad status or running out of attempts gives False."""
    url = f"{NOTION_API}/file_uploads/{upload_id}"
    for _ in range(max(1, max_attempts)):
        try:
            res = requests.get(url, headers=headers, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            tqdm.write(f"    [WARN] Upload status error: {e}")
            return False
        if res.status_code != 200:
            tqdm.write(f"    [WARN] Upload status failed ({res.status_code}): {_error_body(res)}")
            return False
        data = _json_object(res)
        if data is None:
            tqdm.write(f"    [WARN] Upload status returned an unexpected body: {res.text[:200]}")
            return False
        status = data.get("status")
        if status == "uploaded":
            return True
        if status == "failed":
            tqdm.write(f"    [WARN] Upload failed: {data}")
            return False
        time.sleep(wait_seconds)
    tqdm.write(f"    [WARN] Upload {upload_id} not ready after {max_attempts} attempts")
    return False


def notion_attach_upload(
    page_id: str,
    headers: Dict[str, str],
    upload_id: str,
    filename: str,
    files_prop_name: Optional[str] = None,
) -> bool:
    """Set the uploaded file as cover and, if given, as the only file of a files property."""
    payload: Dict[str, Any] = {
        "cover": {"type": "file_upload", "file_upload": {"id": upload_id}},
        "properties": {},
    }
    if files_prop_name:
        payload["properties"][files_prop_name] = {
            "type": "files",
            "files": [{"type": "file_upload", "name": filename, "file_upload": {"id": upload_id}}],
        }
    try:
        res = requests.patch(f"{NOTION_API}/pages/{page_id}", headers=headers, json=payload, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        tqdm.write(f"    [WARN] Attach upload error: {e}")
        return False
    if not _ok(res):
        tqdm.write(f"    [WARN] Attach upload failed ({res.status_code}): {_error_body(res)}")
        return False
    return True
