import pytest

import notion_api

SCHEMA = {
    "Name": {"type": "title"},
    "STR": {"type": "number"},
    "APV": {"type": "number"},
    "AVD": {"type": "number"},
    "Publish Date": {"type": "date"},
    "Video ID": {"type": "rich_text"},
    "Thumbnail": {"type": "files"},
}


class FakeResponse:
    def __init__(self, status_code, data=None):
        self.status_code = status_code
        self._data = data if data is not None else {}

    def json(self):
        return self._data

    @property
    def text(self):
        return str(self._data)


class FakeNotion:
    """In-memory stand-in for the handful of Notion endpoints the sync uses."""

    def __init__(self, schema=None):
        self.schema = dict(SCHEMA if schema is None else schema)
        self.pages = {}
        self.calls = []
        self.fail_create = False
        self.fail_update = False
        self.fail_cover = False
        self.upload_status = 200
        self.upload_states = ["uploaded"]
        self.upload_body = None
        self.fail_query = False
        self._poll = 0

    def _path(self, url):
        return url.replace(notion_api.NOTION_API, "")

    def calls_to(self, method, prefix=""):
        return [c for c in self.calls if c[0] == method and c[1].startswith(prefix)]

    def title_of(self, page):
        for name, prop in page["properties"].items():
            if "title" in prop:
                return "".join(t["text"]["content"] for t in prop["title"])
        return ""

    def get(self, url, headers=None, **kwargs):
        path = self._path(url)
        self.calls.append(("GET", path, None))
        if path.startswith("/databases/"):
            return FakeResponse(200, {"properties": self.schema})
        if path.startswith("/file_uploads/"):
            state = self.upload_states[min(self._poll, len(self.upload_states) - 1)]
            self._poll += 1
            return FakeResponse(200, {"id": path.rsplit("/", 1)[-1], "status": state})
        return FakeResponse(404, {"message": "not found"})

    def post(self, url, headers=None, json=None, **kwargs):
        path = self._path(url)
        self.calls.append(("POST", path, json))
        if path.endswith("/query"):
            if self.fail_query:
                return FakeResponse(500, {"message": "internal error"})
            wanted = json["filter"]["title"]["equals"]
            hits = [{"id": pid} for pid, page in self.pages.items() if self.title_of(page) == wanted]
            return FakeResponse(200, {"results": hits[: json.get("page_size", 100)]})
        if path == "/pages":
            if self.fail_create:
                return FakeResponse(400, {"message": "validation_error"})
            pid = f"page-{len(self.pages) + 1}"
            self.pages[pid] = {"properties": dict(json["properties"])}
            return FakeResponse(200, {"id": pid})
        if path == "/file_uploads":
            if self.upload_status != 200:
                return FakeResponse(self.upload_status, {"message": "not supported"})
            if self.upload_body is not None:
                return FakeResponse(200, self.upload_body)
            return FakeResponse(200, {"id": "upload-1", "status": "pending"})
        return FakeResponse(404, {"message": "not found"})

    def patch(self, url, headers=None, json=None, **kwargs):
        path = self._path(url)
        self.calls.append(("PATCH", path, json))
        pid = path.rsplit("/", 1)[-1]
        if pid not in self.pages:
            return FakeResponse(404, {"message": "page not found"})
        if "cover" in json and json["cover"]["type"] == "external" and self.fail_cover:
            return FakeResponse(500, {"message": "cover failed"})
        if "properties" in json and "cover" not in json and self.fail_update:
            return FakeResponse(400, {"message": "validation_error"})
        page = self.pages[pid]
        page["properties"].update(json.get("properties") or {})
        if "cover" in json:
            page["cover"] = json["cover"]
        return FakeResponse(200, {"id": pid})


@pytest.fixture
def fake_notion(monkeypatch):
    fake = FakeNotion()
    monkeypatch.setattr(notion_api.requests, "get", fake.get)
    monkeypatch.setattr(notion_api.requests, "post", fake.post)
    monkeypatch.setattr(notion_api.requests, "patch", fake.patch)
    monkeypatch.setattr("time.sleep", lambda s: None)
    return fake
