import httpx

from notebook_website.backend.pdf.client import NotesExportClient
from notebook_website.backend.pdf.renderer import DocumentRenderer

from conftest import login, signup, stub_image_fetcher

USER = {"name": "Ann", "avatar": "", "email": "ann@example.com", "id": "usr_1"}
NOTE = {"id": "note_1", "title": "Groceries", "content": "eggs", "created_time": "2024-03-03T09:15:00+00:00",
        "updated_time": "2024-03-03T09:15:00+00:00", "is_deleted": False}


def _export_client(tmp_path, handler, recorder=None):
    renderer = DocumentRenderer(surface_factory=recorder, image_fetcher=stub_image_fetcher)
    http = httpx.Client(base_url="http://api.local", transport=httpx.MockTransport(handler))
    return NotesExportClient("http://api.local", "tok", output_dir=str(tmp_path), renderer=renderer, client=http)


def test_all_notes_are_written_to_output_dir(tmp_path):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"notes": [NOTE, dict(NOTE, id="note_2", title="Chores")], "user": USER})

    with _export_client(tmp_path, handler) as client:
        assert client.fetch_and_export_all_notes() is True

    assert (tmp_path / "My_Notes_Collection.pdf").read_bytes().startswith(b"%PDF")
    assert requests[0].url.path == "/export-pdf"
    assert requests[0].headers["Authorization"] == "Bearer tok"


def test_single_note_export_uses_note_title(tmp_path):
    def handler(request):
        assert request.url.params["note_id"] == "note_1"
        return httpx.Response(200, json={"notes": [NOTE], "user": USER})

    with _export_client(tmp_path, handler) as client:
        assert client.fetch_and_export_single_note("note_1") is True

    assert (tmp_path / "Groceries.pdf").exists()


def test_group_export_writes_group_file(tmp_path):
    def handler(request):
        assert request.url.path == "/group-pdf"
        group = {"id": "grp_1", "name": "Trip plans", "description": "", "note_objects": [NOTE]}
        return httpx.Response(200, json={"group_note": group, "user": USER})

    with _export_client(tmp_path, handler) as client:
        assert client.fetch_and_export_group_note("grp_1") is True

    assert (tmp_path / "Trip_plans_group.pdf").exists()


def test_unauthorized_response_reports_failure_without_layout(tmp_path, recorder):
    with _export_client(tmp_path, lambda r: httpx.Response(401, json={"detail": "nope"}), recorder) as client:
        assert client.fetch_and_export_all_notes() is False
        assert client.fetch_and_export_group_note("grp_1") is False

    assert recorder.created == []
    assert list(tmp_path.iterdir()) == []


def test_empty_payloads_report_failure(tmp_path, recorder):
    def handler(request):
        if request.url.path == "/group-pdf":
            return httpx.Response(200, json={"group_note": {"name": "Empty", "note_objects": []}})
        return httpx.Response(200, json={"notes": []})

    with _export_client(tmp_path, handler, recorder) as client:
        assert client.fetch_and_export_all_notes() is False
        assert client.fetch_and_export_single_note("missing") is False
        assert client.fetch_and_export_group_note("grp_1") is False

    assert recorder.created == []


def test_malformed_payload_reports_failure(tmp_path):
    def handler(request):
        return httpx.Response(200, content=b"not json")

    with _export_client(tmp_path, handler) as client:
        assert client.fetch_and_export_all_notes() is False
        assert client.fetch_and_export_single_note("note_1") is False


def test_group_export_requires_id(tmp_path):
    def handler(request):
        raise AssertionError("no request expected")

    with _export_client(tmp_path, handler) as client:
        assert client.fetch_and_export_group_note("") is False


def test_transport_error_reports_failure(tmp_path):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with _export_client(tmp_path, handler) as client:
        assert client.fetch_and_export_all_notes() is False


def test_exports_against_running_api(client, tmp_path):
    signup(client)
    headers = login(client)
    client.post("/notes", json={"title": "Groceries", "content": "eggs"}, headers=headers)
    token = headers["Authorization"].split(" ", 1)[1]

    exporter = NotesExportClient(str(client.base_url), token, output_dir=str(tmp_path),
                                 renderer=DocumentRenderer(image_fetcher=stub_image_fetcher), client=client)
    assert exporter.fetch_and_export_all_notes() is True
    assert (tmp_path / "Groceries.pdf").exists()


def test_unwritable_output_dir_reports_failure(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")

    def handler(request):
        return httpx.Response(200, json={"notes": [NOTE], "user": USER})

    renderer = DocumentRenderer(image_fetcher=stub_image_fetcher)
    http = httpx.Client(base_url="http://api.local", transport=httpx.MockTransport(handler))
    with NotesExportClient("http://api.local", "tok", output_dir=str(blocker), renderer=renderer,
                           client=http) as client:
        assert client.fetch_and_export_all_notes() is False
        assert client.fetch_and_export_single_note("note_1") is False
