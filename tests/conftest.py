import io
import ipaddress
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from notebook_website.backend.config import Settings
from notebook_website.backend.domain import MailError
from notebook_website.backend.main import create_app
from notebook_website.backend.pdf import images
from notebook_website.backend.pdf.images import ImageResult
from notebook_website.backend.pdf.layout import PageGeometry
from notebook_website.backend.pdf.renderer import DocumentRenderer


class RecordingSurface:
    """Surface double that records every drawing call with its page number."""

    def __init__(self, geometry: Optional[PageGeometry] = None, title: str = ""):
        self.geometry = geometry or PageGeometry()
        self.title = title
        self.page_count = 1
        self.ops = []
        self.finished = False

    def _record(self, kind, **data):
        self.ops.append({"page": self.page_count, "kind": kind, **data})

    def new_page(self):
        self.page_count += 1

    def draw_text(self, text, x, y, style, align="left"):
        self._record("text", text=text, x=x, y=y, style=style, align=align)

    def draw_lines(self, lines, x, y, style, line_height):
        self._record("lines", lines=list(lines), x=x, y=y, line_height=line_height)

    def draw_rule(self, x1, x2, y, color, width):
        self._record("rule", x1=x1, x2=x2, y=y, color=color, width=width)

    def fill_rect(self, x, y, width, height, color):
        self._record("rect", x=x, y=y, width=width, height=height, color=color)

    def draw_image(self, data, x, y, width, height):
        self._record("image", data=data, x=x, y=y, width=width, height=height)

    def finish(self):
        self.finished = True
        return b"%PDF-recorded"

    def of_kind(self, kind):
        return [op for op in self.ops if op["kind"] == kind]

    def texts(self):
        return [op["text"] for op in self.of_kind("text")]

    def body_lines(self):
        return [line for op in self.of_kind("lines") for line in op["lines"]]


class SurfaceRecorder:
    """Surface factory that keeps every surface it created."""

    def __init__(self):
        self.created: List[RecordingSurface] = []

    def __call__(self, geometry, title):
        surface = RecordingSurface(geometry, title)
        self.created.append(surface)
        return surface

    @property
    def last(self) -> RecordingSurface:
        return self.created[-1]


class FakeMailer:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send_password_reset(self, to, reset_url, valid_minutes):
        if self.fail:
            raise MailError("relay unavailable")
        self.sent.append({"to": to, "url": reset_url, "minutes": valid_minutes})


def png_bytes(size=(8, 8), color=(255, 0, 0, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def stub_image_fetcher(url, timeout):
    return ImageResult.omitted("images disabled in tests")


PUBLIC_ADDRESS = "93.184.216.34"


@pytest.fixture
def dns(monkeypatch):
    """Resolve host names from a table instead of the network; literal IPs resolve to themselves."""
    table = {}

    def resolve(host):
        try:
            return [ipaddress.ip_address(host)]
        except ValueError:
            return [ipaddress.ip_address(table.get(host, PUBLIC_ADDRESS))]

    monkeypatch.setattr(images, "_resolve", resolve)
    return table


@pytest.fixture
def recorder():
    return SurfaceRecorder()


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def settings(tmp_path):
    return Settings(database_path=str(tmp_path / "notebook.db"), frontend_url="http://frontend.local")


@pytest.fixture
def app(settings, mailer):
    return create_app(settings, mailer=mailer, renderer=DocumentRenderer(image_fetcher=stub_image_fetcher))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def signup(client, email="ann@example.com", password="secret123", first_name="Ann", avatar=""):
    response = client.post(
        "/register",
        json={"email": email, "password": password, "first_name": first_name, "avatar": avatar},
    )
    assert response.status_code == 201, response.text
    return response.json()["user_id"]


def login(client, email="ann@example.com", password="secret123"):
    response = client.post("/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    # tests authenticate with the header so cookie state never leaks between users
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def auth_headers(client):
    signup(client)
    return login(client)
