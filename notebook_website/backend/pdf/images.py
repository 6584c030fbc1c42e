"""Fetching and rasterizing the banner image."""

from __future__ import annotations

import base64
import binascii
import io
import ipaddress
import logging
import socket
import time
from dataclasses import dataclass
from typing import List, Optional, Union

import httpx
from PIL import Image

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_REDIRECTS = 5

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class ImageResult:
    """Either JPEG bytes ready to embed, or the reason the image was omitted."""

    data: Optional[bytes] = None
    reason: Optional[str] = None

    @property
    def embedded(self) -> bool:
        return self.data is not None

    @classmethod
    def omitted(cls, reason: str) -> "ImageResult":
        return cls(data=None, reason=reason)


class ImageFetchError(Exception):
    pass


def rasterize(raw: bytes) -> bytes:
    """Decode any Pillow-readable image and re-encode it as RGB JPEG."""
    with Image.open(io.BytesIO(raw)) as img:
        img.load()
        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            rgba = img.convert("RGBA")
            flat = Image.new("RGB", rgba.size, (255, 255, 255))
            flat.paste(rgba, mask=rgba.getchannel("A"))
        else:
            flat = img.convert("RGB")
    out = io.BytesIO()
    flat.save(out, format="JPEG", quality=90)
    return out.getvalue()


def _decode_data_uri(uri: str) -> bytes:
    header, _, payload = uri.partition(",")
    if not header.endswith(";base64"):
        raise ImageFetchError("only base64 data URIs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ImageFetchError(f"invalid base64 payload: {e}") from e


def _resolve(host: str) -> List[IPAddress]:
    """Every address ``host`` resolves to (literal IPs resolve to themselves)."""
    infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    # scoped IPv6 results look like "fe80::1%eth0"
    return [ipaddress.ip_address(info[4][0].split("%", 1)[0]) for info in infos]


def _check_url(url: httpx.URL) -> None:
    """Only public http(s) hosts may be fetched from the server."""
    if url.scheme not in ("http", "https"):
        raise ImageFetchError(f"unsupported image url scheme {url.scheme!r}")
    if not url.host:
        raise ImageFetchError("image url has no host")
    for address in _resolve(url.host):
        if not address.is_global:
            raise ImageFetchError(f"refusing to fetch image from non-public address {address}")


def _read_capped(response: httpx.Response, deadline: float, timeout: float) -> bytes:
    chunks = []
    size = 0
    for chunk in response.iter_bytes():
        size += len(chunk)
        if size > MAX_IMAGE_BYTES:
            raise ImageFetchError(f"image larger than {MAX_IMAGE_BYTES} bytes")
        if time.monotonic() > deadline:
            raise ImageFetchError(f"image download exceeded {timeout}s")
        chunks.append(chunk)
    return b"".join(chunks)


def _download(client: httpx.Client, url: str, timeout: float) -> bytes:
    """GET ``url`` with a total deadline of ``timeout`` seconds.

    Redirects are followed by hand so every hop passes ``_check_url``.
    """
    deadline = time.monotonic() + timeout
    target = httpx.URL(url)
    for _ in range(MAX_REDIRECTS + 1):
        _check_url(target)
        with client.stream("GET", target, timeout=timeout, follow_redirects=False) as response:
            if response.is_redirect:
                target = response.url.join(response.headers["location"])
                continue
            response.raise_for_status()
            return _read_capped(response, deadline, timeout)
    raise ImageFetchError(f"more than {MAX_REDIRECTS} redirects")


def fetch_image(url: str, timeout: float = 10.0, client: Optional[httpx.Client] = None) -> ImageResult:
    """Fetch ``url`` and rasterize it; never raises, failures become ``omitted``."""
    if not url:
        return ImageResult.omitted("no image url")
    try:
        if url.startswith("data:"):
            raw = _decode_data_uri(url)
        elif client is not None:
            raw = _download(client, url, timeout)
        else:
            with httpx.Client() as own_client:
                raw = _download(own_client, url, timeout)
        return ImageResult(data=rasterize(raw))
    except (httpx.HTTPError, httpx.InvalidURL, ImageFetchError, OSError, Image.DecompressionBombError) as e:
        logger.warning("Omitting banner image %s: %s", url[:80], e)
        return ImageResult.omitted(str(e))
