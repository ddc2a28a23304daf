"""Content hashing and screenshot normalization."""

from __future__ import annotations

import base64
import hashlib
from io import BytesIO

from PIL import Image, ImageChops


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def _trim_border(img: Image.Image) -> Image.Image:
    if img.mode == "RGBA":
        bg = Image.new(img.mode, img.size, (255, 255, 255, 0))
    else:
        bg = Image.new(img.mode, img.size, "white")
    diff = ImageChops.difference(img, bg)
    diff = ImageChops.add(diff, diff, 2.0, -100)
    bbox = diff.getbbox()
    return img.crop(bbox) if bbox else img


def normalize_screenshot(png_bytes: bytes, *, trim: bool = True) -> tuple[bytes, int, int]:
    """Re-encode a captured PNG as RGB, trimming a uniform white border.

    Returns ``(png_bytes, width, height)``.
    """

    with Image.open(BytesIO(png_bytes)) as im:
        im = im.convert("RGB")
        if trim:
            im = _trim_border(im)
        width, height = im.size
        out = BytesIO()
        im.save(out, format="PNG", optimize=True)
        return out.getvalue(), width, height


def png_data_url(png_bytes: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


__all__ = ["normalize_screenshot", "png_data_url", "sha256_hex"]
