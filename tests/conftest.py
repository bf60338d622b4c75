"""
Pytest configuration and fixtures for ScanGuard tests.
"""

import struct
import sys
import zlib
from io import BytesIO
from pathlib import Path

import pytest
import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from scanguard.database.database import Database  # noqa: E402


@pytest_asyncio.fixture
async def db(tmp_path):
    """A fresh, initialized database in a temporary directory."""
    database = Database(tmp_path / "test.db")
    assert await database.initialize()
    yield database
    await database.shutdown()


def make_png(pattern: str = "gradient", size: int = 64) -> bytes:
    """Build a small PNG in memory. Different patterns hash far apart."""
    from PIL import Image, ImageDraw

    img = Image.new("RGB", (size, size), "white")
    draw = ImageDraw.Draw(img)
    if pattern == "gradient":
        for x in range(size):
            shade = int(255 * x / (size - 1))
            draw.line([(x, 0), (x, size - 1)], fill=(shade, shade, shade))
    elif pattern == "checker":
        step = size // 8
        for i in range(0, size, step):
            for j in range(0, size, step):
                if (i // step + j // step) % 2:
                    draw.rectangle([i, j, i + step - 1, j + step - 1], fill="black")
    elif pattern == "circle":
        draw.ellipse([size // 4, size // 4, 3 * size // 4, 3 * size // 4], fill="black")
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_png_header(width: int, height: int) -> bytes:
    """A PNG carrying only a valid IHDR chunk claiming the given dimensions."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IEND", b"")


@pytest.fixture
def png_factory():
    return make_png


@pytest.fixture
def png_header_factory():
    return make_png_header
