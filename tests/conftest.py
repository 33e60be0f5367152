import io
import random
import struct
import zipfile

import pytest

from apkresign.config import ResignConfig
from apkresign.identity import forge_identity
from apkresign.log import ProgressLog


def build_zip(entries, compression=zipfile.ZIP_DEFLATED, comment=b""):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression) as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
        zf.comment = comment
    return buf.getvalue()


def build_dex(body=b"\x00" * 64):
    header = bytearray(b"dex\n035\x00" + b"\x00" * (0x70 - 8))
    data = header + body
    struct.pack_into("<I", data, 32, len(data))
    return bytes(data)


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def make_dex():
    return build_dex


@pytest.fixture
def events():
    return []


@pytest.fixture
def log(events):
    return ProgressLog(lambda phase, detail, severity: events.append((phase, detail, severity)))


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def config():
    return ResignConfig()


@pytest.fixture(scope="session")
def identity():
    return forge_identity(random.Random(7), ResignConfig(), ProgressLog(lambda *a: None))
