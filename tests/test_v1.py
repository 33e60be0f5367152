import base64
import hashlib
import random

import pytest
from cryptography.hazmat.primitives.serialization import pkcs7

from apkresign import resign_apk
from apkresign.container import ApkContainer
from apkresign.errors import CryptoError, ValidationError
from apkresign.pools import values
from apkresign.v1 import MANIFEST_NAME, header_line, sign_detached, sign_v1
from apkresign.verify import parse_sections, verify_v1


def b64sha256(data):
    return base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


@pytest.fixture
def container(make_zip):
    return ApkContainer.from_bytes(make_zip({
        "AndroidManifest.xml": b"<manifest/>",
        "classes.dex": b"dex\n035\x00" + b"\x00" * 100,
        "res/drawable/": b"",
        "META-INF/services/com.example.Plugin": b"com.example.Impl",
    }))


def test_manifest_digests_match_entries(container, identity, rng, log):
    result = sign_v1(container, identity, rng, log)
    sections = parse_sections(result.manifest)
    assert sections[0][1]["Manifest-Version"] == "1.0"
    digests = {attrs["Name"]: attrs["SHA-256-Digest"] for _, attrs in sections[1:]}
    assert set(digests) == {"AndroidManifest.xml", "classes.dex",
                            "META-INF/services/com.example.Plugin"}
    for name, digest in digests.items():
        assert digest == b64sha256(container.read(name))


def test_signature_file_digests(container, identity, rng, log):
    result = sign_v1(container, identity, rng, log)
    sf = parse_sections(result.signature_file)
    assert sf[0][1]["SHA-256-Digest-Manifest"] == b64sha256(result.manifest)
    assert sf[0][1]["X-Android-APK-Signed"] == "2"
    manifest_sections = parse_sections(result.manifest)
    for (raw, attrs), (_, sf_attrs) in zip(manifest_sections[1:], sf[1:]):
        assert raw.endswith(b"\r\n\r\n")
        assert sf_attrs["Name"] == attrs["Name"]
        assert sf_attrs["SHA-256-Digest"] == b64sha256(raw)
        assert sf_attrs["SHA-256-Digest"] != b64sha256(result.manifest)


def test_signature_files_written(container, identity, rng, log):
    result = sign_v1(container, identity, rng, log)
    assert container.read(MANIFEST_NAME) == result.manifest
    assert container.read(result.sf_name) == result.signature_file
    assert container.read(result.block_name) == result.signature_block
    prefix = result.sf_name[len("META-INF/"):-len(".SF")]
    assert prefix in values("signer_prefix")
    assert result.block_name == f"META-INF/{prefix}.RSA"
    certificates = pkcs7.load_der_pkcs7_certificates(result.signature_block)
    assert certificates == [identity.certificate]


def test_resigning_replaces_previous_signature(container, identity, log):
    sign_v1(container, identity, random.Random(1), log)
    container.put("classes.dex", b"changed")
    result = sign_v1(container, identity, random.Random(1), log)
    assert container.names().count(MANIFEST_NAME) == 1
    assert "META-INF/MANIFEST.MF" not in [s.name for s in result.sections]
    assert verify_v1(container.to_bytes()).entries == 3


def test_long_names_are_wrapped(make_zip, identity, rng, log):
    long_name = "assets/" + "very_long_directory_name/" * 5 + "file.bin"
    container = ApkContainer.from_bytes(make_zip({long_name: b"payload"}))
    result = sign_v1(container, identity, rng, log)
    for line in result.manifest.split(b"\r\n"):
        assert len(line) <= 72
    sections = parse_sections(result.manifest)
    assert sections[1][1]["Name"] == long_name


def test_header_line_wrapping():
    assert header_line("Name", "a") == b"Name: a\r\n"
    line = header_line("Name", "x" * 100)
    first, second = line.split(b"\r\n")[:2]
    assert len(first) == 72
    assert second.startswith(b" ")
    assert first + second[1:] == b"Name: " + b"x" * 100


def test_sign_detached_wraps_crypto_failures(identity):
    class Broken:
        certificate = identity.certificate
        private_key = None

    with pytest.raises(CryptoError):
        sign_detached(b"data", Broken())


@pytest.mark.parametrize("name", ["a\r\n\r\nb", "line\nbreak.txt", "nul\x00.bin"])
def test_entry_names_that_break_the_manifest_are_rejected(identity, rng, log, name):
    container = ApkContainer()
    container.add(name, b"x")
    container.add("classes.dex", b"y")
    with pytest.raises(ValidationError):
        sign_v1(container, identity, rng, log)
    assert MANIFEST_NAME not in container


def test_resign_rejects_newline_in_entry_name(make_zip):
    apk = make_zip({"a\r\n\r\nb": b"x", "classes.dex": b"y"})
    with pytest.raises(ValidationError):
        resign_apk(apk, on_log=lambda *args: None)
