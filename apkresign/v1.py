import base64
import hashlib
from dataclasses import dataclass
from datetime import datetime

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from .container import META_INF
from .errors import CryptoError, ValidationError
from .pools import choose
from .strip import is_signature_file

MANIFEST_NAME = META_INF + "MANIFEST.MF"
SIGNATURE_BLOCK_EXT = ".RSA"
MAX_LINE = 72
CRLF = b"\r\n"
FORBIDDEN_NAME_CHARS = ("\r", "\n", "\x00")


@dataclass
class ManifestSection:
    name: str
    digest: str
    raw: bytes


@dataclass
class V1Signature:
    manifest: bytes
    signature_file: bytes
    signature_block: bytes
    sf_name: str
    block_name: str
    sections: list


def sha256_b64(data):
    return base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


def header_line(key, value):
    """Serialize one manifest attribute, wrapping at 72 bytes per JAR rules."""
    raw = f"{key}: {value}".encode("utf-8")
    lines = [raw[:MAX_LINE]]
    raw = raw[MAX_LINE:]
    while raw:
        lines.append(b" " + raw[:MAX_LINE - 1])
        raw = raw[MAX_LINE - 1:]
    return CRLF.join(lines) + CRLF


def needs_digest(name):
    return not name.endswith("/") and not is_signature_file(name)


def build_manifest(container, created_by):
    header = header_line("Manifest-Version", "1.0") + header_line("Created-By", created_by) + CRLF
    sections = []
    for entry in container.entries():
        if not needs_digest(entry.name):
            continue
        if any(c in entry.name for c in FORBIDDEN_NAME_CHARS):
            raise ValidationError(f"Entry name cannot be written to a manifest: {entry.name!r}")
        # unreadable entries were already dropped when the container was loaded
        digest = sha256_b64(entry.data)
        raw = header_line("Name", entry.name) + header_line("SHA-256-Digest", digest) + CRLF
        sections.append(ManifestSection(entry.name, digest, raw))
    return header, sections


def build_signature_file(header, sections, created_by):
    manifest = header + b"".join(s.raw for s in sections)
    sf = [
        header_line("Signature-Version", "1.0"),
        header_line("Created-By", created_by),
        header_line("SHA-256-Digest-Manifest-Main-Attributes", sha256_b64(header)),
        header_line("SHA-256-Digest-Manifest", sha256_b64(manifest)),
        header_line("X-Android-APK-Signed", "2"),
        CRLF,
    ]
    for section in sections:
        sf.append(header_line("Name", section.name))
        sf.append(header_line("SHA-256-Digest", sha256_b64(section.raw)))
        sf.append(CRLF)
    return manifest, b"".join(sf)


def sign_detached(data, identity):
    options = [pkcs7.PKCS7Options.DetachedSignature, pkcs7.PKCS7Options.NoCapabilities]
    try:
        builder = pkcs7.PKCS7SignatureBuilder().set_data(data)
        builder = builder.add_signer(identity.certificate, identity.private_key, hashes.SHA256())
        return builder.sign(serialization.Encoding.DER, options)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CryptoError(f"PKCS#7 signing failed: {exc}") from exc


def sign_v1(container, identity, rng, log, now=None):
    """Write MANIFEST.MF, <prefix>.SF and <prefix>.RSA into the container."""
    created_by = choose("created_by", rng)
    header, sections = build_manifest(container, created_by)
    manifest, signature_file = build_signature_file(header, sections, created_by)
    signature_block = sign_detached(signature_file, identity)

    prefix = choose("signer_prefix", rng)
    sf_name = f"{META_INF}{prefix}.SF"
    block_name = f"{META_INF}{prefix}{SIGNATURE_BLOCK_EXT}"
    date_time = (now or datetime.now()).timetuple()[:6]
    for name, data in ((MANIFEST_NAME, manifest), (sf_name, signature_file),
                       (block_name, signature_block)):
        container.delete(name)
        container.add(name, data, date_time=date_time)

    log.success("V1_SIGN", f"{len(sections)} entries digested, signer {prefix} "
                           f"({len(signature_block)}B PKCS#7)")
    return V1Signature(manifest, signature_file, signature_block, sf_name, block_name, sections)
