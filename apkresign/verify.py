"""Independent checks of a signed archive, for both signature schemes."""

import struct
from dataclasses import dataclass

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.serialization import pkcs7

from .container import META_INF, ApkContainer
from .errors import CryptoError, EntryError, ValidationError
from .v1 import CRLF, MANIFEST_NAME, SIGNATURE_BLOCK_EXT, needs_digest, sha256_b64
from .v2 import (APK_SIG_BLOCK_MAGIC, BLOCK_FOOTER_SIZE, SIG_RSA_PKCS1_V1_5_WITH_SHA256,
                 V2_BLOCK_ID, content_digest)
from .ziputil import find_eocd, patch_cd_offset, read_cd_offset


@dataclass
class V1Report:
    signer: str
    entries: int
    certificate: x509.Certificate


@dataclass
class V2Report:
    block_offset: int
    block_size: int
    digest: bytes
    certificate: x509.Certificate


def _read_lp(buf, pos):
    if pos + 4 > len(buf):
        raise ValidationError("Truncated length prefix")
    (n,) = struct.unpack_from("<I", buf, pos)
    end = pos + 4 + n
    if end > len(buf):
        raise ValidationError("Length prefix exceeds enclosing record")
    return buf[pos + 4:end], end


def _lp_items(buf):
    pos = 0
    while pos < len(buf):
        item, pos = _read_lp(buf, pos)
        yield item


def _fields(buf, count):
    items = []
    pos = 0
    for _ in range(count):
        item, pos = _read_lp(buf, pos)
        items.append(item)
    return items


def _algorithm_value(item):
    if len(item) < 4:
        raise ValidationError("Truncated algorithm record")
    (algorithm,) = struct.unpack_from("<I", item)
    value, _ = _read_lp(item, 4)
    return algorithm, value


def find_signing_block(data):
    """Return ``(block_offset, cd_offset, eocd_offset, pairs)`` for a signed archive."""
    eocd_offset = find_eocd(data)
    cd_offset = read_cd_offset(data, eocd_offset)
    if cd_offset < BLOCK_FOOTER_SIZE + 8 or data[cd_offset - 16:cd_offset] != APK_SIG_BLOCK_MAGIC:
        raise ValidationError("No APK signing block before the central directory")
    (size,) = struct.unpack_from("<Q", data, cd_offset - BLOCK_FOOTER_SIZE)
    block_offset = cd_offset - size - 8
    if block_offset < 0:
        raise ValidationError(f"Signing block size {size} out of range")
    (head_size,) = struct.unpack_from("<Q", data, block_offset)
    if head_size != size:
        raise ValidationError(f"Signing block size fields differ: {head_size} != {size}")
    pairs = {}
    buf = data[block_offset + 8:cd_offset - BLOCK_FOOTER_SIZE]
    pos = 0
    while pos < len(buf):
        if pos + 12 > len(buf):
            raise ValidationError("Truncated ID-value pair")
        length, pair_id = struct.unpack_from("<QI", buf, pos)
        if length < 4 or pos + 8 + length > len(buf):
            raise ValidationError(f"Bad ID-value pair length {length}")
        pairs[pair_id] = buf[pos + 12:pos + 8 + length]
        pos += 8 + length
    return block_offset, cd_offset, eocd_offset, pairs


def verify_v2(data):
    block_offset, cd_offset, eocd_offset, pairs = find_signing_block(data)
    if V2_BLOCK_ID not in pairs:
        raise ValidationError("Signing block has no v2 signature")
    signers = list(_lp_items(_read_lp(pairs[V2_BLOCK_ID], 0)[0]))
    if len(signers) != 1:
        raise ValidationError(f"Expected one v2 signer, found {len(signers)}")
    signed_data, signatures, public_key_der = _fields(signers[0], 3)
    digests, certificates, _attributes = _fields(signed_data, 3)

    sections = (
        data[:block_offset],
        data[cd_offset:eocd_offset],
        patch_cd_offset(data[eocd_offset:], block_offset),
    )
    expected = content_digest(sections)
    signed_digests = dict(_algorithm_value(d) for d in _lp_items(digests))
    if signed_digests.get(SIG_RSA_PKCS1_V1_5_WITH_SHA256) != expected:
        raise CryptoError("v2 content digest mismatch")

    try:
        public_key = serialization.load_der_public_key(public_key_der)
        certificate = x509.load_der_x509_certificate(next(_lp_items(certificates)))
    except (ValueError, StopIteration, UnsupportedAlgorithm) as exc:
        raise ValidationError(f"Bad v2 signer key material: {exc}") from exc
    cert_key_der = certificate.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    if cert_key_der != public_key_der:
        raise CryptoError("v2 public key does not match certificate")
    for algorithm, signature in (_algorithm_value(s) for s in _lp_items(signatures)):
        if algorithm != SIG_RSA_PKCS1_V1_5_WITH_SHA256:
            continue
        try:
            public_key.verify(signature, signed_data, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature as exc:
            raise CryptoError("v2 signature does not verify") from exc
        return V2Report(block_offset, cd_offset - block_offset, expected, certificate)
    raise ValidationError("No supported v2 signature algorithm")


def parse_sections(raw):
    """Split manifest bytes into ``(raw_section, attributes)`` pairs."""
    parts = raw.split(CRLF + CRLF)
    if parts[-1] != b"":
        raise ValidationError("Manifest does not end with a blank line")
    sections = []
    for part in parts[:-1]:
        attributes = {}
        for line in part.replace(CRLF + b" ", b"").split(CRLF):
            key, sep, value = line.decode("utf-8").partition(": ")
            if not sep:
                raise ValidationError(f"Malformed manifest line: {line!r}")
            attributes[key] = value
        sections.append((part + CRLF + CRLF, attributes))
    return sections


def verify_v1(data):
    container = ApkContainer.from_bytes(data)
    signature_files = [n for n in container.names()
                       if n.startswith(META_INF) and n.endswith(".SF")]
    if len(signature_files) != 1:
        raise ValidationError(f"Expected one signature file, found {len(signature_files)}")
    sf_name = signature_files[0]
    block_name = sf_name[:-3] + SIGNATURE_BLOCK_EXT
    try:
        manifest = container.read(MANIFEST_NAME)
        signature_file = container.read(sf_name)
        signature_block = container.read(block_name)
    except EntryError as exc:
        raise ValidationError(f"Missing v1 signature file {exc}") from exc

    sections = parse_sections(manifest)
    digested = set()
    for raw, attributes in sections[1:]:
        name = attributes.get("Name")
        try:
            actual = sha256_b64(container.read(name))
        except EntryError as exc:
            raise ValidationError(f"Manifest names a missing entry {exc}") from exc
        if attributes.get("SHA-256-Digest") != actual:
            raise CryptoError(f"Digest mismatch for {name}")
        digested.add(name)
    unsigned = [n for n in container.names() if needs_digest(n) and n not in digested]
    if unsigned:
        raise ValidationError(f"Entries missing from manifest: {', '.join(unsigned)}")

    sf_sections = parse_sections(signature_file)
    if sf_sections[0][1].get("SHA-256-Digest-Manifest") != sha256_b64(manifest):
        raise CryptoError("Signature file manifest digest mismatch")
    manifest_digests = {attrs["Name"]: sha256_b64(raw) for raw, attrs in sections[1:]}
    for _, attributes in sf_sections[1:]:
        if manifest_digests.get(attributes.get("Name")) != attributes.get("SHA-256-Digest"):
            raise CryptoError(f"Section digest mismatch for {attributes.get('Name')}")

    try:
        certificates = pkcs7.load_der_pkcs7_certificates(signature_block)
    except ValueError as exc:
        raise ValidationError(f"Unreadable signature block {block_name}: {exc}") from exc
    if not certificates:
        raise ValidationError(f"No certificate in {block_name}")
    return V1Report(sf_name[len(META_INF):-3], len(digested), certificates[0])


def verify_apk(data):
    """Check both schemes and that they carry the same certificate."""
    v1 = verify_v1(data)
    v2 = verify_v2(data)
    if v1.certificate != v2.certificate:
        raise CryptoError("v1 and v2 signers use different certificates")
    return v1, v2
