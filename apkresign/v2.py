"""APK Signature Scheme v2 signing block.

Layout (all integers little-endian, every length counts only what follows it)::

    u64 block size | u64 pair size | u32 id | value | u64 block size | magic

where the v2 value is a length-prefixed sequence of length-prefixed signers.
"""

import hashlib
from dataclasses import dataclass

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from .errors import CryptoError
from .ziputil import length_prefixed, length_prefixed_seq, split_sections, u32le, u64le

V2_BLOCK_ID = 0x7109871a
SIG_RSA_PKCS1_V1_5_WITH_SHA256 = 0x0103
CHUNK_SIZE = 1048576
CHUNK_TAG = b"\xa5"
TOP_TAG = b"\x5a"
APK_SIG_BLOCK_MAGIC = b"APK Sig Block 42"
BLOCK_FOOTER_SIZE = 8 + len(APK_SIG_BLOCK_MAGIC)


@dataclass
class SigningBlock:
    block: bytes
    digest: bytes
    signature: bytes
    cd_offset: int
    eocd_offset: int


def chunk_digests(section):
    view = memoryview(section)
    for start in range(0, len(view), CHUNK_SIZE):
        chunk = view[start:start + CHUNK_SIZE]
        h = hashlib.sha256(CHUNK_TAG + u32le(len(chunk)))
        h.update(chunk)
        yield h.digest()


def content_digest(sections):
    """Two-level chunked SHA-256 over the archive sections, in order."""
    digests = [d for section in sections for d in chunk_digests(section)]
    h = hashlib.sha256(TOP_TAG + u32le(len(digests)))
    for d in digests:
        h.update(d)
    return h.digest()


def build_signed_data(digest, certificate_der):
    digests = length_prefixed_seq([u32le(SIG_RSA_PKCS1_V1_5_WITH_SHA256) + length_prefixed(digest)])
    certificates = length_prefixed_seq([certificate_der])
    additional_attributes = length_prefixed(b"")
    return digests + certificates + additional_attributes


def build_signer(signed_data, signature, public_key_der):
    signatures = length_prefixed_seq(
        [u32le(SIG_RSA_PKCS1_V1_5_WITH_SHA256) + length_prefixed(signature)])
    return length_prefixed(signed_data) + signatures + length_prefixed(public_key_der)


def build_signing_block(signer):
    pair = u32le(V2_BLOCK_ID) + length_prefixed_seq([signer])
    pairs = u64le(len(pair)) + pair
    size = len(pairs) + BLOCK_FOOTER_SIZE
    return u64le(size) + pairs + u64le(size) + APK_SIG_BLOCK_MAGIC


def rsa_sign(private_key, data):
    try:
        return private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CryptoError(f"v2 signing failed: {exc}") from exc


def sign_v2(unsigned, identity, log):
    """Build the signing block for the exact byte layout of ``unsigned``."""
    cd_offset, eocd_offset, sections = split_sections(unsigned)
    log.info("V2_SIGN", f"Computing content digest over {len(unsigned) / 1048576:.2f} MB...")
    digest = content_digest(sections)
    log.info("V2_SIGN", f"Digest: {digest.hex()[:24]}...")

    signed_data = build_signed_data(digest, identity.certificate_der)
    signature = rsa_sign(identity.private_key, signed_data)
    signer = build_signer(signed_data, signature, identity.public_key_der)
    block = build_signing_block(signer)

    log.success("V2_SIGN", f"Signature: {len(signature)}B RSA-PKCS1-v1.5-SHA256")
    log.info("V2_SIGN", f"Signing block: {len(block)}B")
    return SigningBlock(block, digest, signature, cd_offset, eocd_offset)
