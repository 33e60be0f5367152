import struct

from .errors import ValidationError

EOCD_MAGIC = b"PK\x05\x06"
EOCD_SIZE = 22
EOCD_MAX_COMMENT = 0xffff
EOCD_CD_OFFSET = 16


def u32le(value):
    return struct.pack("<I", value)


def u64le(value):
    return struct.pack("<Q", value)


def length_prefixed(data):
    """Prefix ``data`` with its own length as a little-endian uint32."""
    return u32le(len(data)) + data


def length_prefixed_seq(items):
    return length_prefixed(b"".join(length_prefixed(item) for item in items))


def find_eocd(buf):
    if len(buf) < EOCD_SIZE:
        raise ValidationError("Archive too short to hold an EOCD record")
    stop = max(0, len(buf) - EOCD_SIZE - EOCD_MAX_COMMENT)
    pos = buf.rfind(EOCD_MAGIC, stop, len(buf) - EOCD_SIZE + 4)
    if pos == -1:
        raise ValidationError("ZIP EOCD not found, invalid APK")
    return pos


def read_cd_offset(buf, eocd_offset):
    (offset,) = struct.unpack_from("<I", buf, eocd_offset + EOCD_CD_OFFSET)
    return offset


def patch_cd_offset(eocd, cd_offset):
    """Return a copy of the EOCD record with its central-directory offset replaced."""
    record = bytearray(eocd)
    struct.pack_into("<I", record, EOCD_CD_OFFSET, cd_offset)
    return bytes(record)


def split_sections(buf):
    """Split a serialized archive into (entries, central directory, EOCD).

    Returns ``(cd_offset, eocd_offset, sections)``.
    """
    eocd_offset = find_eocd(buf)
    cd_offset = read_cd_offset(buf, eocd_offset)
    if cd_offset > eocd_offset:
        raise ValidationError(
            f"Central directory offset {cd_offset} beyond EOCD at {eocd_offset}")
    sections = (buf[:cd_offset], buf[cd_offset:eocd_offset], buf[eocd_offset:])
    return cd_offset, eocd_offset, sections
