import io
import struct
import zipfile
import zlib
from dataclasses import dataclass

from .errors import EntryError, ValidationError

META_INF = "META-INF/"
DEFAULT_DATE_TIME = (1980, 1, 1, 0, 0, 0)

ALIGNMENT = 4
SO_ALIGNMENT = 4096
ALIGNMENT_EXTRA_ID = 0xd935
LOCAL_HEADER_SIZE = 30


@dataclass
class ArchiveEntry:
    name: str
    data: bytes
    date_time: tuple = DEFAULT_DATE_TIME
    compress_type: int = zipfile.ZIP_DEFLATED
    external_attr: int = 0

    @property
    def is_dir(self):
        return self.name.endswith("/")


def pack_dos_timestamp(date_time):
    """Pack a ``(Y, M, D, h, m, s)`` tuple into the 16-bit DOS time and date fields."""
    year, month, day, hour, minute, second = date_time
    if not 1980 <= year <= 2107:
        raise ValueError(f"Year out of DOS range: {year}")
    dos_time = (hour << 11) | (minute << 5) | (second // 2)
    dos_date = ((year - 1980) << 9) | (month << 5) | day
    return dos_time, dos_date


def unpack_dos_timestamp(dos_time, dos_date):
    return (
        ((dos_date >> 9) & 0x7f) + 1980,
        (dos_date >> 5) & 0x0f,
        dos_date & 0x1f,
        (dos_time >> 11) & 0x1f,
        (dos_time >> 5) & 0x3f,
        (dos_time & 0x1f) * 2,
    )


def _encoded_name(name):
    try:
        return name.encode("ascii")
    except UnicodeEncodeError:
        return name.encode("utf-8")


def _alignment_extra(offset, name, alignment):
    # header id, data size, alignment, then zero padding
    base = offset + LOCAL_HEADER_SIZE + len(_encoded_name(name)) + 6
    pad = -base % alignment
    return struct.pack("<HHH", ALIGNMENT_EXTRA_ID, 2 + pad, alignment) + b"\x00" * pad


class ApkContainer:
    """Ordered, mutable set of named archive entries.

    Entry order is insertion order; replacing an entry keeps its position.
    """

    def __init__(self, entries=()):
        self._entries = {}
        self.skipped = []
        for entry in entries:
            self._entries[entry.name] = entry

    @classmethod
    def from_bytes(cls, data, log=None):
        try:
            zf = zipfile.ZipFile(io.BytesIO(data), "r")
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise ValidationError(f"Not a readable ZIP archive: {exc}") from exc
        container = cls()
        with zf:
            for info in zf.infolist():
                try:
                    container._entries[info.filename] = _read_entry(zf, info)
                except EntryError as exc:
                    container.skipped.append(info.filename)
                    if log is not None:
                        log.warn("INIT", f"Skipping unreadable entry {exc}")
        return container

    @classmethod
    def from_file(cls, path, log=None):
        with open(path, "rb") as f:
            return cls.from_bytes(f.read(), log)

    def __len__(self):
        return len(self._entries)

    def __contains__(self, name):
        return name in self._entries

    def __iter__(self):
        return iter(self.entries())

    def names(self):
        return list(self._entries)

    def entries(self):
        """Snapshot of the current entries, safe to iterate while mutating."""
        return list(self._entries.values())

    def get(self, name):
        try:
            return self._entries[name]
        except KeyError:
            raise EntryError(name, "no such entry") from None

    def read(self, name):
        return self.get(name).data

    def add(self, name, data, date_time=None, compress_type=zipfile.ZIP_DEFLATED):
        if name in self._entries:
            raise ValueError(f"Duplicate entry: {name}")
        self._entries[name] = ArchiveEntry(
            name, bytes(data), date_time or DEFAULT_DATE_TIME, compress_type)
        return self._entries[name]

    def replace(self, name, data):
        entry = self.get(name)
        entry.data = bytes(data)
        return entry

    def put(self, name, data, **kwargs):
        if name in self._entries:
            return self.replace(name, data)
        return self.add(name, data, **kwargs)

    def delete(self, name):
        return self._entries.pop(name, None) is not None

    def to_bytes(self, align=True):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            for entry in self._entries.values():
                info = zipfile.ZipInfo(entry.name, date_time=entry.date_time)
                info.compress_type = entry.compress_type
                info.external_attr = entry.external_attr
                if align and entry.compress_type == zipfile.ZIP_STORED and not entry.is_dir:
                    alignment = SO_ALIGNMENT if entry.name.endswith(".so") else ALIGNMENT
                    info.extra = _alignment_extra(buf.tell(), entry.name, alignment)
                zf.writestr(info, entry.data)
        return buf.getvalue()


def _read_entry(zf, info):
    try:
        data = zf.read(info)
    except (zipfile.BadZipFile, NotImplementedError, RuntimeError, zlib.error, EOFError) as exc:
        raise EntryError(info.filename, str(exc)) from exc
    compress_type = info.compress_type
    if compress_type not in (zipfile.ZIP_STORED, zipfile.ZIP_DEFLATED):
        compress_type = zipfile.ZIP_DEFLATED
    return ArchiveEntry(info.filename, data, info.date_time, compress_type, info.external_attr)
