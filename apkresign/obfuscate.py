"""Content-preserving archive mutations.

Every layer mutates the container in place, logs what it did and returns
the number of entries it touched. Layers draw all randomness from the
``rng`` they are given.
"""

import hashlib
import json
import re
import struct
import uuid
import zlib
from base64 import b64encode
from datetime import datetime, timedelta

from .container import pack_dos_timestamp, unpack_dos_timestamp
from .errors import EntryError
from .pools import choose, values

MARKER_PATH = "assets/build.cfg"
STALE_MARKERS = (MARKER_PATH, "assets/.build_info", "assets/app.properties")

DEX_NAME = re.compile(r"^classes\d*\.dex$")
DEX_MAGIC = b"dex\n"
DEX_HEADER_SIZE = 0x70
DEX_CHECKSUM_OFFSET = 8
DEX_SIGNATURE_OFFSET = 12
DEX_FILE_SIZE_OFFSET = 32


def random_hex(rng, n):
    return rng.randbytes(n).hex()


def random_uuid(rng):
    return str(uuid.UUID(int=rng.getrandbits(128), version=4))


def _fill(parts, size, make_line):
    length = sum(len(p) for p in parts)
    while length < size:
        line = make_line()
        parts.append(line)
        length += len(line)
    return "".join(parts)[:size].encode("ascii")


def random_content(rng, size):
    """Filler of exactly ``size`` bytes in one of the weighted content profiles."""
    profile = choose("content_profile", rng)
    if profile == "json":
        keys = values("json_key")
        obj = {}
        for i in range(5 + rng.randrange(12)):
            key = f"{keys[i % len(keys)]}_{random_hex(rng, 2)}"
            obj[key] = random_uuid(rng) if rng.random() < 0.5 else rng.randrange(100000)
        return _fill(
            [json.dumps(obj, indent=2)], size,
            lambda: "\n" + json.dumps({"_pad": random_uuid(rng), "_seq": rng.random()}))
    if profile == "xml":
        text = _fill(
            ['<?xml version="1.0" encoding="utf-8"?>\n<resources>\n'], max(size - 20, 0),
            lambda: f'  <item name="r_{random_hex(rng, 4)}" type="string">'
                    f'{random_uuid(rng)}</item>\n')
        return (text + b"</resources>").ljust(size, b"\n")[:size]
    if profile == "properties":
        return _fill(
            ["# Auto-generated configuration\n"], size,
            lambda: f"{choose('file_base', rng)}.{choose('property_key', rng)}"
                    f"={random_hex(rng, 8)}\n")
    return rng.randbytes(size)


def _unused_name(container, make_name):
    while True:
        name = make_name()
        if name not in container:
            return name


def asset_flood(container, rng, config, log):
    count = rng.randint(*config.flood_count)
    total = 0
    dirs = set()
    for _ in range(count):
        directory = choose("asset_dir", rng)
        name = _unused_name(container, lambda: (
            f"{directory}/{choose('file_base', rng)}_{random_hex(rng, 3)}"
            f"{choose('file_ext', rng)}"))
        size = rng.randint(*config.flood_size)
        container.add(name, random_content(rng, size))
        total += size
        dirs.add(directory)
    log.success("FLOOD", f"Injected {count} cover files across {len(dirs)} asset "
                         f"directories ({total / 1024:.1f} KB)")
    return count


def res_raw_inject(container, rng, config, log):
    count = rng.randint(*config.res_raw_count)
    total = 0
    for _ in range(count):
        name = _unused_name(container, lambda: (
            f"res/raw/{choose('file_base', rng)}_{random_hex(rng, 2)}"))
        size = rng.randint(*config.res_raw_size)
        container.add(name, rng.randbytes(size))
        total += size
    log.success("RES_RAW", f"Injected {count} dummy resource entries ({total / 1024:.1f} KB)")
    return count


def _stamp(entry, moment):
    try:
        dos_time, dos_date = pack_dos_timestamp(moment.timetuple()[:6])
    except ValueError as exc:
        raise EntryError(entry.name, str(exc)) from exc
    entry.date_time = unpack_dos_timestamp(dos_time, dos_date)


def timestamp_mutate(container, rng, config, log, now=None):
    now = now or datetime.now()
    window = timedelta(days=config.timestamp_window_days).total_seconds()
    jitter = timedelta(hours=config.timestamp_jitter_hours).total_seconds()
    base = now - timedelta(seconds=rng.uniform(0, window))
    count = 0
    for entry in container.entries():
        try:
            _stamp(entry, base + timedelta(seconds=rng.uniform(-jitter, jitter)))
        except EntryError as exc:
            log.warn("TIMESTAMP", f"Skipped {exc}")
            continue
        count += 1
    log.info("TIMESTAMP", f"Mutated {count} entry timestamps to {base.date().isoformat()} "
                          f"(+/-{config.timestamp_jitter_hours}h jitter)")
    return count


def entropy_marker(container, rng, config, log, now=None):
    now = now or datetime.now()
    for name in STALE_MARKERS:
        container.delete(name)
    marker = {
        "build_id": random_uuid(rng),
        "build_ts": int(now.timestamp() * 1000),
        "build_hash": random_hex(rng, 32),
        "nonce": b64encode(rng.randbytes(16)).decode("ascii"),
        "entropy": b64encode(rng.randbytes(128)).decode("ascii"),
        "variant": rng.randrange(999999),
        "channel": choose("channel", rng),
        "salt": random_hex(rng, 8),
        "checksum": random_hex(rng, 20),
    }
    entry = container.add(MARKER_PATH, json.dumps(marker, indent=2).encode("ascii"))
    _stamp(entry, now)
    log.info("ENTROPY", f"Build marker: {marker['build_id'][:8]}... "
                        f"ch={marker['channel']} v={marker['variant']}")
    return 1


def extend_dex(name, data, filler):
    """Grow a DEX file by ``filler`` and fix up its file_size, signature and checksum."""
    if len(data) < DEX_HEADER_SIZE or not data.startswith(DEX_MAGIC):
        raise EntryError(name, "not a DEX file")
    (declared,) = struct.unpack_from("<I", data, DEX_FILE_SIZE_OFFSET)
    if declared != len(data):
        raise EntryError(name, f"declared size {declared} != stored size {len(data)}")
    out = bytearray(data)
    out += filler
    struct.pack_into("<I", out, DEX_FILE_SIZE_OFFSET, len(out))
    out[DEX_SIGNATURE_OFFSET:DEX_FILE_SIZE_OFFSET] = hashlib.sha1(
        out[DEX_FILE_SIZE_OFFSET:]).digest()
    struct.pack_into("<I", out, DEX_CHECKSUM_OFFSET,
                     zlib.adler32(bytes(out[DEX_SIGNATURE_OFFSET:])))
    return bytes(out)


def dex_size_mutate(container, rng, config, log):
    # Off by default: map_list and section offsets are not extended, so the
    # runtime verifier may reject the grown file.
    log.warn("DEX_PAD", "DEX size mutation enabled, output may fail DEX verification")
    mutated = 0
    for entry in container.entries():
        if not DEX_NAME.match(entry.name):
            continue
        pad = rng.randint(*config.dex_pad_size)
        try:
            data = extend_dex(entry.name, entry.data, rng.randbytes(pad))
        except EntryError as exc:
            log.warn("DEX_PAD", f"Skipped {exc}")
            continue
        container.replace(entry.name, data)
        mutated += 1
        log.info("DEX_PAD", f"{entry.name}: +{pad}B (size={len(data)})")
    if mutated:
        log.success("DEX_PAD", f"{mutated} DEX file(s) extended")
    return mutated


def run_pipeline(container, rng, config, log, now=None):
    now = now or datetime.now()
    asset_flood(container, rng, config, log)
    if config.res_raw:
        res_raw_inject(container, rng, config, log)
    if config.dex_size_mutation:
        dex_size_mutate(container, rng, config, log)
    timestamp_mutate(container, rng, config, log, now=now)
    entropy_marker(container, rng, config, log, now=now)
    log.success("OBFUSCATE", f"All obfuscation layers applied, {len(container)} entries total")
    return container
