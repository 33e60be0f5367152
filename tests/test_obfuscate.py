import hashlib
import json
import random
import struct
import zlib
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from apkresign.container import ApkContainer, pack_dos_timestamp, unpack_dos_timestamp
from apkresign.errors import EntryError
from apkresign.log import Severity
from apkresign.obfuscate import (MARKER_PATH, asset_flood, dex_size_mutate, entropy_marker,
                                 extend_dex, random_content, res_raw_inject, run_pipeline,
                                 timestamp_mutate)
from apkresign.pools import values

NOW = datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture
def container(make_zip, make_dex):
    return ApkContainer.from_bytes(make_zip({
        "AndroidManifest.xml": b"<manifest/>",
        "classes.dex": make_dex(),
        "res/layout/main.xml": b"<LinearLayout/>",
    }))


def test_random_content_has_exact_size():
    rng = random.Random(99)
    for size in (0, 1, 19, 20, 21, 1024, 5000, 52224):
        for _ in range(8):
            assert len(random_content(rng, size)) == size


def test_asset_flood(container, rng, config, log):
    before = set(container.names())
    count = asset_flood(container, rng, config, log)
    added = [n for n in container.names() if n not in before]
    assert config.flood_count[0] <= count <= config.flood_count[1]
    assert len(added) == count
    for name in added:
        assert name.rsplit("/", 1)[0] in values("asset_dir")
        assert config.flood_size[0] <= len(container.read(name)) <= config.flood_size[1]


def test_res_raw_inject(container, rng, config, log):
    count = res_raw_inject(container, rng, config, log)
    added = [n for n in container.names() if n.startswith("res/raw/")]
    assert len(added) == count
    assert config.res_raw_count[0] <= count <= config.res_raw_count[1]


def test_timestamp_mutation_window(container, rng, config, log):
    asset_flood(container, rng, config, log)
    count = timestamp_mutate(container, rng, config, log, now=NOW)
    assert count == len(container)
    earliest = NOW - timedelta(days=730, hours=12, seconds=2)
    latest = NOW + timedelta(hours=12)
    stamps = set()
    for entry in container.entries():
        moment = datetime(*entry.date_time)
        assert earliest <= moment <= latest
        assert unpack_dos_timestamp(*pack_dos_timestamp(entry.date_time)) == entry.date_time
        stamps.add(entry.date_time)
    assert datetime(*max(stamps)) - datetime(*min(stamps)) <= timedelta(hours=24)


def test_entropy_marker_replaces_prior_markers(container, rng, config, log):
    container.add("assets/.build_info", b"old")
    container.add("assets/app.properties", b"old")
    entropy_marker(container, rng, config, log, now=NOW)
    first = container.read(MARKER_PATH)
    entropy_marker(container, rng, config, log, now=NOW)
    second = container.read(MARKER_PATH)
    assert "assets/.build_info" not in container
    assert "assets/app.properties" not in container
    assert container.names().count(MARKER_PATH) == 1
    assert first != second
    marker = json.loads(second)
    assert set(marker) == {"build_id", "build_ts", "build_hash", "nonce", "entropy",
                           "variant", "channel", "salt", "checksum"}
    assert marker["channel"] in values("channel")
    assert len(marker["build_hash"]) == 64


def test_extend_dex_keeps_header_consistent(make_dex):
    original = make_dex(b"\x01" * 200)
    grown = extend_dex("classes.dex", original, b"\xff" * 300)
    assert len(grown) == len(original) + 300
    assert grown.startswith(original[:8])
    assert struct.unpack_from("<I", grown, 32)[0] == len(grown)
    assert grown[12:32] == hashlib.sha1(grown[32:]).digest()
    assert struct.unpack_from("<I", grown, 8)[0] == zlib.adler32(grown[12:])


def test_extend_dex_rejects_non_dex():
    with pytest.raises(EntryError):
        extend_dex("classes.dex", b"not a dex", b"\x00")


def test_dex_size_mutation_skips_bad_entries(make_zip, make_dex, rng, config, log, events):
    container = ApkContainer.from_bytes(make_zip({
        "classes.dex": make_dex(), "classes2.dex": b"garbage", "lib.dex": make_dex(),
    }))
    assert dex_size_mutate(container, rng, config, log) == 1
    assert len(container.read("classes.dex")) > len(make_dex())
    assert container.read("classes2.dex") == b"garbage"
    assert container.read("lib.dex") == make_dex()
    assert any(phase == "DEX_PAD" and severity == Severity.WARN and "classes2.dex" in detail
               for phase, detail, severity in events)


def test_pipeline_preserves_functional_entries(container, rng, config, log, make_dex):
    originals = {e.name: e.data for e in container.entries()}
    run_pipeline(container, rng, config, log, now=NOW)
    for name, data in originals.items():
        assert container.read(name) == data
    assert MARKER_PATH in container
    assert len(container) > len(originals) + config.flood_count[0]


def test_pipeline_dex_mutation_is_opt_in(container, rng, config, log, make_dex):
    run_pipeline(container, rng, replace(config, dex_size_mutation=True, res_raw=False),
                 log, now=NOW)
    assert len(container.read("classes.dex")) > len(make_dex())
    assert not any(n.startswith("res/raw/") for n in container.names())


def test_pipeline_is_reproducible_under_seed(make_zip, config, log):
    raw = make_zip({"classes.dex": b"x"})
    a = run_pipeline(ApkContainer.from_bytes(raw), random.Random(5), config, log, now=NOW)
    b = run_pipeline(ApkContainer.from_bytes(raw), random.Random(5), config, log, now=NOW)
    assert a.to_bytes() == b.to_bytes()
