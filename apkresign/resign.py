import os
import random
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .config import ResignConfig
from .container import ApkContainer
from .errors import ValidationError
from .identity import forge_identity
from .log import ProgressLog
from .obfuscate import run_pipeline
from .strip import strip_signatures
from .v1 import sign_v1
from .v2 import sign_v2
from .ziputil import find_eocd, patch_cd_offset, read_cd_offset

MAX_CD_OFFSET = 0xffffffff


class Stage(Enum):
    INIT = "init"
    STRIPPED = "stripped"
    OBFUSCATED = "obfuscated"
    IDENTITY_FORGED = "identity_forged"
    LEGACY_SIGNED = "legacy_signed"
    SERIALIZED = "serialized"
    BINARY_SIGNED = "binary_signed"
    ASSEMBLED = "assembled"
    FAILED = "failed"


PIPELINE = [
    Stage.INIT, Stage.STRIPPED, Stage.OBFUSCATED, Stage.IDENTITY_FORGED,
    Stage.LEGACY_SIGNED, Stage.SERIALIZED, Stage.BINARY_SIGNED, Stage.ASSEMBLED,
]


@dataclass
class ResignResult:
    data: bytes = field(repr=False)
    cert_fingerprint: str
    serial_number: str
    cn: str
    org: str
    output_size: int
    subject: dict
    not_before: datetime
    not_after: datetime
    skipped_entries: list = field(default_factory=list)

    def summary(self):
        return {
            "cert_fingerprint": self.cert_fingerprint,
            "serial_number": self.serial_number,
            "cn": self.cn,
            "org": self.org,
            "output_size": self.output_size,
        }


def splice(unsigned, signing_block):
    """Insert the signing block in front of the central directory and fix the EOCD."""
    cd_offset = signing_block.cd_offset
    eocd_offset = signing_block.eocd_offset
    block = signing_block.block
    new_cd_offset = cd_offset + len(block)
    if new_cd_offset > MAX_CD_OFFSET:
        raise ValidationError("Signed archive exceeds the 4 GiB ZIP offset limit")
    signed = b"".join([
        unsigned[:cd_offset],
        block,
        unsigned[cd_offset:eocd_offset],
        patch_cd_offset(unsigned[eocd_offset:], new_cd_offset),
    ])
    found = read_cd_offset(signed, find_eocd(signed))
    if found != cd_offset + len(block):
        raise ValidationError(
            f"EOCD central directory offset {found} != {cd_offset} + {len(block)}")
    return signed


class ResignOperation:
    """One signing run over one archive. Not reusable and not thread-safe."""

    def __init__(self, config=None, rng=None, on_log=None, now=None):
        self.config = config or ResignConfig()
        self.rng = rng or random.SystemRandom()
        self.log = on_log if isinstance(on_log, ProgressLog) else ProgressLog(on_log)
        self.now = now
        self.stage = Stage.INIT

    def _advance(self, stage):
        if PIPELINE.index(stage) != PIPELINE.index(self.stage) + 1:
            raise RuntimeError(f"Illegal transition {self.stage.value} -> {stage.value}")
        self.stage = stage

    def run(self, data):
        if self.stage is not Stage.INIT:
            raise RuntimeError(f"Operation already {self.stage.value}")
        try:
            return self._run(data)
        except Exception as exc:
            self.stage = Stage.FAILED
            self.log.error("FAILED", f"{type(exc).__name__}: {exc}")
            raise

    def _run(self, data):
        log = self.log
        now = self.now or datetime.now(timezone.utc)
        local_now = now.astimezone().replace(tzinfo=None)

        log.info("INIT", f"Loading APK: {len(data) / 1048576:.2f} MB")
        container = ApkContainer.from_bytes(data, log)
        log.info("INIT", f"Parsed {len(container)} ZIP entries")

        strip_signatures(container, log)
        self._advance(Stage.STRIPPED)

        run_pipeline(container, self.rng, self.config, log, now=local_now)
        self._advance(Stage.OBFUSCATED)

        identity = forge_identity(self.rng, self.config, log, now=now)
        self._advance(Stage.IDENTITY_FORGED)

        sign_v1(container, identity, self.rng, log, now=local_now)
        self._advance(Stage.LEGACY_SIGNED)

        unsigned = container.to_bytes(align=self.config.align)
        log.info("ASSEMBLE", f"Unsigned APK serialized: {len(container)} entries")
        self._advance(Stage.SERIALIZED)

        signing_block = sign_v2(unsigned, identity, log)
        self._advance(Stage.BINARY_SIGNED)

        signed = splice(unsigned, signing_block)
        self._advance(Stage.ASSEMBLED)

        overhead = len(signed) - len(data)
        log.success("DONE", f"Signed APK: {len(signed) / 1048576:.2f} MB "
                            f"({overhead / 1024:+.1f} KB overhead)")
        log.info("CERT", f"SHA-256: {identity.fingerprint[:32]}...")
        if container.skipped:
            log.warn("DONE", f"{len(container.skipped)} unreadable entries dropped: "
                             f"{', '.join(container.skipped)}")
        return ResignResult(
            data=signed,
            cert_fingerprint=identity.fingerprint,
            serial_number=identity.serial_hex,
            cn=identity.cn,
            org=identity.org,
            output_size=len(signed),
            subject=dict(identity.subject),
            not_before=identity.certificate.not_valid_before_utc,
            not_after=identity.certificate.not_valid_after_utc,
            skipped_entries=list(container.skipped),
        )


def write_atomic(path, data):
    path = os.fspath(path)
    fd, tmp = tempfile.mkstemp(dir=os.path.dirname(path) or ".",
                               prefix=os.path.basename(path) + ".", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def resign_apk(source, output=None, config=None, rng=None, on_log=None):
    """Re-sign an APK under a fresh identity.

    ``source`` is the archive bytes or a path to it. When ``output`` is given
    the signed archive is written there only after every phase succeeded.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
    else:
        with open(source, "rb") as f:
            data = f.read()
    result = ResignOperation(config=config, rng=rng, on_log=on_log).run(data)
    if output is not None:
        write_atomic(output, result.data)
    return result
