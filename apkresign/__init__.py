"""APK re-signing engine: strip, obfuscate, forge a fresh identity, sign v1 + v2."""

from .config import ResignConfig
from .errors import CryptoError, EntryError, ResignError, ValidationError
from .log import ProgressLog, Severity
from .resign import ResignOperation, ResignResult, Stage, resign_apk
from .verify import verify_apk

__version__ = "0.1.0"

__all__ = [
    "CryptoError",
    "EntryError",
    "ProgressLog",
    "ResignConfig",
    "ResignError",
    "ResignOperation",
    "ResignResult",
    "Severity",
    "Stage",
    "ValidationError",
    "resign_apk",
    "verify_apk",
]
