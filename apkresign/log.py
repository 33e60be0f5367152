from enum import Enum


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARN = "warn"
    ERROR = "error"


PREFIXES = {
    Severity.INFO: "[*]",
    Severity.SUCCESS: "[+]",
    Severity.WARN: "[!]",
    Severity.ERROR: "[-]",
}


def console_sink(phase, detail, severity):
    print(f"{PREFIXES.get(Severity(severity), '[*]')} {phase}: {detail}")


class ProgressLog:
    """Synchronous fan-out to an ``on_log(phase, detail, severity)`` callback.

    The sink is best effort: whatever it raises is dropped so that a broken
    progress channel can never abort a signing operation.
    """

    def __init__(self, sink=None):
        self.sink = sink if sink is not None else console_sink

    def __call__(self, phase, detail, severity=Severity.INFO):
        try:
            self.sink(phase, detail, Severity(severity))
        except Exception:
            pass

    def info(self, phase, detail):
        self(phase, detail, Severity.INFO)

    def success(self, phase, detail):
        self(phase, detail, Severity.SUCCESS)

    def warn(self, phase, detail):
        self(phase, detail, Severity.WARN)

    def error(self, phase, detail):
        self(phase, detail, Severity.ERROR)
