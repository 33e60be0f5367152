import os
from dataclasses import dataclass, fields, replace

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")

# env var -> (field, index into a (min, max) range or None)
ENV_VARS = {
    "APKRESIGN_FLOOD_MIN": ("flood_count", 0),
    "APKRESIGN_FLOOD_MAX": ("flood_count", 1),
    "APKRESIGN_FLOOD_SIZE_MIN": ("flood_size", 0),
    "APKRESIGN_FLOOD_SIZE_MAX": ("flood_size", 1),
    "APKRESIGN_RES_RAW": ("res_raw", None),
    "APKRESIGN_TIMESTAMP_WINDOW_DAYS": ("timestamp_window_days", None),
    "APKRESIGN_DEX_SIZE_MUTATION": ("dex_size_mutation", None),
    "APKRESIGN_KEY_SIZE": ("key_size", None),
    "APKRESIGN_ALIGN": ("align", None),
}


@dataclass(frozen=True)
class ResignConfig:
    flood_count: tuple = (10, 25)
    flood_size: tuple = (1024, 52224)
    res_raw: bool = True
    res_raw_count: tuple = (3, 8)
    res_raw_size: tuple = (512, 8704)
    timestamp_window_days: int = 730
    timestamp_jitter_hours: int = 12
    dex_size_mutation: bool = False
    dex_pad_size: tuple = (256, 4096)
    key_size: int = 2048
    validity_years: tuple = (25, 35)
    backdate_days: int = 180
    align: bool = True

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, tuple):
                if len(value) != 2 or value[0] > value[1] or value[0] < 0:
                    raise ValueError(f"Invalid range for {f.name}: {value!r}")
        if self.key_size < 2048:
            raise ValueError(f"key_size must be at least 2048, got {self.key_size}")

    @classmethod
    def from_environ(cls, environ=None):
        environ = os.environ if environ is None else environ
        config = cls()
        overrides = {}
        for var, (name, index) in ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            current = overrides.get(name, getattr(config, name))
            if isinstance(current, bool):
                value = _parse_bool(var, raw)
            else:
                try:
                    value = int(raw)
                except ValueError:
                    raise ValueError(f"Invalid {var}: {raw!r}") from None
            if index is not None:
                bounds = list(current)
                bounds[index] = value
                value = tuple(bounds)
            overrides[name] = value
        return replace(config, **overrides)


def _parse_bool(var, raw):
    lowered = raw.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"Invalid {var}: {raw!r}")
