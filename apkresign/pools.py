"""Weighted value pools used for certificate identities and filler content.

Every pool is a list of ``(value, weight)`` pairs. ``choose`` draws from a
pool with an explicit random source so a seeded ``random.Random`` gives
reproducible picks.
"""


def _flat(values):
    return [(v, 1) for v in values]


POOLS = {
    "asset_dir": _flat([
        "assets/config", "assets/data", "assets/fonts", "assets/cert",
        "assets/analytics", "assets/cache", "assets/images", "assets/preload",
        "assets/db", "assets/locale", "assets/html", "assets/scripts",
        "assets/textures", "assets/models", "assets/media", "assets/internal",
    ]),
    "file_ext": _flat([
        ".dat", ".bin", ".cfg", ".json", ".xml", ".pem", ".key",
        ".db", ".idx", ".tmp", ".cache", ".map", ".properties",
        ".ttf", ".otf", ".png", ".webp", ".bak", ".log",
    ]),
    "file_base": _flat([
        "config", "settings", "preferences", "analytics", "tracking",
        "cert_chain", "ca_bundle", "trust_store", "license", "manifest",
        "schema", "migration", "init", "bootstrap", "loader", "runtime",
        "compat", "bridge", "adapter", "provider", "service", "module",
        "plugin", "extension", "helper", "utility", "common", "shared",
        "network", "storage", "cache", "index", "metadata", "bundle",
        "registry", "catalog", "inventory", "map", "layout", "theme",
    ]),
    "property_key": _flat(["enabled", "timeout", "url", "key", "mode"]),
    "json_key": _flat([
        "version", "build", "timestamp", "id", "enabled", "config", "value",
        "name", "type", "status", "priority", "timeout", "retries",
    ]),
    "content_profile": [
        ("json", 30), ("xml", 25), ("properties", 20), ("binary", 25),
    ],
    "channel": _flat([
        "stable", "beta", "alpha", "dev", "canary", "nightly", "rc", "preview",
    ]),
    "cn": _flat([
        "Android App", "Mobile App", "App Release", "Release Key",
        "Production", "Stable Build", "Internal", "Public Release",
        "App Signing", "Code Signing", "Distribution", "QA Build",
        "Platform Key", "Vendor Key", "Enterprise", "Team Build",
        "Studio Build", "Gradle Plugin", "App Bundle", "Base Module",
        "CI Build", "CD Pipeline", "Deploy Key", "Automation",
        "Security Key", "Auth Bundle", "Play Key", "Store Release",
        "Nightly Build", "Snapshot", "Milestone", "GA Release",
        "Artifact", "Package", "Deliverable", "Component",
        "Feature Build", "Hotfix", "Patch Release", "Service Pack",
    ]),
    "org": _flat([
        "Mobile Dev Corp", "App Studios Inc", "Digital Solutions LLC",
        "Tech Innovations", "Cloud Services Ltd", "Smart Apps Group",
        "Creative Labs", "Innovation Works", "NextGen Software",
        "Prime Digital", "Elite Apps", "Core Systems", "Apex Technologies",
        "Summit Digital", "Horizon Apps", "Pinnacle Dev", "Quantum Labs",
        "Stellar Apps", "Nova Digital", "Atlas Software", "Fusion Tech",
        "Vertex Studios", "Cipher Labs", "Matrix Dev", "Omega Systems",
        "Delta Software", "Sigma Apps", "Lambda Digital", "Phoenix Labs",
        "Falcon Tech", "Eagle Software", "Hawk Digital", "Jade Tech",
        "Ruby Labs", "Sapphire Apps", "Emerald Digital", "Cobalt Systems",
        "Titanium Labs", "Carbon Software", "Silicon Dev", "Granite Tech",
        "Crystal Labs", "Diamond Apps", "Platinum Digital", "Vector Studios",
        "Tensor Labs", "Parallel Systems", "Async Software",
    ]),
    "ou": _flat([
        "Engineering", "Mobile", "Development", "Release Engineering",
        "Platform", "Apps", "R&D", "Product", "Build Infrastructure",
        "Client Team",
    ]),
    "locality": _flat([
        "Mountain View", "Cupertino", "San Francisco", "Los Angeles",
        "New York", "Seattle", "Austin", "Denver", "Chicago", "Boston",
        "Portland", "San Diego", "San Jose", "Phoenix", "Dallas",
        "Houston", "Atlanta", "Miami", "Philadelphia", "Detroit",
        "Minneapolis", "Charlotte", "Nashville", "Salt Lake City",
        "Bangalore", "London", "Berlin", "Tokyo", "Singapore",
        "Dublin", "Amsterdam", "Stockholm", "Toronto", "Sydney",
        "Zurich", "Helsinki", "Oslo", "Copenhagen", "Prague", "Warsaw",
    ]),
    "state": _flat([
        "California", "Washington", "Texas", "New York", "Colorado",
        "Massachusetts", "Oregon", "Illinois", "Georgia", "Florida",
        "Virginia", "Pennsylvania", "North Carolina", "Tennessee",
        "Michigan", "Minnesota", "Ohio", "Arizona", "Utah", "Connecticut",
    ]),
    "country": [("US", 5)] + _flat([
        "GB", "DE", "JP", "SG", "IE", "NL", "SE", "CA", "AU", "IN",
        "CH", "FI", "NO", "DK", "CZ", "PL", "KR", "FR", "IT", "ES",
    ]),
    "signer_prefix": _flat([
        "CERT", "RELEASE", "ANDROIDD", "KEY0", "APP", "SIGNER", "UPLOAD",
        "BNDLTOOL",
    ]),
    "created_by": _flat([
        "1.0 (Android)",
        "1.0 (Android SignApk)",
        "Android Gradle 8.2.2",
        "Android Gradle 8.5.0",
        "17.0.9 (Eclipse Adoptium)",
        "11.0.21 (Oracle Corporation)",
    ]),
}


def choose(pool_id, rng):
    """Draw one value from the named pool."""
    try:
        pool = POOLS[pool_id]
    except KeyError:
        raise KeyError(f"Unknown pool: {pool_id}") from None
    values = [value for value, _ in pool]
    weights = [weight for _, weight in pool]
    return rng.choices(values, weights=weights, k=1)[0]


def values(pool_id):
    return [value for value, _ in POOLS[pool_id]]
