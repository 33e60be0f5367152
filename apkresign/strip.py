from .container import META_INF

SIGNATURE_SUFFIXES = (".SF", ".RSA", ".DSA", ".EC", ".MF")


def is_signature_file(name):
    return name.startswith(META_INF) and name.endswith(SIGNATURE_SUFFIXES)


def strip_signatures(container, log):
    """Remove v1 signature artifacts from META-INF/; returns the number removed."""
    removed = 0
    for name in container.names():
        if is_signature_file(name) and container.delete(name):
            removed += 1
    log.info("STRIP", f"Removed {removed} v1 signature files from {META_INF}")
    return removed
