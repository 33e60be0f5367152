import sys

from .config import ResignConfig
from .errors import ResignError
from .resign import resign_apk
from .verify import verify_apk

USAGE = (
    "Usage: apkresign <input_apk> <output_apk>\n"
    "       apkresign --verify <signed_apk>"
)


def verify(path):
    with open(path, "rb") as f:
        v1, v2 = verify_apk(f.read())
    print(f"[+] v1: {v1.entries} entries signed by {v1.signer}")
    print(f"[+] v2: {v2.block_size}B signing block at offset {v2.block_offset}")
    print(f"[+] Certificate: {v2.certificate.subject.rfc4514_string()}")


def resign(input_apk, output_apk):
    config = ResignConfig.from_environ()
    result = resign_apk(input_apk, output_apk, config=config)
    print("---")
    for key, value in result.summary().items():
        print(f"{key}: {value}")
    print("---")


def main(argv=None):
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        print(USAGE)
        return 1
    try:
        if args[0] == "--verify":
            verify(args[1])
        else:
            resign(args[0], args[1])
    except (ResignError, ValueError, OSError) as exc:
        print(f"[-] {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
