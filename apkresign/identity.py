import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .errors import CryptoError
from .pools import choose

PUBLIC_EXPONENT = 65537
YEAR = timedelta(days=365.25)
OU_PROBABILITY = 0.6

SUBJECT_OIDS = (
    ("CN", NameOID.COMMON_NAME),
    ("OU", NameOID.ORGANIZATIONAL_UNIT_NAME),
    ("O", NameOID.ORGANIZATION_NAME),
    ("L", NameOID.LOCALITY_NAME),
    ("ST", NameOID.STATE_OR_PROVINCE_NAME),
    ("C", NameOID.COUNTRY_NAME),
)


@dataclass
class Identity:
    private_key: rsa.RSAPrivateKey
    certificate: x509.Certificate
    subject: dict

    @property
    def public_key(self):
        return self.private_key.public_key()

    @property
    def cn(self):
        return self.subject["CN"]

    @property
    def org(self):
        return self.subject["O"]

    @property
    def certificate_der(self):
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def public_key_der(self):
        return self.public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo)

    @property
    def fingerprint(self):
        digest = hashlib.sha256(self.certificate_der).hexdigest().upper()
        return ":".join(digest[i:i + 2] for i in range(0, len(digest), 2))

    @property
    def serial_hex(self):
        return f"{self.certificate.serial_number:032x}"


def random_subject(rng):
    subject = {"CN": choose("cn", rng)}
    if rng.random() < OU_PROBABILITY:
        subject["OU"] = choose("ou", rng)
    subject["O"] = choose("org", rng)
    subject["L"] = choose("locality", rng)
    subject["ST"] = choose("state", rng)
    subject["C"] = choose("country", rng)
    return subject


def build_name(subject):
    return x509.Name([
        x509.NameAttribute(oid, subject[key])
        for key, oid in SUBJECT_OIDS if key in subject
    ])


def validity_window(rng, now, backdate_days=180, years=(25, 35)):
    """Return ``(not_before, not_after)`` with second precision.

    not_before lies up to ``backdate_days`` in the past, and the lifetime is
    in ``[years[0], years[1])`` years.
    """
    backdate = rng.randint(1, int(timedelta(days=backdate_days).total_seconds()))
    not_before = now.replace(microsecond=0) - timedelta(seconds=backdate)
    low = int((years[0] * YEAR).total_seconds())
    high = int((years[1] * YEAR).total_seconds())
    return not_before, not_before + timedelta(seconds=rng.randrange(low, high))


def forge_identity(rng, config, log, now=None):
    now = now or datetime.now(timezone.utc)
    log.info("KEYGEN", f"Generating fresh {config.key_size}-bit RSA keypair...")
    subject = random_subject(rng)
    not_before, not_after = validity_window(
        rng, now, config.backdate_days, config.validity_years)
    name = build_name(subject)
    try:
        key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT,
                                       key_size=config.key_size)
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(rng.getrandbits(128) or 1)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(x509.KeyUsage(
                digital_signature=True,
                content_commitment=True,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
                           critical=False)
        )
        certificate = builder.sign(key, hashes.SHA256())
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CryptoError(f"Certificate generation failed: {exc}") from exc
    identity = Identity(key, certificate, subject)
    log.info("CERT", " ".join(f'{k}="{v}"' for k, v in subject.items()))
    log.info("CERT", f"Validity: {not_before.year}-{not_after.year} "
                     f"({not_after.year - not_before.year}y)")
    return identity
