"""Secure boot support: signing key generation and signing secrets.

All cryptography is delegated to the ``openssl`` binary.
"""
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Tuple

from .utils import run_command
from .cluster import ClusterClient
from .errors import CommandError, KeyGenerationError, PreconditionFailure
from .models import SigningMaterial

logger = logging.getLogger("vastkmm.secure_boot")

CERT_CONFIG = """[req]
distinguished_name = req_distinguished_name
x509_extensions = v3_req
prompt = no

[req_distinguished_name]
CN = VAST NFS Kernel Module Signing Key
O = VAST Data
OU = Engineering
C = US

[v3_req]
basicConstraints = CA:FALSE
keyUsage = digitalSignature
subjectKeyIdentifier = hash
"""

PRIVATE_KEY_PATTERN = re.compile(rb'BEGIN.*KEY')


def check_openssl() -> str:
    """Return the openssl version string."""
    if shutil.which('openssl') is None:
        raise PreconditionFailure(
            "openssl not found. Please install OpenSSL "
            "(dnf install openssl / apt install openssl / brew install openssl)"
        )
    return run_command(['openssl', 'version']).stdout.strip()


def key_paths(keys_dir: str, key_name: str) -> Tuple[Path, Path]:
    keys = Path(keys_dir)
    return keys / f"{key_name}.priv", keys / f"{key_name}.der"


def generate_keys(
    keys_dir: str,
    key_name: str = 'vastnfs_signing_key',
    validity_days: int = 36500,
    force: bool = False,
) -> Tuple[Path, Path]:
    """Generate a module signing key pair.

    Returns:
        (private key path, DER certificate path)

    Raises:
        KeyGenerationError: if keys exist and ``force`` is not set, or openssl fails.
    """
    private_key, public_cert = key_paths(keys_dir, key_name)
    if (private_key.exists() or public_cert.exists()) and not force:
        raise KeyGenerationError(
            f"Keys already exist in {keys_dir} ({private_key.name}, {public_cert.name}); "
            "use --force to overwrite existing keys"
        )

    keys = Path(keys_dir)
    if not keys.exists():
        keys.mkdir(parents=True, mode=0o700)
        logger.info(f"Created directory: {keys}")

    config_file = keys / 'cert.config'
    config_file.write_text(CERT_CONFIG)
    logger.info("Generating public/private key pair...")
    try:
        run_command([
            'openssl', 'req', '-x509', '-new', '-nodes', '-utf8', '-sha256',
            '-days', str(validity_days), '-batch',
            '-config', str(config_file),
            '-outform', 'DER', '-out', str(public_cert),
            '-keyout', str(private_key),
        ])
    except CommandError as e:
        raise KeyGenerationError(f"openssl failed to generate keys: {e}") from e
    finally:
        config_file.unlink(missing_ok=True)

    os.chmod(private_key, 0o600)
    os.chmod(public_cert, 0o644)
    logger.info(f"✅ Keys generated: {private_key}, {public_cert}")
    return private_key, public_cert


def certificate_details(public_cert: Path) -> List[str]:
    """Subject and validity lines of a DER certificate."""
    output = run_command(['openssl', 'x509', '-inform', 'der', '-in', str(public_cert), '-text', '-noout']).stdout
    return [
        line.strip() for line in output.splitlines()
        if any(tag in line for tag in ('Subject:', 'Not Before', 'Not After'))
    ]


def check_key_files(signing: SigningMaterial) -> None:
    """Raise PreconditionFailure unless both key files exist."""
    missing = [
        f"{label} not found: {path}"
        for label, path in (
            ("Private key file", signing.private_key_file),
            ("Public certificate file", signing.public_cert_file),
        )
        if not Path(path).is_file()
    ]
    if missing:
        raise PreconditionFailure('; '.join(missing))


def provision_secrets(
    cluster: ClusterClient, namespace: str, signing: SigningMaterial, overwrite: bool = False
) -> None:
    """Create the signing key and certificate secrets."""
    logger.info("Creating Kubernetes secrets...")
    cluster.create_secret_from_file(signing.key_secret, namespace, 'key', signing.private_key_file, overwrite)
    cluster.create_secret_from_file(signing.cert_secret, namespace, 'cert', signing.public_cert_file, overwrite)
    # The internal registry authenticates build pods through their service account
    logger.info("Using OpenShift internal registry with service account authentication")


def _is_der_certificate(data: bytes) -> bool:
    fd, path = tempfile.mkstemp(suffix='.der')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        run_command(['openssl', 'x509', '-inform', 'der', '-in', path, '-noout'])
        return True
    except CommandError:
        return False
    finally:
        os.unlink(path)


def verify_secrets(cluster: ClusterClient, namespace: str, signing: SigningMaterial) -> None:
    """Check the stored key and certificate are usable.

    Raises:
        KeyGenerationError: if either secret is missing or invalid.
    """
    logger.info(f"Verifying secret: {signing.key_secret}")
    key = cluster.read_secret_key(signing.key_secret, namespace, 'key')
    if not key or not PRIVATE_KEY_PATTERN.search(key):
        raise KeyGenerationError(f"Secret {signing.key_secret} is invalid")
    logger.info(f"Secret {signing.key_secret} is valid")

    logger.info(f"Verifying secret: {signing.cert_secret}")
    cert = cluster.read_secret_key(signing.cert_secret, namespace, 'cert')
    if not cert or not _is_der_certificate(cert):
        raise KeyGenerationError(f"Secret {signing.cert_secret} is invalid")
    logger.info(f"Secret {signing.cert_secret} is valid")
