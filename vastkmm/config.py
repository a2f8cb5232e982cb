"""Configuration defaults for the vastkmm application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # Deployment target
    NAMESPACE: str = os.getenv("NAMESPACE", "vastnfs-kmm")
    VASTNFS_VERSION: str = os.getenv("VASTNFS_VERSION", "4.0.35")
    MODULE_NAME: str = os.getenv("MODULE_NAME", "vastnfs")

    # Image configuration
    KMM_IMG_REPO: str = os.getenv(
        "KMM_IMG_REPO",
        "image-registry.openshift-image-registry.svc:5000/vastnfs-kmm/vastnfs"
    )
    KMM_IMG_TAG: str = os.getenv("KMM_IMG_TAG", "${KERNEL_FULL_VERSION}")
    KMM_PULL_SECRET: str = os.getenv("KMM_PULL_SECRET", "")

    # Manifest rendering
    KUSTOMIZE: str = os.getenv("KUSTOMIZE", "kustomize")
    KUSTOMIZE_DIR: str = os.getenv("KUSTOMIZE_DIR", "k8s/base")
    SECURE_BOOT_KUSTOMIZE_DIR: str = os.getenv("SECURE_BOOT_KUSTOMIZE_DIR", "k8s/overlays/secure-boot")

    # Secure boot
    SIGNING_KEY_SECRET: str = os.getenv("SIGNING_KEY_SECRET", "vastnfs-signing-key")
    SIGNING_CERT_SECRET: str = os.getenv("SIGNING_CERT_SECRET", "vastnfs-signing-cert")
    IMAGE_REPO_SECRET: str = os.getenv("IMAGE_REPO_SECRET", "vastnfs-registry-secret")
    KEYS_DIR: str = os.getenv("KEYS_DIR", "keys")
    KEY_NAME: str = os.getenv("KEY_NAME", "vastnfs_signing_key")
    CERT_VALIDITY_DAYS: int = int(os.getenv("CERT_VALIDITY_DAYS", "36500"))

    # Cluster CLI used for node debug pods and apply
    OC_BINARY: str = os.getenv("OC_BINARY", "oc")
    KUBECONFIG: str = os.getenv("KUBECONFIG", "")

    # Concurrency and timeouts (in seconds)
    PROBE_CONCURRENCY: int = int(os.getenv("PROBE_CONCURRENCY", "8"))
    NODE_EXEC_TIMEOUT: int = int(os.getenv("NODE_EXEC_TIMEOUT", "180"))
    APPLY_TIMEOUT: int = int(os.getenv("APPLY_TIMEOUT", "300"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Status API
    API_KEY: str = os.getenv("VASTKMM_API_KEY", "vastkmm-secret")

    @classmethod
    def image(cls) -> str:
        """Full KMM image reference, tag left for KMM to expand per kernel."""
        return f"{cls.KMM_IMG_REPO}:{cls.KMM_IMG_TAG}"

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        required = {
            "NAMESPACE": cls.NAMESPACE,
            "VASTNFS_VERSION": cls.VASTNFS_VERSION,
        }
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
