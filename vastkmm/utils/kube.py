import os
from pathlib import Path

import yaml
from kubernetes import config

def load_kubeconfig(path: str = None) -> str:
    """
    Load the kubeconfig from a given path, the KUBECONFIG_CONTENT env var,
    the default location, or the in-cluster service account.
    Returns a description of what was used.
    """
    # CI/CD secret-based loading, kept in memory so credentials never touch disk
    if "KUBECONFIG_CONTENT" in os.environ:
        config.load_kube_config_from_dict(yaml.safe_load(os.environ["KUBECONFIG_CONTENT"]))
        return "KUBECONFIG_CONTENT"

    # Local path loading
    if path:
        resolved = Path(os.path.expanduser(path)).resolve()
        if not resolved.exists():
            raise FileNotFoundError(f"❌ Kubeconfig not found: {resolved}")
        config.load_kube_config(config_file=str(resolved))
        return str(resolved)

    try:
        config.load_kube_config()
        return os.environ.get("KUBECONFIG", "~/.kube/config")
    except config.ConfigException:
        config.load_incluster_config()
        return "in-cluster"
