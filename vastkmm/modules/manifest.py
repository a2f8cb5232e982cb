"""Rendered manifest acquisition.

The manifest is produced outside this package: either a pre-rendered file,
or ``kustomize build`` output with a fixed set of variables filled in. Only
the listed variables are replaced; any other ``$VAR`` (for example
``${KERNEL_FULL_VERSION}``, expanded later by KMM) is left as is.
"""
import logging
import re
from pathlib import Path
from typing import Dict, Optional

from .utils import run_command
from .errors import CommandError, PreconditionFailure

logger = logging.getLogger("vastkmm.manifest")

PULL_SECRET_OVERLAY = '../overlays/with-pull-secret'


def substitute(text: str, variables: Dict[str, str]) -> str:
    """Replace ``$NAME`` and ``${NAME}`` for the given names only."""
    if not variables:
        return text
    names = '|'.join(re.escape(name) for name in sorted(variables, key=len, reverse=True))
    pattern = re.compile(r'\$(?:\{(' + names + r')\}|(' + names + r')(?![A-Za-z0-9_]))')
    return pattern.sub(lambda m: variables[m.group(1) or m.group(2)], text)


def kustomize_target(kustomize_dir: str, pull_secret: Optional[str]) -> Path:
    """The kustomization to build; pull-secret deployments use the overlay."""
    base = Path(kustomize_dir)
    if pull_secret:
        logger.info(f"Using pull secret overlay: {pull_secret}")
        return (base / PULL_SECRET_OVERLAY).resolve()
    logger.info("No pull secret specified, using base configuration")
    return base


def render_manifest(
    kustomize_dir: str,
    variables: Dict[str, str],
    pull_secret: Optional[str] = None,
    kustomize: str = 'kustomize',
) -> str:
    """Build the manifest with kustomize and fill in the deployment variables."""
    target = kustomize_target(kustomize_dir, pull_secret)
    if not target.is_dir():
        raise PreconditionFailure(f"Kustomize directory not found: {target}")
    try:
        output = run_command([kustomize, 'build', str(target)]).stdout
    except CommandError as e:
        raise PreconditionFailure(f"Failed to build manifests: {e}") from e
    return substitute(output, variables)


def load_manifest(path: str, variables: Optional[Dict[str, str]] = None) -> str:
    """Read a pre-rendered manifest file."""
    manifest = Path(path)
    if not manifest.is_file():
        raise PreconditionFailure(f"Manifest not found: {manifest}")
    return substitute(manifest.read_text(), variables or {})
