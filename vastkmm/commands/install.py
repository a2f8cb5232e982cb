"""Install and upgrade commands.

``install`` deploys the module from the base kustomization (or a pre-rendered
manifest); ``install-secure-boot`` does the same with module signing keys
provisioned as secrets first. Both reconcile against what is already loaded:
any node running VAST NFS is unloaded before the new manifest is applied.
"""
import logging
from typing import Callable, Optional

import typer

from ..config import Config
from ..modules.errors import VastKmmError
from ..modules.manifest import load_manifest, render_manifest
from ..modules.models import DeploymentReport, DeploymentRequest, ReconciliationDecision, SigningMaterial
from ..modules.reconcile import DeploymentReconciler
from ..modules.secure_boot import key_paths
from ..modules.utils import redact_sensitive_data
from . import aggregator, cluster_client, fail, load_settings, sequencer

logger = logging.getLogger("vastkmm.install")


def manifest_source(
    request: DeploymentRequest,
    manifest: Optional[str],
    kustomize_dir: str,
    use_pull_secret_overlay: bool = True,
) -> Callable[[], str]:
    """Deferred manifest rendering, run after the read-only checks pass."""
    variables = request.template_variables()
    if manifest:
        return lambda: load_manifest(manifest, variables)
    pull_secret = request.pull_secret if use_pull_secret_overlay else None
    return lambda: render_manifest(kustomize_dir, variables, pull_secret, Config.KUSTOMIZE)


def deploy(
    request: DeploymentRequest,
    manifest: Callable[[], str],
    config: Optional[str] = None,
    allow_noop: bool = False,
    debug: bool = False,
) -> DeploymentReport:
    """Run the reconciler and report the outcome on the console."""
    settings = load_settings(config)
    logger.debug(f"Template variables: {redact_sensitive_data(request.template_variables())}")
    try:
        cluster = cluster_client(settings)
    except VastKmmError as e:
        raise fail(e, debug)

    reconciler = DeploymentReconciler(
        cluster,
        aggregator=aggregator(cluster, settings),
        sequencer=sequencer(cluster, settings),
        timeouts=settings.timeouts,
        allow_noop=allow_noop,
    )
    report = reconciler.run(request, manifest)

    typer.echo("")
    typer.echo(f"=== {report.summary()} ===")
    for warning in report.warnings:
        typer.echo(f"  ⚠️  {warning}")

    if report.applied:
        typer.echo("")
        typer.echo("Next steps:")
        typer.echo("  1. Check deployment status:  vastkmm status")
        typer.echo(f"  2. Verify the deployment:    vastkmm verify -n {request.namespace} --wait 300")
        if not request.follow_logs:
            typer.echo(f"  3. Follow module logs:        oc logs -f -l kmm.node.kubernetes.io/module.name={request.module_name} -n {request.namespace}")
    elif report.decision != ReconciliationDecision.NOOP_ALREADY_CURRENT:
        raise typer.Exit(code=1)
    return report


def install(
    version: str = typer.Option(Config.VASTNFS_VERSION, "--version", "-v", help="VAST NFS version to deploy"),
    namespace: str = typer.Option(Config.NAMESPACE, "--namespace", "-n", help="Target namespace"),
    image: str = typer.Option(Config.image(), "--image", "-i", help="KMM image reference"),
    pull_secret: str = typer.Option(Config.KMM_PULL_SECRET, "--pull-secret", help="Image pull secret name"),
    kustomize_dir: str = typer.Option(Config.KUSTOMIZE_DIR, "--dir", "-d", help="Kustomize base directory"),
    manifest: Optional[str] = typer.Option(None, "--manifest", "-m", help="Pre-rendered manifest file"),
    wait: bool = typer.Option(False, "--wait", "-w", help="Wait for worker pods and follow their logs"),
    prebuilt: bool = typer.Option(True, "--prebuilt/--build", help="Module images are pre-built"),
    allow_noop: bool = typer.Option(False, "--allow-noop", help="Skip when every node already runs the version"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Install or upgrade VAST NFS KMM on the cluster."""
    request = DeploymentRequest(
        target_version=version,
        namespace=namespace,
        image=image,
        pull_secret=pull_secret or None,
        prebuilt_images=prebuilt,
        follow_logs=wait,
        module_name=Config.MODULE_NAME,
    )
    deploy(request, manifest_source(request, manifest, kustomize_dir), config, allow_noop, debug)


def install_secure_boot(
    version: str = typer.Option(Config.VASTNFS_VERSION, "--version", "-v", help="VAST NFS version to deploy"),
    namespace: str = typer.Option(Config.NAMESPACE, "--namespace", "-n", help="Target namespace"),
    image: str = typer.Option(Config.image(), "--image", "-i", help="KMM image reference"),
    keys_dir: str = typer.Option(Config.KEYS_DIR, "--keys", help="Directory holding the signing key pair"),
    key_name: str = typer.Option(Config.KEY_NAME, "--key-name", help="Signing key file name (without extension)"),
    kustomize_dir: str = typer.Option(Config.SECURE_BOOT_KUSTOMIZE_DIR, "--dir", "-d", help="Secure boot kustomization"),
    manifest: Optional[str] = typer.Option(None, "--manifest", "-m", help="Pre-rendered manifest file"),
    wait: bool = typer.Option(False, "--wait", "-w", help="Wait for worker pods and follow their logs"),
    allow_noop: bool = typer.Option(False, "--allow-noop", help="Skip when every node already runs the version"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Install VAST NFS KMM with secure boot module signing."""
    private_key, public_cert = key_paths(keys_dir, key_name)
    request = DeploymentRequest(
        target_version=version,
        namespace=namespace,
        image=image,
        signing=SigningMaterial(
            private_key_file=str(private_key),
            public_cert_file=str(public_cert),
            key_secret=Config.SIGNING_KEY_SECRET,
            cert_secret=Config.SIGNING_CERT_SECRET,
            image_repo_secret=Config.IMAGE_REPO_SECRET,
        ),
        # Signed modules are built in-cluster
        prebuilt_images=False,
        follow_logs=wait,
        module_name=Config.MODULE_NAME,
    )
    logger.info(f"Using signing key: {private_key}")
    deploy(
        request,
        manifest_source(request, manifest, kustomize_dir, use_pull_secret_overlay=False),
        config, allow_noop, debug,
    )
