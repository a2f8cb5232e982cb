import typer
import logging
import sys
from typing import Optional

from vastkmm.commands import install, unload, status, verify, uninstall, keys
from vastkmm.logging import add_file_handler
from vastkmm.modules.settings import get_settings

app = typer.Typer(help="VAST NFS kernel module lifecycle management for KMM clusters")

# Global debug flag
debug_mode = False

# Configure logging
def setup_logging(debug_mode: bool = False, log_file: Optional[str] = None):
    """Configure logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('kubernetes').setLevel(logging.WARNING)
    if log_file:
        settings = get_settings().logging
        add_file_handler(log_file, settings.max_size_mb, settings.backup_count)

# Commands
app.command("install")(install.install)
app.command("install-secure-boot")(install.install_secure_boot)
app.command("unload")(unload.unload)
app.command("status")(status.status)
app.command("check-loaded")(status.check_loaded)
app.command("verify")(verify.verify)
app.command("uninstall")(uninstall.uninstall)
app.add_typer(keys.app, name="keys")

# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write logs to this file"),
):
    """vastkmm - deploy and manage the VAST NFS kernel module."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug, log_file or get_settings().logging.file)
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Debug mode enabled")

if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
