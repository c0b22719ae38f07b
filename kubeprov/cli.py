import typer
import logging
import sys
from kubeprov.config import Config
from kubeprov.commands import config, master, node

app = typer.Typer(help="Transactional Kubernetes host provisioning")

# Global debug flag
debug_mode = False

# Configure logging
def setup_logging(debug_mode: bool = False):
    """Configure logging based on debug mode."""
    log_level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=Config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )
    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('kubernetes').setLevel(logging.WARNING)

# Add all command groups
app.add_typer(master.app, name="master")
app.add_typer(node.app, name="node")
app.add_typer(config.app, name="config")

# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """kubeprov - install, join and reset Kubernetes hosts with automatic rollback."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.debug("Debug mode enabled")

def run():
    try:
        app()
    except Exception as e:
        if debug_mode:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    run()
