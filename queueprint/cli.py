"""Command-line interface for the QueuePrint agent."""

import logging
import sys
from pathlib import Path

import click

from queueprint import __version__
from queueprint.agent import get_agent
from queueprint.config import DEFAULT_CONFIG_FILE, get_config
from queueprint.models import TEST_PRINT_ORDER_ID, PrintCommand, PrintCommandSettings
from queueprint.printing import get_printer


def setup_logging(level: str) -> None:
    """Set up logging configuration.

    Args:
        level: Log level string.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )


def _echo_response(response) -> None:
    if response.success:
        click.echo(f"+ {response.message}")
        return
    click.echo(f"x {response.message}")
    if response.error:
        click.echo(f"  {response.error}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def main():
    """QueuePrint - shared-queue label print agent.

    QueuePrint watches the print_jobs table and prints each pending
    label exactly once, even when several agents share the queue.
    """
    pass


@main.command()
@click.option("--agent-id", "-a", prompt="Agent ID", help="Base agent id (e.g. packing-1)")
@click.option("--printer", "-p", prompt="Printer name", help="Default printer for labels")
@click.option("--supabase-url", default="", help="Supabase project URL")
@click.option("--supabase-key", default="", hide_input=True, help="Supabase service role key")
@click.option("--database-url", default="", help="SQLAlchemy URL (instead of Supabase)")
def configure(agent_id: str, printer: str, supabase_url: str, supabase_key: str, database_url: str):
    """Write the agent settings file."""
    config = get_config()
    config.agent_id = agent_id
    config.printer_name = printer
    config.supabase_url = supabase_url.rstrip("/")
    config.supabase_key = supabase_key
    config.database_url = database_url

    if not config.is_configured():
        click.echo("Error: a Supabase URL and key, or a database URL, is required.")
        sys.exit(1)

    config.save()
    click.echo(f"\nConfiguration saved to {config.config_path or DEFAULT_CONFIG_FILE}")
    click.echo("\nRun 'queueprint test-print' to check the printer.")
    click.echo("Run 'queueprint start' to start the agent.")


@main.command()
def status():
    """Show current configuration and status."""
    config = get_config()

    click.echo("\n=== QueuePrint Status ===\n")

    if not config.is_configured():
        click.echo("Status: NOT CONFIGURED")
        click.echo("\nRun 'queueprint configure' to set up the agent.")
        return

    agent = get_agent(config)
    connected = agent.connect()
    info = agent.status()

    click.echo(f"Agent ID: {info['agent_id']}")
    click.echo(f"Job store: {info['backend']} ({'connected' if connected else 'UNREACHABLE'})")
    click.echo(f"Printer: {info['printer']} [{info['printer_status']}]")
    click.echo(f"Poll Interval: {config.poll_interval}s")
    click.echo(f"Silent printing: {'yes' if config.silent else 'no'}")


@main.command()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def start(verbose: bool):
    """Start the QueuePrint agent.

    The agent claims pending jobs as they are inserted and prints them.
    Press Ctrl+C to stop.
    """
    config = get_config()

    if not config.is_configured():
        click.echo("Error: Agent not configured. Run 'queueprint configure' first.")
        sys.exit(1)

    setup_logging("DEBUG" if verbose else config.log_level)

    click.echo("Starting QueuePrint agent... (Ctrl+C to stop)")

    agent = get_agent(config)
    agent.run()


@main.command("print")
@click.argument("job_id")
@click.option("--url", "label_url", default=None, help="Label URL override")
@click.option("--printer", "printer_name", default=None, help="Printer override")
@click.option("--silent/--preview", default=True, help="Print directly or through the preview")
def print_job(job_id: str, label_url: str | None, printer_name: str | None, silent: bool):
    """Claim a specific job now and print it."""
    config = get_config()
    setup_logging(config.log_level)

    agent = get_agent(config)
    agent.connect()
    response = agent.submit_print_command(
        PrintCommand(
            order_id=job_id,
            label_url=label_url,
            printer_name=printer_name,
            settings=PrintCommandSettings(silent=silent),
        )
    )
    _echo_response(response)


@main.command("test-print")
@click.option("--url", "label_url", default=None, help="Document to print (default: sample label)")
@click.option("--file", "file_path", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--printer", "printer_name", default=None, help="Printer override")
@click.option("--silent/--preview", default=True, help="Print directly or through the preview")
def test_print(label_url: str | None, file_path: str | None, printer_name: str | None, silent: bool):
    """Print a test label or a local PDF without touching the job queue."""
    config = get_config()
    setup_logging(config.log_level)

    if file_path:
        label_url = Path(file_path).resolve().as_uri()

    agent = get_agent(config)
    response = agent.submit_print_command(
        PrintCommand(
            order_id=TEST_PRINT_ORDER_ID,
            label_url=label_url or config.test_label_url,
            printer_name=printer_name,
            settings=PrintCommandSettings(silent=silent),
        )
    )
    _echo_response(response)


@main.command()
def printers():
    """List available printers."""
    printer = get_printer()

    click.echo("\n=== Available Printers ===\n")

    if not printer.is_available:
        click.echo("No print system available. Is CUPS installed and running?")
        sys.exit(1)

    printers_list = printer.get_printers()
    if not printers_list:
        click.echo("No printers found.")
        return

    default = printer.get_default_printer()

    for p in printers_list:
        p_status = printer.get_printer_status(p["name"])
        marker = "* " if p["name"] == default else "  "
        click.echo(f"{marker}{p['name']} [{p_status}]")

    click.echo("\n(* = default printer)")


@main.command("install-service")
@click.option("--user", is_flag=True, help="Install as user service (no sudo required)")
def install_service(user: bool):
    """Install systemd service for auto-start.

    Creates a systemd service file so QueuePrint starts automatically
    on boot.
    """
    config = get_config()

    if not config.is_configured():
        click.echo("Error: Agent not configured. Run 'queueprint configure' first.")
        sys.exit(1)

    service_content = f"""[Unit]
Description=QueuePrint Label Printing Agent
After=network-online.target cups.service

[Service]
Type=simple
ExecStart={sys.executable} -m queueprint start
Restart=on-failure
RestartSec=10
Environment=HOME={Path.home()}

[Install]
WantedBy={"default.target" if user else "multi-user.target"}
"""

    if user:
        service_dir = Path.home() / ".config" / "systemd" / "user"
        service_path = service_dir / "queueprint.service"
    else:
        service_path = Path("/etc/systemd/system/queueprint.service")

    click.echo("\nService file content:\n")
    click.echo(service_content)

    if user:
        service_dir.mkdir(parents=True, exist_ok=True)
        with open(service_path, "w") as f:
            f.write(service_content)

        click.echo(f"\nService installed to {service_path}")
        click.echo("\nTo enable and start the service:")
        click.echo("  systemctl --user daemon-reload")
        click.echo("  systemctl --user enable --now queueprint")
        click.echo("\nTo view logs:")
        click.echo("  journalctl --user -u queueprint -f")
    else:
        click.echo("\nTo install as system service, run:")
        click.echo(f"  sudo tee {service_path} << 'EOF'")
        click.echo(service_content)
        click.echo("EOF")
        click.echo("\nThen enable and start:")
        click.echo("  sudo systemctl daemon-reload")
        click.echo("  sudo systemctl enable --now queueprint")


if __name__ == "__main__":
    main()
