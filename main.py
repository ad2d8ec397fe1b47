# main.py
import os
import sys

import click

from errors import ConfigError, TransportError
from logger import setup_logger


@click.command("vimgreet-greeter")
@click.option("--dryrun", is_flag=True,
              help="Use a demo login service (password 'demo'); power actions are simulated.")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None,
              help="Write the log here instead of /var/log/vimgreet.log.")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level.")
def greeter_cmd(dryrun: bool, log_file: str, verbose: bool) -> None:
    """Vim-style login screen for greetd."""
    log = setup_logger(log_file, verbose)
    from auth.protocol import DemoTransport, GreetdTransport

    if dryrun:
        transport = DemoTransport()
    else:
        try:
            transport = GreetdTransport.from_env()
            transport.connect()
        except TransportError as e:
            log.error("Cannot reach greetd: %s", e)
            click.echo(f"ERROR: {e}. Use --dryrun to test without greetd.", err=True)
            sys.exit(1)

    from system.sessions import discover_sessions
    from system.users import discover_users
    from greeter.controller import GreeterController
    from app import GreeterApp

    controller = GreeterController(
        transport, discover_users(), discover_sessions(), dryrun=dryrun,
    )
    app = GreeterApp(controller)
    try:
        app.run()
    finally:
        transport.close()
    sys.exit(app.return_code or 0)


@click.command("vimgreet-onboard")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Wizard configuration (default /etc/vimgreet/onboard.yaml).")
@click.option("--dryrun", is_flag=True, help="Simulate every system change.")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None,
              help="Write the log here instead of /var/log/vimgreet.log.")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level.")
def onboard_cmd(config_path: str, dryrun: bool, log_file: str, verbose: bool) -> None:
    """First-boot setup wizard."""
    log = setup_logger(log_file, verbose)
    from onboard.config import load_config

    try:
        config = load_config(config_path)
    except ConfigError as e:
        log.error("Invalid configuration: %s", e)
        click.echo(f"ERROR: {e}", err=True)
        sys.exit(2)
    if dryrun:
        config.general.dryrun = True

    if not config.general.dryrun and os.geteuid() != 0:
        click.echo("ERROR: The setup wizard must be run as root (or with --dryrun).", err=True)
        sys.exit(1)

    from onboard.controller import OnboardController
    from app import OnboardApp

    app = OnboardApp(OnboardController(config))
    app.run()
    sys.exit(app.return_code or 0)


if __name__ == "__main__":
    greeter_cmd()
