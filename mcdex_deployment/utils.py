import functools
from pathlib import Path

import click
import yaml

from mcdex_deployment.errors import DeploymentError


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def print_info(message: str) -> None:
    click.secho(message, fg="cyan")


def print_success(message: str) -> None:
    click.secho(message, fg="green")


def print_warning(message: str) -> None:
    click.secho(f"WARNING: {message}", fg="yellow")


def pass_or_warn(title: str, condition: bool) -> str:
    """Colours an inspection line green when it checks out, red otherwise."""
    return click.style(title, fg="green" if condition else "red")


def from_wei(value: int, decimals: int = 18) -> str:
    sign = "-" if value < 0 else ""
    whole, fraction = divmod(abs(int(value)), 10**decimals)
    fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{fraction_text}" if fraction_text else f"{sign}{whole}"


def abort_on_deployment_error(func):
    """Turns library errors into a click failure: the message and a non-zero exit code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DeploymentError as e:
            raise click.ClickException(str(e)) from e

    return wrapper
