#!/usr/bin/python3

from typing import List, Optional, Tuple

import click

from mcdex_deployment.constants import SUPPORTED_NETWORKS
from mcdex_deployment.networks import records_filepath
from mcdex_deployment.records import DeploymentRecord, read_records


def _get_records(network: Optional[str] = None) -> List[Tuple[str, List[DeploymentRecord]]]:
    """Parse the record files of the given network or of all supported networks."""
    network_records = list()
    for network_name in SUPPORTED_NETWORKS:
        if network and network != network_name:
            continue
        filepath = records_filepath(network_name)
        if not filepath.exists():
            continue
        network_records.append((network_name, list(read_records(filepath).values())))
    return network_records


def _display_records(network_records: List[Tuple[str, List[DeploymentRecord]]]) -> None:
    for network_name, records in network_records:
        click.secho(f"\n{network_name}", fg="green")
        for index, record in enumerate(records, start=1):
            click.secho(f"    {index}. {record.name} {record.address} ({record.type.value})", fg="cyan")
            if record.dependencies is not None:
                click.secho(f"        implementation {record.dependencies.implementation}", fg="yellow")
                click.secho(f"        admin          {record.dependencies.admin}", fg="yellow")


@click.command(name="list-deployments")
@click.option(
    "--network-name",
    "-n",
    "network_name",
    help="MCDEX deployment network",
    type=click.Choice(SUPPORTED_NETWORKS),
)
def cli(network_name):
    """List all recorded contracts. Optionally filter by network."""
    _display_records(_get_records(network_name))


if __name__ == "__main__":
    cli()
