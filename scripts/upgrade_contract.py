#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand
from hexbytes import HexBytes

from mcdex_deployment.ape_chain import connect_deployer
from mcdex_deployment.options import account_option, contract_option, network_option, publish_option
from mcdex_deployment.utils import abort_on_deployment_error, print_success


@click.command(cls=ConnectedProviderCommand, name="upgrade-contract")
@network_option
@account_option
@publish_option
@contract_option
@click.option(
    "--call-data",
    help="Hex encoded call run on the proxy right after the upgrade",
    default="0x",
)
@abort_on_deployment_error
def cli(network_name, account, publish, contract_name, call_data):
    """Deploys a new implementation of a recorded proxy and upgrades it through its ProxyAdmin."""
    _config, deployer = connect_deployer(network_name, alias=account, publish=publish)
    proxy = deployer.upgrade(contract_name, data=bytes(HexBytes(call_data)))
    print_success(f"{contract_name} at {proxy.address} now uses {deployer.get_implementation(proxy.address)}")


if __name__ == "__main__":
    cli()
