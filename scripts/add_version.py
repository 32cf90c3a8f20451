#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand

from mcdex_deployment.ape_chain import connect_deployer
from mcdex_deployment.contracts import Contract
from mcdex_deployment.options import account_option, network_option
from mcdex_deployment.upgrade import UpgradeOrchestrator
from mcdex_deployment.utils import abort_on_deployment_error, print_success


@click.command(cls=ConnectedProviderCommand, name="add-version")
@network_option
@account_option
@click.option("--schema-version", "-s", help="Compatibility of the version", type=int, required=True)
@click.option("--description", "-d", help="Version note stored on chain", required=True)
@abort_on_deployment_error
def cli(network_name, account, schema_version, description):
    """Registers the recorded LiquidityPool, LiquidityPoolHop1 and LpGovernor as a version."""
    _config, deployer = connect_deployer(network_name, alias=account)
    orchestrator = UpgradeOrchestrator(deployer)
    version = orchestrator.add_version(
        [
            deployer.address_of(Contract.LIQUIDITY_POOL),
            deployer.address_of(Contract.LIQUIDITY_POOL_HOP1),
        ],
        deployer.address_of(Contract.LP_GOVERNOR),
        schema_version,
        description,
    )
    print_success(f"Version key: {version.key.hex()}")


if __name__ == "__main__":
    cli()
