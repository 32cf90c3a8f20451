#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand

from mcdex_deployment.ape_chain import connect_deployer
from mcdex_deployment.errors import ConfigError
from mcdex_deployment.options import account_option, network_option, publish_option
from mcdex_deployment.rollout import deploy_oracles, deploy_tunable_oracle_register
from mcdex_deployment.utils import abort_on_deployment_error, print_success


@click.command(cls=ConnectedProviderCommand, name="deploy-oracle")
@network_option
@account_option
@publish_option
@click.option(
    "--tunable",
    help="Also deploy the TunableOracleRegister and MultiTunableOracleSetter",
    is_flag=True,
    default=False,
)
@abort_on_deployment_error
def cli(network_name, account, publish, tunable):
    """Deploys the MCDEX oracles of a network."""
    config, deployer = connect_deployer(network_name, alias=account, publish=publish)
    constants = config.constants
    upgrade_admin = getattr(constants, "ORACLE_UPGRADE_ADMIN", None)
    if upgrade_admin is None:
        raise ConfigError(f"ORACLE_UPGRADE_ADMIN is not set in the {network_name} config.")

    oracles = deploy_oracles(
        deployer,
        upgrade_admin,
        markets=getattr(constants, "ORACLE_MARKETS", None) or [],
    )
    for oracle in oracles:
        print_success(f"Oracle: {oracle.address}")

    if tunable:
        for contract in deploy_tunable_oracle_register(deployer, upgrade_admin):
            print_success(f"Tunable oracle contract: {contract.address}")


if __name__ == "__main__":
    cli()
