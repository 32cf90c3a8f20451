#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand

from mcdex_deployment.ape_chain import connect_deployer
from mcdex_deployment.options import account_option, network_option, publish_option
from mcdex_deployment.rollout import deploy_infrastructure
from mcdex_deployment.utils import abort_on_deployment_error, print_success


@click.command(cls=ConnectedProviderCommand, name="deploy")
@network_option
@account_option
@publish_option
@abort_on_deployment_error
def cli(network_name, account, publish):
    """
    Rolls out the protocol infrastructure of a network.
    Rerunning it after a failure only performs the remaining steps.
    """
    config, deployer = connect_deployer(network_name, alias=account, publish=publish)
    infrastructure = deploy_infrastructure(deployer, config.constants)
    print_success(f"PoolCreator: {infrastructure.pool_creator.address}")
    print_success(f"Initial version: {infrastructure.version.key.hex()}")


if __name__ == "__main__":
    cli()
