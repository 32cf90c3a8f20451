#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand

from mcdex_deployment.ape_chain import connect_deployer
from mcdex_deployment.options import account_option, network_option, publish_option
from mcdex_deployment.rollout import deploy_version
from mcdex_deployment.utils import abort_on_deployment_error


@click.command(cls=ConnectedProviderCommand, name="deploy-version")
@network_option
@account_option
@publish_option
@abort_on_deployment_error
def cli(network_name, account, publish):
    """Deploys new LiquidityPool implementations; register them with add_version."""
    _config, deployer = connect_deployer(network_name, alias=account, publish=publish)
    deploy_version(deployer)


if __name__ == "__main__":
    cli()
