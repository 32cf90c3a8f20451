import click

from mcdex_deployment.constants import DEPLOYER_ACCOUNT_ENVVAR, SUPPORTED_NETWORKS
from mcdex_deployment.contracts import Contract

network_option = click.option(
    "--network-name",
    "-n",
    "network_name",
    help="MCDEX deployment network (selects the config and record files)",
    type=click.Choice(SUPPORTED_NETWORKS),
    required=True,
)

account_option = click.option(
    "--account",
    "-a",
    help="ape account alias of the deployer",
    envvar=DEPLOYER_ACCOUNT_ENVVAR,
    default=None,
)

publish_option = click.option(
    "--publish",
    help="Publish source code to the block explorer",
    is_flag=True,
    default=False,
)

contract_option = click.option(
    "--contract",
    "-c",
    "contract_name",
    help="Recorded contract name",
    type=click.Choice([member.contract_name for member in Contract]),
    required=True,
)

pool_option = click.option(
    "--pool",
    "-p",
    help="Address of the liquidity pool proxy",
    required=True,
)

governor_option = click.option(
    "--governor",
    "-g",
    help="Address of the pool's LpGovernor proxy",
    required=True,
)
