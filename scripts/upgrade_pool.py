#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand
from hexbytes import HexBytes

from mcdex_deployment.ape_chain import connect_deployer
from mcdex_deployment.errors import ConfigError
from mcdex_deployment.options import account_option, governor_option, network_option, pool_option
from mcdex_deployment.upgrade import PoolGroup, UpgradeOrchestrator
from mcdex_deployment.utils import abort_on_deployment_error, print_info, print_success

ACTIONS = ["track", "propose", "status", "execute", "cancel"]


@click.command(cls=ConnectedProviderCommand, name="upgrade-pool")
@network_option
@account_option
@pool_option
@governor_option
@click.option("--action", type=click.Choice(ACTIONS), required=True)
@click.option("--name", help="Record name of the pool (track)")
@click.option("--version-key", help="Target version key (propose)")
@click.option("--pool-call-data", help="Hex call data for the pool (propose)", default="0x")
@click.option("--governor-call-data", help="Hex call data for the governor (propose)", default="0x")
@click.option("--description", help="Proposal description (propose)", default="")
@click.option("--proposal-id", "-i", help="LpGovernor proposal ID", type=int)
@click.option(
    "--wait",
    help="Wait until the proposal is executable before executing",
    is_flag=True,
    default=False,
)
@abort_on_deployment_error
def cli(
    network_name,
    account,
    pool,
    governor,
    action,
    name,
    version_key,
    pool_call_data,
    governor_call_data,
    description,
    proposal_id,
    wait,
):
    """Drives the governance upgrade of one liquidity pool and its LpGovernor."""
    _config, deployer = connect_deployer(network_name, alias=account)
    orchestrator = UpgradeOrchestrator(deployer)
    group = PoolGroup(pool=pool, governor=governor)

    if action == "track":
        if not name:
            raise ConfigError("--name is required to track a pool.")
        for record in orchestrator.track_pool(group, name):
            print_success(f"Recorded {record.name} at {record.address}")
        return

    if action == "propose":
        if not version_key:
            raise ConfigError("--version-key is required to propose an upgrade.")
        proposal = orchestrator.propose_to_upgrade_and_call(
            group,
            HexBytes(version_key),
            pool_call_data=bytes(HexBytes(pool_call_data)),
            governor_call_data=bytes(HexBytes(governor_call_data)),
            description=description,
        )
        print_success(f"Proposal #{proposal.proposal_id} created")
        return

    if proposal_id is None:
        raise ConfigError(f"--proposal-id is required to {action} a proposal.")

    if action == "status":
        proposal = orchestrator.get_proposal(group, proposal_id)
        state = orchestrator.state_of(group, proposal_id)
        print_info(
            f"Proposal #{proposal_id}: {state.value} "
            f"(executable from block {proposal.executable_at(orchestrator.delay)})"
        )
    elif action == "execute":
        if wait:
            proposal = orchestrator.get_proposal(group, proposal_id)
            orchestrator.wait_for_block(proposal.executable_at(orchestrator.delay))
        orchestrator.execute(group, proposal_id)
        print_success(f"Proposal #{proposal_id} executed")
    elif action == "cancel":
        orchestrator.cancel(group, proposal_id)
        print_success(f"Proposal #{proposal_id} cancelled")


if __name__ == "__main__":
    cli()
