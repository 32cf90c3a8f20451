#!/usr/bin/python3

import click
from ape.cli import ConnectedProviderCommand

from mcdex_deployment.ape_chain import connect_deployer
from mcdex_deployment.constants import KNOWN_ROLES
from mcdex_deployment.contracts import Contract
from mcdex_deployment.inspection import Inspector
from mcdex_deployment.options import account_option, network_option
from mcdex_deployment.utils import abort_on_deployment_error, print_success, print_warning

GUARDIAN_EVENTS = ["AddGuardian", "TransferGuardian", "RenounceGuardian"]


@click.command(cls=ConnectedProviderCommand, name="inspect-deployment")
@network_option
@account_option
@click.option(
    "--events",
    help="Also scan PoolCreator guardian events since the first recorded deployment",
    is_flag=True,
    default=False,
)
@abort_on_deployment_error
def cli(network_name, account, events):
    """Compares the records of a network with live chain state. Never writes."""
    _config, deployer = connect_deployer(network_name, alias=account, read_only=True)
    inspector = Inspector(deployer)

    drifts = inspector.reconcile()

    store = deployer.store
    if Contract.POOL_CREATOR.contract_name in store and Contract.SYMBOL_SERVICE.contract_name in store:
        inspector.inspect_pool_creator()

    if Contract.MCDEX_MULTI_ORACLE.contract_name in store:
        multi_oracle = deployer.get_deployed_contract(Contract.MCDEX_MULTI_ORACLE)
        print("\n====MCDEXMultiOracle====")
        inspector.inspect_roles(multi_oracle, [None] + KNOWN_ROLES)

    beacon_proxies = [
        record for record in store if record.name.startswith(Contract.MCDEX_SINGLE_ORACLE.contract_name)
        and record.name != Contract.MCDEX_SINGLE_ORACLE.contract_name
    ]
    if beacon_proxies:
        print("\n====MCDEXSingleOracle====")
        for record in beacon_proxies:
            inspector.inspect_beacon_proxy(record.address)

    if events and Contract.POOL_CREATOR.contract_name in store:
        pool_creator = deployer.get_deployed_contract(Contract.POOL_CREATOR)
        print("\nguardian:")
        for event_name in GUARDIAN_EVENTS:
            for event in inspector.scan_events(pool_creator, event_name):
                print(f"    {event_name} {dict(event.args)} @ {event.block_number}")

    if drifts:
        print_warning(f"{len(drifts)} record(s) drifted from {network_name}.")
    else:
        print_success(f"Records of {network_name} are in sync.")


if __name__ == "__main__":
    cli()
