#!/usr/bin/env python3

import os

from ape_accounts import import_account_from_private_key

from mcdex_deployment.constants import DEPLOYER_ACCOUNT_ENVVAR


def main():
    try:
        alias = os.environ[DEPLOYER_ACCOUNT_ENVVAR]
        passphrase = os.environ[f"APE_ACCOUNTS_{alias}_PASSPHRASE"]
        private_key = os.environ["MCDEX_DEPLOYER_PRIVATE_KEY"]
    except KeyError:
        raise Exception(
            "There are missing environment variables. "
            f"Please set {DEPLOYER_ACCOUNT_ENVVAR}, APE_ACCOUNTS_<alias>_PASSPHRASE "
            "and MCDEX_DEPLOYER_PRIVATE_KEY."
        )
    account = import_account_from_private_key(alias, passphrase, private_key)
    print(f"Deployer account '{alias}' imported: {account.address}")


if __name__ == '__main__':
    main()
