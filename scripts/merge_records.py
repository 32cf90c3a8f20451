#!/usr/bin/python3
from pathlib import Path

import click

from mcdex_deployment.records import merge_record_files
from mcdex_deployment.utils import abort_on_deployment_error


@click.command(name="merge-records")
@click.option(
    "--records-1",
    help="Filepath to deployment record file 1",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
@click.option(
    "--records-2",
    help="Filepath to deployment record file 2",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
@click.option(
    "--output-records",
    "-o",
    help="Filepath of the output deployment record file",
    type=click.Path(dir_okay=False, exists=False, path_type=Path),
    required=True,
)
@click.option(
    "--deprecated-contract",
    "-d",
    "deprecated_contracts",
    help="Names of any deprecated contracts to exclude from the merge",
    required=False,
    multiple=True,
)
@abort_on_deployment_error
def cli(records_1, records_2, output_records, deprecated_contracts):
    """Merge two deployment record files of one network into one."""
    merge_record_files(
        records_1_filepath=records_1,
        records_2_filepath=records_2,
        output_filepath=output_records,
        deprecated_contracts=list(deprecated_contracts),
    )


if __name__ == "__main__":
    cli()
