import json
import os
from collections import OrderedDict
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, NamedTuple, Optional

from eth_utils import is_address, to_checksum_address

from mcdex_deployment.errors import NotDeployedError, RecordError

ContractName = str

STANDARD_RECORDS_JSON_FORMAT = {"indent": 2, "separators": (",", ": ")}


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    """Compares addresses regardless of checksum casing; records keep the casing they were written with."""
    if a is None or b is None:
        return a is b
    return a.lower() == b.lower()


class RecordType(Enum):
    PLAIN = "plain"
    UPGRADEABLE = "upgradeable"
    PRESET = "preset"


class Dependencies(NamedTuple):
    admin: str
    implementation: str


class DeploymentRecord(NamedTuple):
    """Represents a single named contract in a network's deployment record file."""

    name: ContractName
    type: RecordType
    address: str
    dependencies: Optional[Dependencies] = None
    deployed_at: Optional[int] = None

    @classmethod
    def plain(cls, name: ContractName, address: str, deployed_at: int) -> "DeploymentRecord":
        return cls(
            name=name,
            type=RecordType.PLAIN,
            address=to_checksum_address(address),
            deployed_at=int(deployed_at),
        )

    @classmethod
    def upgradeable(
        cls, name: ContractName, address: str, admin: str, implementation: str, deployed_at: int
    ) -> "DeploymentRecord":
        return cls(
            name=name,
            type=RecordType.UPGRADEABLE,
            address=to_checksum_address(address),
            dependencies=Dependencies(
                admin=to_checksum_address(admin),
                implementation=to_checksum_address(implementation),
            ),
            deployed_at=int(deployed_at),
        )

    @classmethod
    def preset(cls, name: ContractName, address: str) -> "DeploymentRecord":
        return cls(name=name, type=RecordType.PRESET, address=to_checksum_address(address))

    @property
    def is_upgradeable(self) -> bool:
        return self.type == RecordType.UPGRADEABLE

    def to_json(self) -> Dict:
        data = OrderedDict(type=self.type.value, name=self.name, address=self.address)
        if self.dependencies is not None:
            data["dependencies"] = OrderedDict(
                admin=self.dependencies.admin,
                implementation=self.dependencies.implementation,
            )
        if self.deployed_at is not None:
            data["deployedAt"] = self.deployed_at
        return data

    @classmethod
    def from_json(cls, name: ContractName, data: Dict) -> "DeploymentRecord":
        try:
            record_type = RecordType(data["type"])
        except (KeyError, ValueError):
            raise RecordError(f"Record '{name}' has an invalid type: {data.get('type')!r}")

        address = data.get("address")
        if not address or not is_address(address):
            raise RecordError(f"Record '{name}' has an invalid address: {address!r}")

        dependencies = None
        raw_dependencies = data.get("dependencies")
        if raw_dependencies is not None:
            admin = raw_dependencies.get("admin")
            implementation = raw_dependencies.get("implementation")
            if not (admin and is_address(admin) and implementation and is_address(implementation)):
                raise RecordError(f"Record '{name}' has malformed dependencies")
            dependencies = Dependencies(
                admin=admin,
                implementation=implementation,
            )
        if record_type == RecordType.UPGRADEABLE and dependencies is None:
            raise RecordError(f"Upgradeable record '{name}' is missing its admin and implementation")

        deployed_at = data.get("deployedAt")
        return cls(
            name=data.get("name", name),
            type=record_type,
            address=address,
            dependencies=dependencies,
            deployed_at=int(deployed_at) if deployed_at is not None else None,
        )


def read_records(filepath: Path) -> "OrderedDict[ContractName, DeploymentRecord]":
    """Reads a deployment record file; a missing file is an empty record set."""
    records = OrderedDict()
    if not filepath.exists():
        return records

    with open(filepath, "r") as file:
        try:
            data = json.load(file, object_pairs_hook=OrderedDict)
        except json.JSONDecodeError as e:
            raise RecordError(f"Deployment record file {filepath} is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise RecordError(f"Deployment record file {filepath} must contain a JSON object")

    for name, artifacts in data.items():
        records[name] = DeploymentRecord.from_json(name=name, data=artifacts)
    return records


def write_records(records: Dict[ContractName, DeploymentRecord], filepath: Path) -> Path:
    """
    Writes a deployment record file.
    The content goes to a temporary sibling first and is then renamed over the target,
    so a crash never leaves a truncated record file behind.
    """
    data = OrderedDict((name, record.to_json()) for name, record in records.items())

    filepath.parent.mkdir(parents=True, exist_ok=True)
    temp_filepath = filepath.with_name(f".{filepath.name}.tmp")
    try:
        with open(temp_filepath, "w") as file:
            json.dump(data, file, **STANDARD_RECORDS_JSON_FORMAT)
            file.write("\n")
            file.flush()
            os.fsync(file.fileno())
        os.replace(temp_filepath, filepath)
    finally:
        if temp_filepath.exists():
            temp_filepath.unlink()
    return filepath


class RecordStore:
    """The durable record of what has been deployed on a single network."""

    def __init__(self, filepath: Path):
        self.filepath = Path(filepath)
        self._records = OrderedDict()

    @classmethod
    def load(cls, filepath: Path) -> "RecordStore":
        store = cls(filepath)
        store.reload()
        return store

    def reload(self) -> None:
        self._records = read_records(self.filepath)

    def save(self) -> Path:
        return write_records(self._records, self.filepath)

    def find(self, name: ContractName) -> Optional[DeploymentRecord]:
        return self._records.get(name)

    def get(self, name: ContractName) -> DeploymentRecord:
        try:
            return self._records[name]
        except KeyError:
            raise NotDeployedError(f"'{name}' has not been deployed (see {self.filepath})")

    def upsert(self, record: DeploymentRecord) -> None:
        self._records[record.name] = record

    def update_implementation(self, name: ContractName, implementation: str) -> DeploymentRecord:
        """Points an upgradeable record at a new logic contract, keeping its history."""
        record = self.get(name)
        if not record.is_upgradeable:
            raise RecordError(f"'{name}' is a {record.type.value} record, not upgradeable")
        dependencies = record.dependencies._replace(
            implementation=to_checksum_address(implementation)
        )
        updated = record._replace(dependencies=dependencies)
        self._records[name] = updated
        return updated

    def names(self) -> List[ContractName]:
        return list(self._records)

    def records(self) -> List[DeploymentRecord]:
        return list(self._records.values())

    def find_by_address(self, address: str) -> Optional[DeploymentRecord]:
        for record in self._records.values():
            if same_address(record.address, address):
                return record
        return None

    def earliest_block(self) -> Optional[int]:
        blocks = [r.deployed_at for r in self._records.values() if r.deployed_at is not None]
        return min(blocks) if blocks else None

    def __contains__(self, name: ContractName) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[DeploymentRecord]:
        return iter(list(self._records.values()))


def merge_records(
    base: Dict[ContractName, DeploymentRecord],
    other: Dict[ContractName, DeploymentRecord],
    deprecated_contracts: Optional[List[ContractName]] = None,
) -> "OrderedDict[ContractName, DeploymentRecord]":
    """Merges two record sets of the same network, excluding deprecated contracts."""
    deprecated_contracts = deprecated_contracts or []

    merged = OrderedDict()
    for records in (base, other):
        for name, record in records.items():
            if name in deprecated_contracts:
                continue
            existing = merged.get(name)
            if existing and not same_address(existing.address, record.address):
                raise RecordError(
                    f"Conflict detected for {name}: {existing.address} vs {record.address}"
                )
            merged[name] = record
    return merged


def merge_record_files(
    records_1_filepath: Path,
    records_2_filepath: Path,
    output_filepath: Path,
    deprecated_contracts: Optional[List[ContractName]] = None,
) -> Path:
    """Merges two record files of the same network into a third one."""
    merged = merge_records(
        read_records(records_1_filepath),
        read_records(records_2_filepath),
        deprecated_contracts=deprecated_contracts,
    )
    write_records(merged, output_filepath)
    print(f"Merged records output to {output_filepath}")
    return output_filepath
