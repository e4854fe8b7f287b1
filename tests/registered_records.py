from __future__ import annotations

from dataclasses import dataclass, field

from excel2record.records import DataContainer, LineRecord, Record, register_schema

"""Schema module imported through ``schema_modules`` by the CLI tests.

Unlike sample_records, these register into the default registry on import.
"""


@dataclass
class Weapon(Record):
    id: int = 0
    name: str = ""
    attack: int = 0


@register_schema
class WeaponTable(DataContainer[Weapon]):
    item_type = Weapon


@dataclass
class EnemyStats:
    hp: int = 0


@register_schema
@dataclass
class Enemy(LineRecord):
    id: str = ""
    name: str = ""
    stats: EnemyStats = field(default_factory=EnemyStats)

    def process_data(self) -> None:
        self.name = self.name.strip()
