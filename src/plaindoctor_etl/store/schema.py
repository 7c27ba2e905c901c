"""Relational schema of the provider store."""

from typing import List, Tuple
from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    text,
)

metadata = MetaData()

providers = Table(
    "providers",
    metadata,
    Column("npi", String(10), primary_key=True),
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("credential", Text),
    Column("gender", Text),
    Column("specialty", Text, nullable=False),
    Column("specialty_code", Text, nullable=False),
    Column("city", Text, nullable=False),
    Column("state", String(2), nullable=False),
    Column("zip", String(5), nullable=False),
    Column("phone", Text),
    Column("address_line1", Text),
    Column("enumeration_date", Text),
    Column("slug", Text, nullable=False),
)

specialties = Table(
    "specialties",
    metadata,
    Column("code", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("category", Text),
    Column("slug", Text, nullable=False),
    Column("provider_count", Integer, server_default=text("0")),
)

states = Table(
    "states",
    metadata,
    Column("abbr", String(2), primary_key=True),
    Column("name", Text, nullable=False),
    Column("slug", Text, nullable=False),
    Column("provider_count", Integer, server_default=text("0")),
    Column("specialty_count", Integer, server_default=text("0")),
)

cities = Table(
    "cities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("city", Text, nullable=False),
    Column("state", String(2), nullable=False),
    Column("slug", Text, nullable=False),
    Column("provider_count", Integer, server_default=text("0")),
)

specialty_state = Table(
    "specialty_state",
    metadata,
    Column("specialty_code", Text, nullable=False),
    Column("state", String(2), nullable=False),
    Column("provider_count", Integer, server_default=text("0")),
    PrimaryKeyConstraint("specialty_code", "state"),
)

global_stats = Table(
    "_stats",
    metadata,
    Column("key", Text, primary_key=True),
    Column("value", Text),
)

# Secondary indices, created only after the data is loaded.
INDEX_DEFINITIONS: List[Tuple[str, str, str]] = [
    ("idx_providers_state", "providers", "state"),
    ("idx_providers_specialty", "providers", "specialty_code"),
    ("idx_providers_city_state", "providers", "city, state"),
    ("idx_providers_last_name", "providers", "last_name COLLATE NOCASE"),
    ("idx_providers_slug", "providers", "slug"),
    ("idx_specialties_slug", "specialties", "slug"),
    ("idx_states_slug", "states", "slug"),
    ("idx_cities_state", "cities", "state"),
    ("idx_cities_slug", "cities", "slug"),
    ("idx_specialty_state_spec", "specialty_state", "specialty_code"),
    ("idx_specialty_state_state", "specialty_state", "state"),
]


def index_statements() -> List[str]:
    """CREATE INDEX statements for every secondary index."""
    return [
        f"CREATE INDEX IF NOT EXISTS {name} ON {table}({columns})"
        for name, table, columns in INDEX_DEFINITIONS
    ]
