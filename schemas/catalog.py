"""
Pydantic schemas describing a discovered source catalog
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any, Set
from datetime import datetime
from models.base import TableType
import re

INTEGER_TYPE_NAMES = frozenset({
    "int", "integer", "tinyint", "smallint", "mediumint", "bigint",
    "int2", "int4", "int8", "serial", "smallserial", "bigserial",
    "serial4", "serial8", "number",
})
DECIMAL_TYPE_NAMES = frozenset({"numeric", "decimal"})


def type_tokens(native_type: str) -> Set[str]:
    """Words of a native type name: ``"bigint unsigned"`` -> {bigint, unsigned}"""
    return set(re.findall(r"[a-z]+\d*", native_type.lower()))


def is_integer_type(native_type: str) -> bool:
    return bool(type_tokens(native_type) & INTEGER_TYPE_NAMES)


class DatabaseInfo(BaseModel):
    name: str
    owner: Optional[str] = None


class SchemaInfo(BaseModel):
    name: str
    database: Optional[str] = None


class ForeignKeyInfo(BaseModel):
    """Declared foreign key as reported by the source"""
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    constraint_name: Optional[str] = None


class ColumnStatistics(BaseModel):
    null_count: int = 0
    unique_count: int = 0
    min: Optional[Any] = None
    max: Optional[Any] = None
    avg_length: Optional[float] = None


class ColumnDescriptor(BaseModel):
    """Column metadata, optionally enriched with sample statistics"""
    name: str
    type: str
    nullable: bool = True
    primary_key: bool = False
    default: Optional[str] = None
    sample_values: Optional[List[Any]] = None
    statistics: Optional[ColumnStatistics] = None
    inferred_type: Optional[str] = None
    inferred_type_confidence: Optional[float] = None


class ColumnPair(BaseModel):
    source: str
    target: str


class RelationshipCandidate(BaseModel):
    type: str = Field(..., pattern="^(foreign_key|inferred)$")
    target_table: str
    column_pairs: List[ColumnPair]
    confidence: float = Field(..., ge=0, le=1)


class PrimaryKeyCandidate(BaseModel):
    columns: List[str]
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str = ""


class TableDescriptor(BaseModel):
    """
    Table as listed by the source.

    Shallow listings carry only the identifying fields; a deep discovery
    fills columns, relationships, sample rows and key candidates.
    """
    database: Optional[str] = None
    schema_name: Optional[str] = Field(None, alias="schema")
    name: str
    type: TableType = TableType.TABLE
    last_modified: Optional[datetime] = None
    row_count: Optional[int] = None

    columns: Optional[List[ColumnDescriptor]] = None
    relationships: Optional[List[RelationshipCandidate]] = None
    sample_rows: Optional[List[dict]] = None
    primary_key_candidates: Optional[List[PrimaryKeyCandidate]] = None

    model_config = {"populate_by_name": True}

    @property
    def qualified_name(self) -> str:
        """``schema.name`` when a schema is known, else ``name``"""
        if self.schema_name:
            return f"{self.schema_name}.{self.name}"
        return self.name

    @property
    def full_name(self) -> str:
        """Database-qualified name used in error entries"""
        parts = [p for p in (self.database, self.schema_name, self.name) if p]
        return ".".join(parts)


class DiscoveredCatalog(BaseModel):
    """Result of a schema discovery run"""
    connection_id: str
    tables: List[TableDescriptor] = Field(default_factory=list)
    discovered_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def column_count(self) -> int:
        return sum(len(t.columns or []) for t in self.tables)

    @property
    def relationship_count(self) -> int:
        return sum(len(t.relationships or []) for t in self.tables)
