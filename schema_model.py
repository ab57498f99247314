from dataclasses import dataclass, field


@dataclass
class ForeignKeyReference:
    table: str
    column: str
    schema: str | None = None


@dataclass
class ColumnDefinition:
    name: str
    type: str
    nullable: bool = True
    default_value: str | None = None
    is_array: bool = False
    is_primary_key: bool = False
    is_unique: bool = False
    comment: str | None = None
    foreign_key: ForeignKeyReference | None = None


@dataclass
class IndexDefinition:
    name: str
    table_name: str
    columns: list[str]
    is_unique: bool = False
    method: str | None = None
    where_clause: str | None = None


@dataclass
class RelationshipDefinition:
    foreign_key_name: str
    columns: list[str]
    is_one_to_one: bool
    referenced_relation: str
    referenced_columns: list[str]


@dataclass
class TableDefinition:
    schema: str
    name: str
    columns: list[ColumnDefinition]
    relationships: list[RelationshipDefinition] = field(default_factory=list)
    indexes: list[IndexDefinition] = field(default_factory=list)
    comment: str | None = None


@dataclass
class ViewDefinition:
    schema: str
    name: str
    columns: list[ColumnDefinition]
    is_materialized: bool = False
    definition: str | None = None
    comment: str | None = None


@dataclass
class EnumDefinition:
    schema: str
    name: str
    values: list[str]


@dataclass
class FunctionArgument:
    name: str
    type: str
    has_default: bool = False


@dataclass
class FunctionDefinition:
    schema: str
    name: str
    args: list[FunctionArgument]
    returns: str


@dataclass
class CompositeAttribute:
    name: str
    type: str


@dataclass
class CompositeTypeDefinition:
    schema: str
    name: str
    attributes: list[CompositeAttribute]


@dataclass
class ParsedSchema:
    """Everything recognised in one run, each list in source order."""
    tables: list[TableDefinition] = field(default_factory=list)
    enums: list[EnumDefinition] = field(default_factory=list)
    functions: list[FunctionDefinition] = field(default_factory=list)
    composite_types: list[CompositeTypeDefinition] = field(default_factory=list)
    views: list[ViewDefinition] = field(default_factory=list)
