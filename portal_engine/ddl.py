"""
DDL generation: derive SQLite CREATE TABLE statements from table schemas.

Identifiers come from the schema documents shipped with the deployment,
never from requests.  Defaults are emitted as SQL literals.
"""

import logging
from datetime import datetime, timezone

from .schema import FieldSpec, Schema, SchemaRegistry

logger = logging.getLogger(__name__)

TIMESTAMP_COLUMNS = ('created_at', 'updated_at')


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def sql_literal(value) -> str:
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, (int, float)):
        return repr(value)
    return "'" + str(value).replace("'", "''") + "'"


def column_type(fdef: FieldSpec) -> str:
    """Map a field's JSON type/format to a SQLite column type."""
    if fdef.format in ('date-time', 'date'):
        return 'TIMESTAMP'
    if fdef.type == 'string':
        if fdef.max_length:
            return f'VARCHAR({fdef.max_length})'
        return 'TEXT'
    if fdef.type == 'integer':
        return 'INTEGER'
    if fdef.type == 'number':
        return 'REAL'
    if fdef.type == 'boolean':
        return 'BOOLEAN'
    return 'TEXT'


def create_table_sql(schema: Schema) -> str:
    """Return the CREATE TABLE (and index) statements for one schema."""
    table = quote_identifier(schema.id)
    columns = []

    for fname, fdef in schema.properties.items():
        col = quote_identifier(fname)
        if fdef.primary_key:
            columns.append(f'  {col} INTEGER PRIMARY KEY AUTOINCREMENT')
            continue
        parts = [f'  {col} {column_type(fdef)}']
        if fname in schema.required:
            parts.append('NOT NULL')
        if fdef.unique:
            parts.append('UNIQUE')
        if fdef.default is not None:
            parts.append(f'DEFAULT {sql_literal(fdef.default)}')
        columns.append(' '.join(parts))

    for ts in TIMESTAMP_COLUMNS:
        if ts not in schema.properties:
            columns.append(f'  {quote_identifier(ts)} TIMESTAMP DEFAULT CURRENT_TIMESTAMP')

    sql = f'CREATE TABLE IF NOT EXISTS {table} (\n' + ',\n'.join(columns) + '\n);\n'
    sql += (f'CREATE INDEX IF NOT EXISTS {quote_identifier(f"idx_{schema.id}_created_at")} '
            f'ON {table}("created_at");\n')
    for fname, fdef in schema.properties.items():
        if fdef.index and not fdef.unique:
            index = quote_identifier(f'idx_{schema.id}_{fname}')
            sql += f'CREATE INDEX IF NOT EXISTS {index} ON {table}({quote_identifier(fname)});\n'
    return sql


def generate_sql(registry: SchemaRegistry) -> str:
    """Return the full DDL script for every schema in the registry."""
    out = [
        '-- Generated SQL tables from JSON schemas',
        f'-- Generated on: {datetime.now(timezone.utc).isoformat()}',
        '-- Database: SQLite',
        '',
    ]
    for schema in registry:
        out.append(f'-- Table: {schema.id}')
        out.append(create_table_sql(schema))
    return '\n'.join(out)


def create_tables(conn, registry: SchemaRegistry):
    """Create every table of the registry on an open connection."""
    for schema in registry:
        conn.executescript(create_table_sql(schema))
        logger.info("Ensured table %s", schema.id)
    conn.commit()
