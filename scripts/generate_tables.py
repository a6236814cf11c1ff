#!/usr/bin/env python3
"""
Generate SQLite tables from the portal's JSON table schemas.

Usage:
  python scripts/generate_tables.py                      # print SQL
  python scripts/generate_tables.py -o generated-tables.sql
  python scripts/generate_tables.py --apply portal.db    # create missing tables
  python scripts/generate_tables.py --schema-dir ./schemas --apply portal.db
"""

import argparse
import sqlite3
import sys

from portal_engine.config import DEFAULT_SCHEMA_DIR
from portal_engine.ddl import create_tables, generate_sql
from portal_engine.schema import SchemaRegistry


def main(argv=None):
    parser = argparse.ArgumentParser(description='Generate SQL tables from JSON schemas')
    parser.add_argument('--schema-dir', default=DEFAULT_SCHEMA_DIR,
                        help='Directory of <table>.json schemas (default: bundled schemas)')
    parser.add_argument('-o', '--output', default=None,
                        help='Write the SQL script to this file instead of stdout')
    parser.add_argument('--apply', metavar='DB_PATH', default=None,
                        help='Create the tables in this SQLite database')
    args = parser.parse_args(argv)

    try:
        registry = SchemaRegistry.from_directory(args.schema_dir)
    except (OSError, ValueError) as e:
        print(f"Error: cannot load schemas from {args.schema_dir}: {e}", file=sys.stderr)
        return 1

    if args.apply:
        conn = sqlite3.connect(args.apply)
        try:
            create_tables(conn, registry)
        except sqlite3.Error as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        finally:
            conn.close()
        print(f"Created {len(registry.names())} table(s) in {args.apply}")
        return 0

    sql = generate_sql(registry)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(sql)
        print(f"SQL written to {args.output}")
    else:
        print(sql)
    return 0


if __name__ == '__main__':
    sys.exit(main())
