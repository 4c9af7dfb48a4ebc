import json
import sqlite3
from contextlib import contextmanager
from decimal import Decimal

import psycopg2
from psycopg2.extras import RealDictCursor
from sanic.log import logger as logr

from .schema import TABLES, TABLES_BY_NAME, DECODED_COLUMNS

TYPE_DDL = {
    'postgres': {'int': 'BIGINT', 'uint': 'NUMERIC(78,0)', 'text': 'TEXT', 'bool': 'BOOLEAN', 'json': 'JSONB'},
    'sqlite':   {'int': 'INTEGER', 'uint': 'TEXT', 'text': 'TEXT', 'bool': 'INTEGER', 'json': 'TEXT'},
}


def encode_value(type_, value):
    if value is None:
        return None
    if type_ == 'uint':
        return str(int(value))
    if type_ == 'json':
        return json.dumps(value)
    if type_ == 'bool':
        return bool(value)
    return value


def decode_value(type_, value):
    if value is None:
        return None
    if type_ == 'uint':
        return int(value)
    if type_ == 'json':
        return json.loads(value) if isinstance(value, str) else value
    if type_ == 'bool':
        return bool(value)
    return value


def decode_row(row):
    out = {}
    for k, v in row.items():
        type_ = DECODED_COLUMNS.get(k)
        if type_:
            v = decode_value(type_, v)
        elif isinstance(v, Decimal):
            v = int(v)
        out[k] = v
    return out


class Store:
    """
    The relational snapshot.

    PostgreSQL in production via psycopg2; sqlite:/// URLs use the stdlib driver, which is
    what local runs and the test-suite use.  All writes are keyed by deterministic ids so
    replaying a log is a no-op.
    """

    def __init__(self, conn, dialect='postgres'):
        self.conn = conn
        self.dialect = dialect
        self.depth = 0

    @classmethod
    def connect(cls, url):

        if url.startswith('sqlite://'):
            path = url[len('sqlite:///'):] or ':memory:'
            conn = sqlite3.connect(path)
            conn.row_factory = sqlite3.Row
            return cls(conn, dialect='sqlite')

        conn = psycopg2.connect(url, cursor_factory=RealDictCursor)
        return cls(conn, dialect='postgres')

    def close(self):
        self.conn.close()

    ######################################################################
    # Plumbing

    def sql(self, statement):
        if self.dialect == 'sqlite':
            return statement.replace('%s', '?')
        return statement

    def execute(self, statement, params=()):
        cur = self.conn.cursor()
        cur.execute(self.sql(statement), tuple(params))
        return cur

    @contextmanager
    def transaction(self):
        """
        Reentrant.  Only the outermost block commits; any failure rolls everything back.
        """
        self.depth += 1
        try:
            yield self
        except BaseException:
            self.depth -= 1
            if self.depth == 0:
                self.conn.rollback()
            raise
        else:
            self.depth -= 1
            if self.depth == 0:
                self.conn.commit()

    def create_schema(self):

        types = TYPE_DDL[self.dialect]

        with self.transaction():
            for table in TABLES:
                cols = []
                for col in table.columns.values():
                    ddl = f"{col.name} {types[col.type]}"
                    if col.name == table.key:
                        ddl += " PRIMARY KEY"
                    elif col.not_null:
                        ddl += " NOT NULL"
                    if col.default is not None:
                        ddl += f" DEFAULT {self.default_literal(col)}"
                    cols.append(ddl)

                self.execute(f"CREATE TABLE IF NOT EXISTS {table.name} ({', '.join(cols)})")

                for index in table.indexes:
                    name = f"{table.name}_{'_'.join(index)}_idx"
                    self.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {table.name} ({', '.join(index)})")

        logr.info(f"Store: schema ready ({len(TABLES)} tables, {self.dialect})")

    def default_literal(self, col):
        if col.type == 'bool':
            if self.dialect == 'sqlite':
                return '1' if col.default else '0'
            return 'TRUE' if col.default else 'FALSE'
        if col.type == 'json':
            return "'" + json.dumps(col.default) + "'"
        if col.type == 'text' or (col.type == 'uint' and self.dialect == 'sqlite'):
            return "'" + str(col.default) + "'"
        return str(col.default)

    def encode_row(self, table, row):
        cols = TABLES_BY_NAME[table].columns
        return {k: encode_value(cols[k].type, v) for k, v in row.items()}

    ######################################################################
    # Reads

    def query(self, statement, params=()):
        cur = self.execute(statement, params)
        rows = cur.fetchall()
        return [decode_row(dict(row)) for row in rows]

    def query_one(self, statement, params=()):
        rows = self.query(statement, params)
        return rows[0] if rows else None

    def scalar(self, statement, params=()):
        cur = self.execute(statement, params)
        row = cur.fetchone()
        if row is None:
            return None
        value = list(dict(row).values())[0]
        return int(value) if isinstance(value, Decimal) else value

    def get(self, table, key):
        t = TABLES_BY_NAME[table]
        return self.query_one(f"SELECT * FROM {table} WHERE {t.key} = %s", (key,))

    ######################################################################
    # Writes

    def insert_ignore(self, table, row):
        """
        INSERT ... ON CONFLICT DO NOTHING.  Returns True when the row was new.
        """

        t = TABLES_BY_NAME[table]
        row = self.encode_row(table, row)
        cols = list(row.keys())

        statement = (f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join(['%s'] * len(cols))}) "
                     f"ON CONFLICT ({t.key}) DO NOTHING")

        with self.transaction():
            cur = self.execute(statement, [row[c] for c in cols])

        return cur.rowcount == 1

    def upsert(self, table, row, merge=None):
        """
        INSERT ... ON CONFLICT DO UPDATE, with the field-level merge done in Python.

        merge(prior, incoming) returns the full row to keep.  Without one, incoming non-null
        fields overwrite.  Returns the merged row.
        """

        t = TABLES_BY_NAME[table]

        with self.transaction():

            prior = self.get(table, row[t.key])

            if prior is None:
                # Nulls are left out so column defaults apply.
                merged = {k: v for k, v in row.items() if v is not None or k == t.key}
                changed = list(merged.keys())
            else:
                if merge is None:
                    merged = dict(prior)
                    merged.update({k: v for k, v in row.items() if v is not None})
                else:
                    merged = merge(dict(prior), dict(row))
                changed = [k for k in merged if k in t.columns and merged[k] != prior.get(k)]

            if not changed:
                return merged

            # NOT NULL is checked on the proposed row, so it carries every column.
            cols = [t.key] + [k for k in merged if k in t.columns and k != t.key]
            encoded = self.encode_row(table, {k: merged[k] for k in cols})

            updates = [k for k in changed if k != t.key]
            if updates:
                on_conflict = "DO UPDATE SET " + ', '.join(f"{k} = excluded.{k}" for k in updates)
            else:
                on_conflict = "DO NOTHING"

            statement = (f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join(['%s'] * len(cols))}) "
                         f"ON CONFLICT ({t.key}) {on_conflict}")

            self.execute(statement, [encoded[c] for c in cols])

        return merged

    def update(self, table, key, fields):

        if not fields:
            return 0

        t = TABLES_BY_NAME[table]
        encoded = self.encode_row(table, fields)
        cols = list(encoded.keys())

        statement = f"UPDATE {table} SET {', '.join(f'{k} = %s' for k in cols)} WHERE {t.key} = %s"

        with self.transaction():
            cur = self.execute(statement, [encoded[k] for k in cols] + [key])

        return cur.rowcount

    def set_once(self, table, key, fields):
        """
        Fill null columns only.  Values already written stay frozen.
        """

        if not fields:
            return 0

        t = TABLES_BY_NAME[table]
        encoded = self.encode_row(table, fields)
        cols = list(encoded.keys())

        statement = f"UPDATE {table} SET {', '.join(f'{k} = COALESCE({k}, %s)' for k in cols)} WHERE {t.key} = %s"

        with self.transaction():
            cur = self.execute(statement, [encoded[k] for k in cols] + [key])

        return cur.rowcount

    ######################################################################
    # Checkpoints

    def save_checkpoint(self, lane, position):
        block_number, log_index = position
        self.upsert('checkpoints', {'lane': lane, 'block_number': block_number, 'log_index': log_index})

    def load_checkpoints(self):
        return {row['lane']: (row['block_number'], row['log_index'])
                for row in self.query("SELECT * FROM checkpoints")}

    def dump(self):
        """Every row of every table, ordered by key.  For diagnostics and replay checks."""
        return {t.name: self.query(f"SELECT * FROM {t.name} ORDER BY {t.key}") for t in TABLES}
