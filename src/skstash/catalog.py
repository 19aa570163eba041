"""
Remote Catalog -- the index of what the stash holds.

A small SQLite database next to the blob store:

    <root>/catalog.db
        store(hash TEXT PRIMARY KEY, origin, path, file, size, date)

Every operation runs a short Python program on the remote host. Values
travel as a JSON argument and reach SQLite only as bound parameters,
never as query text.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .errors import DuplicateKey, NotFound, TransportFailure
from .hashing import validate_hash
from .models import CatalogEntry
from .transport import Transport

logger = logging.getLogger("skstash.catalog")

DUPLICATE_EXIT = 3

_CATALOG_PROGRAM = r"""
import json
import sqlite3
import sys

SCHEMA = (
    "CREATE TABLE IF NOT EXISTS store ("
    "hash TEXT PRIMARY KEY, origin TEXT, path TEXT, file TEXT, size TEXT, "
    "date TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
)
COLUMNS = "hash, origin, path, file, size, strftime('%Y-%m-%dT%H:%M:%SZ', date) AS date"

db_path, op, arg = sys.argv[1], sys.argv[2], json.loads(sys.argv[3])
conn = sqlite3.connect(db_path)
conn.row_factory = sqlite3.Row
try:
    with conn:
        conn.execute(SCHEMA)
        if op == "init":
            result = True
        elif op == "insert":
            try:
                conn.execute(
                    "INSERT INTO store (hash, origin, path, file, size) "
                    "VALUES (:hash, :origin, :path, :file, :size)",
                    arg,
                )
            except sqlite3.IntegrityError:
                sys.exit(DUPLICATE_EXIT)
            result = True
        elif op == "get":
            row = conn.execute(
                "SELECT " + COLUMNS + " FROM store WHERE hash = ?", (arg,)
            ).fetchone()
            result = dict(row) if row else None
        elif op == "search":
            rows = conn.execute(
                "SELECT " + COLUMNS + " FROM store "
                "WHERE instr(file, :term) > 0 OR instr(path, :term) > 0 "
                "OR hash = :term ORDER BY date DESC, rowid DESC",
                {"term": arg},
            )
            result = [dict(r) for r in rows]
        elif op == "delete":
            result = conn.execute("DELETE FROM store WHERE hash = ?", (arg,)).rowcount
        else:
            sys.stderr.write("unknown catalog op: %s\n" % op)
            sys.exit(64)
finally:
    conn.close()
sys.stdout.write(json.dumps(result))
""".replace("DUPLICATE_EXIT", str(DUPLICATE_EXIT))


class RemoteCatalog:
    """Key-indexed record store (hash -> provenance) on the remote.

    Args:
        transport: Remote command runner.
        root: Remote root directory.
        python: Python interpreter on the remote host.
    """

    def __init__(self, transport: Transport, root: str, python: str = "python3"):
        self.transport = transport
        self.root = root.rstrip("/") or "/"
        self.db_path = f"{self.root.rstrip('/')}/catalog.db"
        self.python = python

    def _call(self, op: str, arg: Any) -> Any:
        result = self.transport.run(
            [self.python, "-c", _CATALOG_PROGRAM, self.db_path, op, json.dumps(arg)],
            ok_codes=(0, DUPLICATE_EXIT),
        )
        if result.returncode == DUPLICATE_EXIT:
            raise DuplicateKey(f"Catalog already has an entry for {arg['hash']}")
        try:
            return json.loads(result.stdout.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TransportFailure(
                f"catalog {op}", result.returncode, f"unreadable catalog reply: {exc}"
            ) from exc

    def init(self) -> None:
        """Create the catalog schema if it is missing."""
        self.transport.run(["mkdir", "-p", self.root])
        self._call("init", None)

    def insert(self, entry: CatalogEntry) -> None:
        """Insert a new row. ``date`` is assigned by the catalog.

        Raises:
            DuplicateKey: If a row for ``entry.hash`` already exists.
        """
        validate_hash(entry.hash)
        self._call("insert", entry.model_dump(include={"hash", "origin", "path", "file", "size"}))
        logger.info("Catalog entry added: %s (%s)", entry.hash, entry.file)

    def get(self, hash: str) -> Optional[CatalogEntry]:
        """Point lookup, ``None`` when absent."""
        row = self._call("get", validate_hash(hash))
        return CatalogEntry(**row) if row else None

    def lookup(self, hash: str) -> CatalogEntry:
        """Point lookup.

        Raises:
            NotFound: If no row exists for ``hash``.
        """
        entry = self.get(hash)
        if entry is None:
            raise NotFound(f"No catalog entry for {hash}")
        return entry

    def search(self, term: str) -> list[CatalogEntry]:
        """Rows whose file or path contains ``term``, or whose hash equals it.

        Newest first. The empty term matches every row.
        """
        rows = self._call("search", term)
        return [CatalogEntry(**row) for row in rows]

    def delete(self, hash: str) -> bool:
        """Remove a row. Absent rows are not an error.

        Returns:
            bool: True if a row was removed.
        """
        removed = self._call("delete", validate_hash(hash))
        if removed:
            logger.info("Catalog entry deleted: %s", hash)
        return bool(removed)
