"""Local outbox for offline clients.

Queues creates/updates/deletes per entity kind in a small SQLite file while
the client has no connectivity, turns them into one bulk sync request per
kind, and folds the server's answer back in: clientIds learn their server
ids and the submitted ops are dropped.
"""

import sqlite3
import json
import uuid
from typing import Any, Dict, List, Optional

from .utils import now_utc, iso_utc


class Outbox:
    """SQLite-backed pending-op queue for one client."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS pending_ops (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL,
                    op_type TEXT NOT NULL,
                    target_id TEXT,
                    client_id TEXT,
                    data TEXT NOT NULL,
                    op_time TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS id_map (
                    client_id TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    server_id TEXT NOT NULL
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS sync_state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')

            conn.commit()

    def clear_all(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute('DELETE FROM pending_ops')
            conn.execute('DELETE FROM id_map')
            conn.execute('DELETE FROM sync_state')
            conn.commit()

    def _target(self, conn, ref: str):
        """Return (server_id, client_id) for a record reference.

        ``ref`` may be a server id or a clientId; a clientId the server has
        already answered for is swapped for its server id.
        """
        row = conn.execute('SELECT server_id FROM id_map WHERE client_id = ?', (ref,)).fetchone()
        if row:
            return row[0], None
        row = conn.execute(
            "SELECT 1 FROM pending_ops WHERE op_type = 'create' AND client_id = ?", (ref,)
        ).fetchone()
        if row:
            return None, ref
        return ref, None

    def _queue(self, kind: str, op_type: str, target_id, client_id, data: Dict[str, Any], op_time) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                'INSERT INTO pending_ops (kind, op_type, target_id, client_id, data, op_time) VALUES (?, ?, ?, ?, ?, ?)',
                (kind, op_type, target_id, client_id, json.dumps(data), op_time)
            )
            conn.commit()

    def queue_create(self, kind: str, fields: Dict[str, Any], client_id: Optional[str] = None) -> str:
        """Queue a create and return the clientId that identifies it until
        the server assigns an id."""
        client_id = client_id or uuid.uuid4().hex
        self._queue(kind, 'create', None, client_id, fields, iso_utc(now_utc()))
        return client_id

    def queue_update(self, kind: str, ref: str, fields: Dict[str, Any], updated_at=None) -> None:
        with sqlite3.connect(self.db_path) as conn:
            target_id, client_id = self._target(conn, ref)
        self._queue(kind, 'update', target_id, client_id, fields, iso_utc(updated_at or now_utc()))

    def queue_delete(self, kind: str, ref: str, deleted_at=None) -> None:
        with sqlite3.connect(self.db_path) as conn:
            target_id, client_id = self._target(conn, ref)
        self._queue(kind, 'delete', target_id, client_id, {}, iso_utc(deleted_at or now_utc()))

    def get_pending_ops(self, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        with sqlite3.connect(self.db_path) as conn:
            if kind is not None:
                rows = conn.execute(
                    'SELECT id, kind, op_type, target_id, client_id, data, op_time FROM pending_ops WHERE kind = ? ORDER BY id',
                    (kind,)
                ).fetchall()
            else:
                rows = conn.execute(
                    'SELECT id, kind, op_type, target_id, client_id, data, op_time FROM pending_ops ORDER BY id'
                ).fetchall()
            return [
                {
                    'id': row[0], 'kind': row[1], 'op_type': row[2], 'target_id': row[3],
                    'client_id': row[4], 'data': json.loads(row[5]), 'op_time': row[6]
                }
                for row in rows
            ]

    def pending_count(self, kind: Optional[str] = None) -> int:
        return len(self.get_pending_ops(kind))

    def build_batch(self, kind: str) -> Dict[str, List[Dict[str, Any]]]:
        """Build the bulk sync request body for ``kind`` from pending ops.

        The ids of the ops included are remembered so ``apply_result`` only
        drops what was actually sent.
        """
        batch: Dict[str, List[Dict[str, Any]]] = {'creates': [], 'updates': [], 'deletes': []}
        sent = []
        for op in self.get_pending_ops(kind):
            ref = {'id': op['target_id']} if op['target_id'] else {'clientId': op['client_id']}
            if op['op_type'] == 'create':
                batch['creates'].append({'clientId': op['client_id'], **op['data']})
            elif op['op_type'] == 'update':
                batch['updates'].append({**ref, **op['data'], 'updatedAt': op['op_time']})
            else:
                batch['deletes'].append({**ref, 'deletedAt': op['op_time']})
            sent.append(op['id'])
        self.set_sync_state(f'inflight:{kind}', sent)
        return batch

    def apply_result(self, kind: str, result: Dict[str, Any]) -> Dict[str, str]:
        """Record server ids for created clientIds and drop the ops that were
        part of the last batch built for ``kind``. Returns the new mappings."""
        mapped: Dict[str, str] = {}
        with sqlite3.connect(self.db_path) as conn:
            for row in result.get('created', []):
                client_id = row.get('clientId')
                if client_id and row.get('id'):
                    conn.execute(
                        'INSERT OR REPLACE INTO id_map (client_id, kind, server_id) VALUES (?, ?, ?)',
                        (client_id, kind, row['id'])
                    )
                    mapped[client_id] = row['id']
            sent = self.get_sync_state(f'inflight:{kind}') or []
            conn.executemany('DELETE FROM pending_ops WHERE id = ?', [(i,) for i in sent])
            # ops queued after the batch was built may still point at a clientId
            for client_id, server_id in mapped.items():
                conn.execute(
                    'UPDATE pending_ops SET target_id = ?, client_id = NULL '
                    "WHERE client_id = ? AND op_type != 'create'",
                    (server_id, client_id)
                )
            conn.commit()
        self.set_sync_state(f'inflight:{kind}', [])
        return mapped

    def server_id(self, client_id: str) -> Optional[str]:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute('SELECT server_id FROM id_map WHERE client_id = ?', (client_id,)).fetchone()
            return row[0] if row else None

    def set_sync_state(self, key: str, value: Any) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                'INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)',
                (key, json.dumps(value))
            )
            conn.commit()

    def get_sync_state(self, key: str) -> Any:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute('SELECT value FROM sync_state WHERE key = ?', (key,)).fetchone()
            return json.loads(row[0]) if row else None
