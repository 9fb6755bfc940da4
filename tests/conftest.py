import asyncio

import pytest

from finsync.errors import RemoteRejected
from finsync.notifications import Notifier
from finsync.session import Session


class FakeTable:
    """In-memory stand-in for ``RestTable``.

    Operations named in ``fail`` raise ``RemoteRejected``; operations with an
    entry in ``gates`` wait for that event before answering.
    """

    def __init__(self, rows=None):
        self.rows = {}
        self.calls = []
        self.fail = set()
        self.gates = {}
        self._counter = 0
        for row in rows or []:
            self._store(dict(row))

    def _store(self, row):
        self._counter += 1
        row.setdefault('id', f"r{self._counter}")
        row.setdefault('created_at', f"2026-01-01T00:00:{self._counter:02d}")
        self.rows[row['id']] = row
        return row

    async def _enter(self, op, *args):
        self.calls.append((op,) + args)
        gate = self.gates.get(op)
        if gate is not None:
            await gate.wait()
        if op in self.fail:
            raise RemoteRejected(f"{op} failed", status_code=500)

    async def select(self, filters, order=None):
        await self._enter('select', filters)
        rows = [dict(r) for r in self.rows.values()
                if all(r.get(k) == v for k, v in filters.items())]
        if order:
            column, _, direction = order.partition('.')
            rows.sort(key=lambda r: r.get(column) or '', reverse=direction == 'desc')
        return rows

    async def insert(self, row):
        await self._enter('insert', row)
        return dict(self._store(dict(row)))

    async def update(self, record_id, owner_id, partial):
        await self._enter('update', record_id, owner_id, partial)
        row = self.rows.get(record_id)
        if row is not None and row.get('user_id') == owner_id:
            row.update(partial)

    async def delete(self, record_id, owner_id):
        await self._enter('delete', record_id, owner_id)
        row = self.rows.get(record_id)
        if row is not None and row.get('user_id') == owner_id:
            del self.rows[record_id]

    async def delete_where(self, owner_id, filters):
        await self._enter('delete_where', owner_id, filters)
        for record_id, row in list(self.rows.items()):
            if row.get('user_id') == owner_id and all(row.get(k) == v for k, v in filters.items()):
                del self.rows[record_id]


async def settle(rounds=5):
    """Let scheduled tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def wishlist_row(name, price, owner='u1', **extra):
    row = {
        'user_id': owner,
        'name': name,
        'price': price,
        'category': 'Keinginan',
        'priority': 'Sedang',
        'estimated_date': '2026-12-01',
        'is_purchased': False,
    }
    row.update(extra)
    return row


@pytest.fixture
def session():
    return Session(owner_id='u1', access_token='token-u1')


@pytest.fixture
def notifier():
    return Notifier()
