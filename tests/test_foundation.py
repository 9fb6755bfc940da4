import asyncio

import pytest

from conftest import settle
from finsync.config import AppConfig
from finsync.errors import NotFound, RemoteRejected, Unauthenticated, ValidationFailed
from finsync.memo import derived_query, derived_view
from finsync.models import Transaction, WantToBuyItem
from finsync.notifications import Notifier
from finsync.optimistic import MutationQueue, optimistic_mutation
from finsync.session import Session


# ============================================================================
# Configuration
# ============================================================================

def test_config_from_env(monkeypatch):
    monkeypatch.setenv('SUPABASE_URL', 'https://project.example.co')
    monkeypatch.setenv('SUPABASE_ANON_KEY', 'anon')
    monkeypatch.setenv('FINSYNC_REQUEST_TIMEOUT', '2.5')
    monkeypatch.setenv('FINSYNC_LOG_LEVEL', 'debug')

    cfg = AppConfig.from_env()

    assert cfg.SUPABASE_URL == 'https://project.example.co'
    assert cfg.SUPABASE_ANON_KEY == 'anon'
    assert cfg.REQUEST_TIMEOUT == 2.5
    assert cfg.LOG_LEVEL == 'DEBUG'
    assert cfg.TABLES['want_to_buy'] == 'want_to_buy_items'


def test_invalid_timeout_falls_back_to_default(monkeypatch):
    monkeypatch.setenv('FINSYNC_REQUEST_TIMEOUT', 'soon')

    assert AppConfig.from_env().REQUEST_TIMEOUT == 10.0


# ============================================================================
# Errors and records
# ============================================================================

def test_error_messages():
    assert Unauthenticated().message == 'Authentication required.'
    assert NotFound('w1').record_id == 'w1'
    failed = ValidationFailed(['Amount must be greater than 0', 'Wallet is required'])
    assert failed.message == 'Amount must be greater than 0; Wallet is required'
    assert RemoteRejected('explicit', status_code=503, retryable=False).retryable is False


def test_record_row_mapping():
    row = {
        'id': 't1', 'user_id': 'u1', 'created_at': '2026-10-18T08:00:00+00:00',
        'amount': '12500', 'category_id': '2', 'description': None, 'date': '2026-10-18',
        'type': 'expense', 'wallet_id': 'w1', 'fee': None, 'extra_column': 'ignored',
    }

    record = Transaction.from_row(row)

    assert record.owner_id == 'u1'
    assert record.amount == 12500.0
    assert record.category_id == 2
    assert record.description == ''
    assert 'id' not in record.to_row()
    assert 'created_at' not in record.insert_row('u1')
    assert record.insert_row('u1')['user_id'] == 'u1'


# ============================================================================
# Notifications and session
# ============================================================================

def test_notifier_keeps_bounded_history_and_forwards():
    notifier = Notifier(max_history=2)
    seen = []
    notifier.subscribe(seen.append)

    notifier.success('Success', 'Wallet added.')
    notifier.error(RemoteRejected('boom', status_code=500), title='Error loading wallets')
    notifier.error(Unauthenticated())

    assert len(seen) == 3
    assert len(notifier.history) == 2
    assert [n.title for n in notifier.errors] == ['Error loading wallets', 'Authentication required']
    assert notifier.errors[0].error_kind == 'RemoteRejected'
    notifier.clear()
    assert notifier.history == []


def test_session_notifies_only_on_owner_change():
    session = Session()
    changes = []
    unsubscribe = session.subscribe(lambda previous, current: changes.append((previous, current)))

    session.sign_in('u1', 'a')
    session.sign_in('u1', 'b')
    assert session.is_authenticated
    session.sign_out()
    session.sign_out()
    unsubscribe()
    session.sign_in('u2')

    assert changes == [(None, 'u1'), ('u1', None)]


# ============================================================================
# Optimistic protocol
# ============================================================================

@pytest.mark.asyncio
async def test_optimistic_mutation_reverts_and_reraises():
    log = []

    async def failing():
        log.append('remote')
        raise RemoteRejected('nope', status_code=500)

    with pytest.raises(RemoteRejected):
        await optimistic_mutation(failing, lambda: log.append('apply'), lambda: log.append('revert'))

    assert log == ['apply', 'remote', 'revert']


@pytest.mark.asyncio
async def test_optimistic_mutation_reverts_when_cancelled():
    log = []
    gate = asyncio.Event()

    async def hanging():
        await gate.wait()

    task = asyncio.create_task(optimistic_mutation(hanging, lambda: log.append('apply'),
                                                   lambda: log.append('revert')))
    await settle()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert log == ['apply', 'revert']


@pytest.mark.asyncio
async def test_optimistic_mutation_returns_remote_result():
    async def ok():
        return 'stored'

    log = []
    assert await optimistic_mutation(ok, lambda: log.append('apply'), lambda: log.append('revert')) == 'stored'
    assert log == ['apply']


@pytest.mark.asyncio
async def test_mutation_queue_serializes_per_key():
    queue = MutationQueue()
    order = []
    gate = asyncio.Event()

    async def run(key, label, wait=False):
        async with queue.hold(key):
            order.append(f"start {label}")
            if wait:
                await gate.wait()
            order.append(f"end {label}")

    first = asyncio.create_task(run('a', 'a1', wait=True))
    second = asyncio.create_task(run('a', 'a2'))
    other = asyncio.create_task(run('b', 'b1'))
    await settle()

    assert queue.pending('a') == 2
    assert order == ['start a1', 'start b1', 'end b1']

    gate.set()
    await asyncio.gather(first, second, other)
    assert order[3:] == ['end a1', 'start a2', 'end a2']
    assert len(queue) == 0


# ============================================================================
# Derived views
# ============================================================================

class Holder:
    def __init__(self, items):
        self.items = items

    @derived_view
    def names(items):
        return tuple(i.name for i in items)

    @derived_query
    def pricier_than(items, limit):
        return tuple(i for i in items if i.price > limit)


def test_derived_views_cache_on_collection_identity():
    items = (WantToBuyItem(id='1', name='A', price=10), WantToBuyItem(id='2', name='B', price=20))
    holder = Holder(items)

    names = holder.names
    assert names == ('A', 'B')
    assert holder.names is names
    assert holder.pricier_than(15) is holder.pricier_than(15)

    holder.items = tuple(list(items))
    # Equal but a different object: recomputed
    assert holder.names == names
    assert holder.names is not names

    holder.items = items[:1]
    assert holder.names == ('A',)
    assert holder.pricier_than(15) == ()
