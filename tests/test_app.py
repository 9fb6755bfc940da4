import asyncio
from dataclasses import replace

import httpx
import pytest

from finsync.app import create_app
from finsync.config import config
from finsync.managers import FinanceSession
from finsync.models import Category, PinjamanItem, Transaction, Wallet, WantToBuyItem
from finsync.remote import BackendClient
from finsync.session import Session


@pytest.fixture
def dev_app(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'SUPABASE_ANON_KEY', 'anon-key')
    return create_app(str(tmp_path / 'finsync-test.db'))


def http_client(app, token=None):
    headers = {'apikey': 'anon-key'}
    if token:
        headers['Authorization'] = f"Bearer {token}"
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url='http://testserver',
                             headers=headers)


def finance_session(app, owner_id):
    session = Session(owner_id=owner_id, access_token=owner_id)
    client = http_client(app)
    backend = BackendClient(api_key='anon-key', client=client, token_provider=lambda: session.access_token)
    return FinanceSession(session=session, backend=backend), client


@pytest.mark.asyncio
async def test_health_check(dev_app):
    async with http_client(dev_app) as client:
        response = await client.get('/health')

    assert response.status_code == 200
    assert response.json() == {'status': 'healthy'}


@pytest.mark.asyncio
async def test_table_access_rules(dev_app):
    async with http_client(dev_app) as anonymous, http_client(dev_app, token='u1') as user:
        assert (await anonymous.get('/rest/v1/wallets')).status_code == 401
        assert (await user.get('/rest/v1/secrets')).status_code == 404
        assert (await user.get('/rest/v1/wallets', params={'balance': 'gt.0'})).status_code == 400
        assert (await user.delete('/rest/v1/wallets')).status_code == 400

        foreign = await user.post('/rest/v1/wallets', json={'user_id': 'u2', 'name': 'Cash'})
        assert foreign.status_code == 403
        assert 'row-level security' in foreign.json()['detail']

        created = await user.post('/rest/v1/wallets', json={'user_id': 'u1', 'name': ' Cash '},
                                  headers={'Prefer': 'return=representation'})
        assert created.status_code == 201
        row = created.json()[0]
        assert row['name'] == 'Cash'
        assert row['id'] and row['created_at']


@pytest.mark.asyncio
async def test_owners_only_see_their_own_rows(dev_app):
    async with http_client(dev_app, token='u1') as first, http_client(dev_app, token='u2') as second:
        await first.post('/rest/v1/budgets', json={'user_id': 'u1', 'amount': 100, 'category_id': 1})
        await second.post('/rest/v1/budgets', json={'user_id': 'u2', 'amount': 200, 'category_id': 1})

        rows = (await first.get('/rest/v1/budgets', params={'user_id': 'eq.u1'})).json()
        spoofed = (await second.get('/rest/v1/budgets', params={'user_id': 'eq.u1'})).json()

    assert [r['amount'] for r in rows] == [100]
    assert spoofed == []


@pytest.mark.asyncio
async def test_finance_session_round_trip(dev_app):
    finance, client = finance_session(dev_app, 'u1')
    await finance.load_all()
    assert all(store.items == () for store in finance.stores)

    cash = await finance.wallets.create(Wallet(name='Cash', balance=200000, color='#10b981'))
    bank = await finance.wallets.create(Wallet(name='BCA', balance=5000000, color='#3b82f6', type='bank'))
    lunch = await finance.transactions.create(Transaction(
        amount=35000, category_id=2, description='Makan siang', date='2026-10-18', wallet_id=cash.id,
    ))
    await finance.transactions.create(Transaction(
        amount=8000000, category_id=13, description='Gaji', date='2026-10-01', type='income', wallet_id=bank.id,
    ))
    laptop = await finance.wishlist.create(WantToBuyItem(name='Laptop', price=9000000, priority='Tinggi'))
    assert None not in (cash, bank, lunch, laptop)
    assert finance.notifier.errors == []

    assert await finance.wishlist.toggle_purchased(laptop.id) is True
    assert await finance.transactions.update(replace(lunch, amount=40000)) is True
    assert await finance.wallets.delete(cash.id) is True
    assert [t.description for t in finance.transactions.items] == ['Gaji']

    fresh, fresh_client = finance_session(dev_app, 'u1')
    await fresh.load_all()
    for store, reloaded in zip(finance.stores, fresh.stores):
        assert sorted(store.items, key=lambda r: r.id) == sorted(reloaded.items, key=lambda r: r.id)
    assert fresh.wishlist.purchased_items[0].name == 'Laptop'
    assert fresh.wallets.total_balance == 5000000

    await finance.wishlist.delete(laptop.id)
    await fresh.refresh_all()
    assert fresh.wishlist.items == ()

    stranger, stranger_client = finance_session(dev_app, 'u2')
    await stranger.load_all()
    assert all(store.items == () for store in stranger.stores)

    for session_, http in ((finance, client), (fresh, fresh_client), (stranger, stranger_client)):
        await session_.close()
        await http.aclose()


@pytest.mark.asyncio
async def test_switching_owner_reloads_every_store(dev_app):
    async with http_client(dev_app, token='u2') as other:
        await other.post('/rest/v1/wallets', json={'user_id': 'u2', 'name': 'Dana', 'balance': 1, 'color': '#000'})

    finance, client = finance_session(dev_app, 'u1')
    await finance.wallets.create(Wallet(name='Cash', balance=10, color='#fff'))

    finance.session.sign_in('u2', 'u2')
    assert finance.wallets.items == ()
    await asyncio.gather(*list(finance._tasks))

    assert [w.name for w in finance.wallets.items] == ['Dana']
    await finance.close()
    await client.aclose()


@pytest.mark.asyncio
async def test_lifespan_initializes_database(dev_app):
    assert dev_app.state.db_manager._initialized is False

    async with dev_app.router.lifespan_context(dev_app):
        assert dev_app.state.db_manager._initialized is True


@pytest.mark.asyncio
async def test_close_waits_for_cancelled_reloads(dev_app):
    finance, client = finance_session(dev_app, 'u1')
    finance.session.sign_in('u2', 'u2')
    pending = list(finance._tasks)
    assert pending

    await finance.close()

    assert all(task.done() for task in pending)
    assert finance._tasks == set()
    assert all(store.is_closed for store in finance.stores)
    await client.aclose()


@pytest.mark.asyncio
async def test_loans_and_categories_round_trip(dev_app):
    finance, client = finance_session(dev_app, 'u1')
    loan = await finance.loans.create(PinjamanItem(name='KPR', amount=2000000, due_date='2026-11-01'))
    await finance.loans.create(PinjamanItem(name='Andi', amount=500000, due_date='2026-10-01', category='Piutang'))
    pets = await finance.categories.create(Category(en_name='Pets'))
    assert None not in (loan, pets)
    assert await finance.loans.toggle_settled(loan.id) is True

    fresh, fresh_client = finance_session(dev_app, 'u1')
    await fresh.load_all()

    assert [item.name for item in fresh.loans.items] == ['Andi', 'KPR']
    assert fresh.loans.total_credit == 500000
    assert fresh.loans.total_debt == 0
    assert [c.en_name for c in fresh.categories.items] == ['Pets']
    assert fresh.categories.items[0].category_key == pets.category_key

    for session_, http in ((finance, client), (fresh, fresh_client)):
        await session_.close()
        await http.aclose()
