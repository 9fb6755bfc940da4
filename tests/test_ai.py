import json
from datetime import date

import httpx
import pytest

from finsync.ai import AITransactionService
from finsync.remote import BackendClient


def make_service(handler):
    client = httpx.AsyncClient(base_url='https://project.example.co', transport=httpx.MockTransport(handler))
    backend = BackendClient(api_key='anon-key', client=client, token_provider=lambda: 'jwt-1')
    return AITransactionService(backend, language='id', function_name='gemini-finance-insight')


@pytest.mark.asyncio
async def test_parse_transaction_input_posts_prompt_and_parses_result():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={'result': {
            'message': 'Ditemukan 2 transaksi',
            'transactions': '```json\n[{"description": "Makan siang", "amount": "35rb", "category": "Dining"},'
                            ' {"description": "Gaji", "amount": "8 juta", "category": "Salary",'
                            ' "type": "income", "confidence": 0.9}]\n```',
        }})

    service = make_service(handler)
    result = await service.parse_transaction_input('  makan siang 35rb, gaji 8 juta  ')

    assert result.success is True
    assert result.message == 'Ditemukan 2 transaksi'
    lunch, salary = result.transactions
    assert (lunch.amount, lunch.category_id, lunch.type) == (35000, 2, 'expense')
    assert (salary.amount, salary.category_id, salary.type, salary.confidence) == (8000000, 13, 'income', 0.9)

    request = seen[0]
    assert request.url.path == '/functions/v1/gemini-finance-insight'
    body = json.loads(request.content)
    assert body['action'] == 'parse_transactions'
    assert body['input'] == 'makan siang 35rb, gaji 8 juta'
    assert body['language'] == 'id'
    assert any(c['name'] == 'Other' and c['type'] == 'income' for c in body['availableCategories'])


@pytest.mark.asyncio
async def test_function_failure_is_reported_not_raised():
    service = make_service(lambda request: httpx.Response(500, json={'message': 'quota exceeded'}))

    result = await service.parse_transaction_input('kopi 18k')

    assert result.success is False
    assert result.message == 'Failed to parse transactions'
    assert result.error == 'quota exceeded'
    assert result.transactions == []


@pytest.mark.asyncio
async def test_empty_result_means_no_transactions():
    service = make_service(lambda request: httpx.Response(200, json={'result': {'transactions': []}}))

    result = await service.parse_transaction_input('halo')

    assert result.success is False
    assert result.message == 'No transactions found'


@pytest.mark.asyncio
async def test_unparseable_transactions_text():
    service = make_service(lambda request: httpx.Response(200, json={'result': {'transactions': 'maaf, tidak ada'}}))

    result = await service.parse_transaction_input('???')

    assert result.success is False
    assert result.error == 'No valid JSON found in response'


@pytest.mark.asyncio
async def test_valid_transactions_convert_to_create_input():
    payload = [
        {'description': 'Bensin', 'amount': '50rb', 'category': 'bensin motor'},
        {'description': '', 'amount': '10rb'},
    ]
    service = make_service(lambda request: httpx.Response(200, json={'result': {'transactions': payload}}))

    result = await service.parse_transaction_input('bensin 50rb')
    valid, invalid = service.validate_transactions(result.transactions)
    transaction = AITransactionService.to_transaction_input(valid[0], 'w1', today=date(2026, 10, 18))

    assert len(invalid) == 1
    assert transaction.amount == 50000
    assert transaction.category_id == 3
    assert transaction.date == '2026-10-18'
    assert transaction.wallet_id == 'w1'
    assert transaction.type == 'expense'
    assert transaction.id == ''
