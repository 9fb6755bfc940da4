"""
FinSync - Financial Calculations

PURPOSE: Pure aggregate and filter functions behind the derived views
SCOPE: Balances, monthly flows, budget spend/utilization/status, grouping
DEPENDENCIES: models.py
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Budget, Transaction, Wallet

WARNING_THRESHOLD = 75.0
EXCEEDED_THRESHOLD = 100.0


def parse_date(value: Optional[str]) -> Optional[date]:
    """Date part of an ISO date or timestamp string, ``None`` if unparseable."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def calculate_total_balance(wallets: Iterable[Wallet]) -> float:
    return sum(wallet.balance for wallet in wallets)


def _monthly_total(transactions: Iterable[Transaction], kind: str, month: Optional[int],
                   year: Optional[int], today: Optional[date]) -> float:
    today = today or date.today()
    month = month or today.month
    year = year or today.year
    total = 0.0
    for t in transactions:
        d = parse_date(t.date)
        if t.type == kind and d is not None and d.month == month and d.year == year:
            total += t.amount
    return total


def calculate_monthly_income(transactions: Iterable[Transaction], month: Optional[int] = None,
                             year: Optional[int] = None, today: Optional[date] = None) -> float:
    """Income in the given month (1-12), the current month by default."""
    return _monthly_total(transactions, 'income', month, year, today)


def calculate_monthly_expense(transactions: Iterable[Transaction], month: Optional[int] = None,
                              year: Optional[int] = None, today: Optional[date] = None) -> float:
    return _monthly_total(transactions, 'expense', month, year, today)


def calculate_net_flow(income: float, expense: float) -> float:
    return income - expense


def budget_period_range(period: Optional[str], today: Optional[date] = None) -> Tuple[date, date]:
    """Inclusive date range a budget period covers, relative to ``today``."""
    today = today or date.today()
    if period == 'weekly':
        return today - timedelta(days=7), today
    if period == 'yearly':
        return date(today.year, 1, 1), date(today.year, 12, 31)
    last_day = calendar.monthrange(today.year, today.month)[1]
    return date(today.year, today.month, 1), date(today.year, today.month, last_day)


def calculate_budget_spent(budget: Budget, transactions: Iterable[Transaction],
                           today: Optional[date] = None) -> float:
    """Expenses in the budget's category within its current period."""
    start, end = budget_period_range(budget.period, today)
    spent = 0.0
    for t in transactions:
        d = parse_date(t.date)
        if (t.type == 'expense' and t.category_id == budget.category_id
                and d is not None and start <= d <= end):
            spent += t.amount
    return spent


def calculate_budget_utilization(spent: float, amount: float) -> float:
    if amount == 0:
        return 0.0
    return (spent / amount) * 100


def calculate_remaining_budget(spent: float, amount: float) -> float:
    return amount - spent


def budget_status(budget: Budget) -> str:
    """One of ``on-track``, ``warning`` or ``exceeded``."""
    utilization = calculate_budget_utilization(budget.spent or 0.0, budget.amount)
    if utilization >= EXCEEDED_THRESHOLD:
        return 'exceeded'
    if utilization >= WARNING_THRESHOLD:
        return 'warning'
    return 'on-track'


def calculate_total_budget(budgets: Iterable[Budget]) -> float:
    return sum(budget.amount for budget in budgets)


def calculate_total_spent(budgets: Iterable[Budget]) -> float:
    return sum(budget.spent or 0.0 for budget in budgets)


def calculate_overall_utilization(budgets: Iterable[Budget]) -> float:
    budgets = list(budgets)
    return calculate_budget_utilization(calculate_total_spent(budgets), calculate_total_budget(budgets))


@dataclass(frozen=True)
class BudgetAlert:
    budget: Budget
    status: str
    utilization: float
    message: str


def budget_alerts(budgets: Iterable[Budget]) -> List[BudgetAlert]:
    """Alerts for budgets that are over or near their limit."""
    alerts = []
    for budget in budgets:
        status = budget_status(budget)
        utilization = calculate_budget_utilization(budget.spent or 0.0, budget.amount)
        if status == 'exceeded':
            message = f"Budget exceeded by {utilization - 100:.0f}%"
        elif status == 'warning':
            message = f"Budget at {utilization:.0f}% - approaching limit"
        else:
            continue
        alerts.append(BudgetAlert(budget=budget, status=status, utilization=utilization, message=message))
    return alerts


def group_transactions_by_category(transactions: Iterable[Transaction]) -> Dict[Optional[int], Dict[str, float]]:
    groups: Dict[Optional[int], Dict[str, float]] = {}
    for t in transactions:
        group = groups.setdefault(t.category_id, {'amount': 0.0, 'count': 0})
        group['amount'] += t.amount
        group['count'] += 1
    return groups


def filter_transactions_by_date_range(transactions: Iterable[Transaction], start: date,
                                      end: date) -> List[Transaction]:
    result = []
    for t in transactions:
        d = parse_date(t.date)
        if d is not None and start <= d <= end:
            result.append(t)
    return result


def calculate_daily_average_spending(transactions: Iterable[Transaction], days: int = 30,
                                     today: Optional[date] = None) -> float:
    today = today or date.today()
    start = today - timedelta(days=days)
    total = 0.0
    for t in transactions:
        d = parse_date(t.date)
        if t.type == 'expense' and d is not None and d >= start:
            total += t.amount
    return total / days
