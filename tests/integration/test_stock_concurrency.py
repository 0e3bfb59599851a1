"""Concurrent stock mutations against one shared database.

Each worker thread opens its own connection, so the conditional update
is the only thing standing between the racers and negative stock.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connections

from modules.products.exceptions import InsufficientStock
from modules.products.ledger import StockLedger, StockLine
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = [pytest.mark.integration, pytest.mark.django_db(transaction=True)]

WORKERS = 8


def _race(attempt, rounds: int) -> list:
    def run(_):
        try:
            return attempt()
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        return list(pool.map(run, range(rounds)))


def test_conditional_decrements_never_oversell(make_product, stock_of):
    product = make_product(stock_quantity=5)
    repo = ProductDjangoRepository()

    results = _race(lambda: repo.decrement_if_available(str(product.id), 1), 12)

    assert results.count(True) == 5
    assert stock_of(product) == 0


def test_uneven_quantities_stop_at_what_fits(make_product, stock_of):
    product = make_product(stock_quantity=7)
    repo = ProductDjangoRepository()

    results = _race(lambda: repo.decrement_if_available(str(product.id), 2), 10)

    assert results.count(True) == 3
    assert stock_of(product) == 1


def test_multi_line_commits_are_all_or_none(make_product, stock_of):
    first = make_product(stock_quantity=3)
    second = make_product(stock_quantity=6)
    ledger = StockLedger(ProductDjangoRepository())
    lines = [StockLine(str(first.id), 1), StockLine(str(second.id), 2)]

    def attempt() -> bool:
        try:
            ledger.commit_lines(lines)
        except InsufficientStock:
            return False
        return True

    results = _race(attempt, 6)

    assert results.count(True) == 3
    assert (stock_of(first), stock_of(second)) == (0, 0)
