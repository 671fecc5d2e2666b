import random

import pytest
from fastapi.testclient import TestClient

from wordcast.db import Store
from wordcast.game import GameService
from wordcast.main import create_app
from wordcast.payments import TransferResult
from wordcast.sessions import SessionStore
from wordcast.words import derive_solution

SALT = "test-salt"
TODAY = "20240315"
TX_HASH = "0x" + "ab" * 32
WALLET = "0x" + "1" * 40


class FakeGateway:
    """Records transfers instead of sending them."""

    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)
        self.balance = "42.5"

    def submit_transfer(self, to_address, amount_usd, memo):
        self.calls.append((to_address, amount_usd, memo))
        if to_address in self.fail_for:
            return TransferResult(success=False, error="insufficient funds")
        return TransferResult(success=True, tx_hash="0x" + format(len(self.calls), "064x"))

    def get_sponsor_balance(self):
        return self.balance


def wrong_guess(solution, letter="X"):
    word = letter * 5
    return word if word != solution else "Y" * 5


@pytest.fixture()
def store():
    s = Store("sqlite://")
    s.init_db()
    return s


@pytest.fixture()
def sessions():
    return SessionStore()


@pytest.fixture()
def service(store, sessions):
    return GameService(store, sessions, salt=SALT, solution_mode="daily", force_ranked=False,
                       single_hint=True, rng=random.Random(7))


@pytest.fixture()
def solution_en():
    return derive_solution(TODAY, "en", SALT)


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def api_app(store, sessions, gateway):
    return create_app(store=store, sessions=sessions, gateway=gateway, env="test",
                      salt=SALT, solution_mode="daily", force_ranked=False, single_hint=True)


@pytest.fixture()
def client(api_app):
    return TestClient(api_app)
