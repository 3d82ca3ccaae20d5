import pytest

from broker.messaging.router import MessageRouter
from broker.session.manager import SessionManager
from shared.auth import AccountStore, AuthService, AuthSessionStore, SimpleHasher
from shared.ranking import RankingLedger


@pytest.fixture
def accounts():
    return AccountStore()


@pytest.fixture
def session_store():
    return AuthSessionStore()


@pytest.fixture
def ledger(accounts):
    return RankingLedger(on_score=accounts.record_trophies)


@pytest.fixture
def auth_service(accounts, session_store, ledger):
    return AuthService(accounts, session_store, ledger, password_hasher=SimpleHasher())


@pytest.fixture
def manager(auth_service, ledger):
    return SessionManager(auth_service, ledger)


@pytest.fixture
def router(manager):
    return MessageRouter(manager)
