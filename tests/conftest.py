import random
from datetime import datetime, timedelta

import pytest

from repertoire_trainer.core.opening_manager import OpeningManager
from repertoire_trainer.core.practice_service import PracticeService
from repertoire_trainer.core.progress_ledger import ProgressLedger
from repertoire_trainer.core.rules_oracle import ChessRulesOracle
from repertoire_trainer.database.database import init_db, make_engine, make_session_factory


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    db_engine = make_engine(f"sqlite:///{(tmp_path / 'test.db').as_posix()}")
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def oracle():
    return ChessRulesOracle()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 12, 0, 0))


@pytest.fixture
def manager(session_factory, oracle):
    return OpeningManager(session_factory, oracle)


@pytest.fixture
def ledger(session_factory, clock):
    return ProgressLedger(session_factory, clock=clock)


@pytest.fixture
def service(manager, ledger, oracle, clock):
    return PracticeService(manager, ledger, oracle, rng=random.Random(1234), clock=clock)


@pytest.fixture
def user(manager):
    return manager.get_or_create_user("alice")


@pytest.fixture
def other_user(manager):
    return manager.get_or_create_user("bob")


@pytest.fixture
def ruy_lopez(manager):
    return manager.add_opening(
        "Ruy Lopez", ["e4", "e5", "Nf3", "Nc6", "Bb5", "a6"],
        eco="C60", category="Open Game", popularity=90,
    )
