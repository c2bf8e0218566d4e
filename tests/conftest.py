"""Shared fixtures."""

from datetime import date

import pytest

from conciliador.config import Settings
from conciliador.engine import Linker, MatchingEngine
from conciliador.models import ContaBancaria, Extrato
from conciliador.service import ConciliacaoService
from conciliador.store import LedgerStore
from conciliador.utils.audit_logger import AuditLogger

from .factories import CARTORIO, CONTA, EXTRATO, OUTRA_CONTA, OUTRO_CARTORIO


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        reports_dir=tmp_path / "reports",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def store():
    store = LedgerStore()
    store.add_conta(ContaBancaria(
        id=CONTA,
        cartorio_id=CARTORIO,
        banco="Banco do Brasil",
        agencia="0001",
        conta="12345-6",
    ))
    store.add_conta(ContaBancaria(
        id=OUTRA_CONTA,
        cartorio_id=CARTORIO,
        banco="Caixa",
        agencia="0420",
        conta="98765-4",
    ))
    store.add_conta(ContaBancaria(id="conta-x", cartorio_id=OUTRO_CARTORIO, banco="Itau"))
    store.add_extrato(Extrato(
        id=EXTRATO,
        cartorio_id=CARTORIO,
        conta_id=CONTA,
        arquivo="extrato_marco.ofx",
        periodo_inicio=date(2024, 3, 1),
        periodo_fim=date(2024, 3, 31),
    ))
    store.add_extrato(Extrato(
        id="extrato-2",
        cartorio_id=CARTORIO,
        conta_id=OUTRA_CONTA,
        arquivo="extrato_caixa.ofx",
    ))
    return store


@pytest.fixture
def engine(settings):
    return MatchingEngine(settings)


@pytest.fixture
def linker(store, settings):
    return Linker(store, settings, AuditLogger("test", settings))


@pytest.fixture
def service(store, settings):
    return ConciliacaoService(store, settings)
