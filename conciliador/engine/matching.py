"""
Matching Engine - confidence-scored suggestions for a statement line.

Score (0-100) is the sum of four weighted factors:
- Amount: exact magnitude match scores full points, decaying linearly
  to zero at the maximum relative tolerance
- Direction: credito pairs with receita, debito with despesa; a mismatch
  scores zero for this factor but does not exclude the candidate
- Date: full points on the same day, decaying linearly to zero at the
  day window; candidates outside the window are excluded
- Description: whole-phrase containment beats partial token overlap

Every factor contributing at least ``reason_min_fraction`` of its weight
adds a human-readable reason to ``motivos``.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import structlog
from rapidfuzz import fuzz

from ..config import Settings, get_settings
from ..errors import InvalidScopeError
from ..models import (
    ExtratoItem,
    Lancamento,
    StatusConciliacao,
    StatusLancamento,
    SugestaoConciliacao,
    TipoLancamento,
    TipoTransacao,
)
from ..utils.text import normalize_text, tokenize

logger = structlog.get_logger()


@dataclass(frozen=True)
class CandidateScore:
    """Per-factor breakdown of one extrato item / lancamento pair."""
    lancamento: Lancamento
    amount_fraction: float
    direction_fraction: float
    date_fraction: float
    description_fraction: float
    days_apart: int
    score: int
    motivos: List[str] = field(default_factory=list)

    def to_sugestao(self) -> SugestaoConciliacao:
        return SugestaoConciliacao(
            lancamento=self.lancamento,
            score=self.score,
            motivos=list(self.motivos),
            dias_diferenca=self.days_apart,
        )


def is_type_compatible(tipo_transacao: TipoTransacao, tipo_lancamento: TipoLancamento) -> bool:
    """credito pairs with receita, debito with despesa."""
    return (
        (tipo_transacao == TipoTransacao.CREDITO and tipo_lancamento == TipoLancamento.RECEITA)
        or (tipo_transacao == TipoTransacao.DEBITO and tipo_lancamento == TipoLancamento.DESPESA)
    )


def ranking_key(candidate: CandidateScore):
    """Highest score first, then closest date, then lancamento id."""
    return (-candidate.score, candidate.days_apart, candidate.lancamento.id)


class MatchingEngine:
    """
    Scores pending lancamentos against one extrato item.

    Pure and deterministic: the same inputs always produce the same
    ordered suggestions, so calls may run in parallel freely.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.window_days = self.settings.date_window_days
        self.amount_tolerance = self.settings.max_relative_amount_tolerance
        self.min_score = self.settings.suggestion_min_score

    def suggest(
        self,
        extrato_item: ExtratoItem,
        lancamentos: Iterable[Lancamento],
        min_score: Optional[int] = None,
    ) -> List[SugestaoConciliacao]:
        """
        Ranked suggestions for an extrato item.

        Args:
            extrato_item: Statement line to match
            lancamentos: Candidate ledger entries of the same cartorio
            min_score: Floor below which candidates are dropped
                (defaults to ``suggestion_min_score``)

        Returns:
            Suggestions, highest score first
        """
        ranked = self.rank(extrato_item, lancamentos, min_score)
        return [c.to_sugestao() for c in ranked]

    def best_match(
        self,
        extrato_item: ExtratoItem,
        lancamentos: Iterable[Lancamento],
    ) -> Optional[SugestaoConciliacao]:
        suggestions = self.suggest(extrato_item, lancamentos)
        return suggestions[0] if suggestions else None

    def rank(
        self,
        extrato_item: ExtratoItem,
        lancamentos: Iterable[Lancamento],
        min_score: Optional[int] = None,
    ) -> List[CandidateScore]:
        """Scored candidates at or above the floor, in ranking order."""
        floor = self.min_score if min_score is None else min_score
        scored = []
        considered = 0

        for lancamento in lancamentos:
            considered += 1
            candidate = self.score(extrato_item, lancamento)
            if candidate is None or candidate.score < floor:
                continue
            scored.append(candidate)

        scored.sort(key=ranking_key)

        logger.debug(
            "Suggestions computed",
            extrato_item_id=extrato_item.id,
            considered=considered,
            returned=len(scored),
        )
        return scored

    def score(
        self,
        extrato_item: ExtratoItem,
        lancamento: Lancamento,
    ) -> Optional[CandidateScore]:
        """
        Score one pair, or None when the lancamento is not a candidate.

        Not a candidate: already linked, cancelled (when configured),
        tied to another account, undated, or outside the day window.
        """
        if lancamento.cartorio_id != extrato_item.cartorio_id:
            raise InvalidScopeError(
                f"Lancamento '{lancamento.id}' belongs to cartorio "
                f"'{lancamento.cartorio_id}', not '{extrato_item.cartorio_id}'"
            )
        if lancamento.status_conciliacao != StatusConciliacao.PENDENTE:
            return None
        if (
            self.settings.exclude_cancelled_lancamentos
            and lancamento.status == StatusLancamento.CANCELADO
        ):
            return None
        if lancamento.conta_id and extrato_item.conta_id and lancamento.conta_id != extrato_item.conta_id:
            return None
        if extrato_item.data_transacao is None or lancamento.data is None:
            return None

        days_apart = abs((extrato_item.data_transacao - lancamento.data).days)
        if days_apart > self.window_days:
            return None

        amount = self._amount_fraction(
            extrato_item.valor_absoluto_centavos,
            lancamento.valor_absoluto_centavos,
        )
        direction = 1.0 if is_type_compatible(extrato_item.tipo, lancamento.tipo) else 0.0
        date_score = self._date_fraction(days_apart)
        description = max(
            self._description_fraction(extrato_item.descricao, lancamento.descricao),
            self._description_fraction(extrato_item.descricao, lancamento.categoria or ""),
        )

        s = self.settings
        total = (
            amount * s.amount_weight
            + direction * s.direction_weight
            + date_score * s.date_weight
            + description * s.description_weight
        )
        score = min(100, int(math.floor(total + 0.5)))

        return CandidateScore(
            lancamento=lancamento,
            amount_fraction=amount,
            direction_fraction=direction,
            date_fraction=date_score,
            description_fraction=description,
            days_apart=days_apart,
            score=score,
            motivos=self._build_motivos(amount, direction, date_score, description, days_apart),
        )

    def _amount_fraction(self, extrato_cents: int, lancamento_cents: int) -> float:
        """1.0 on exact magnitude match, linear decay to 0 at the tolerance."""
        if extrato_cents == lancamento_cents:
            return 1.0
        largest = max(extrato_cents, lancamento_cents)
        relative = abs(extrato_cents - lancamento_cents) / largest
        if relative >= self.amount_tolerance:
            return 0.0
        return 1.0 - relative / self.amount_tolerance

    def _date_fraction(self, days_apart: int) -> float:
        if days_apart == 0:
            return 1.0
        if self.window_days == 0:
            return 0.0
        return max(0.0, 1.0 - days_apart / self.window_days)

    def _description_fraction(self, extrato_desc: str, other: str) -> float:
        """
        1.0 when one normalized text contains the other as whole words,
        otherwise token overlap capped at ``partial_description_ceiling``.
        """
        a = normalize_text(extrato_desc)
        b = normalize_text(other)
        if not a or not b:
            return 0.0
        if a == b:
            return 1.0

        shorter, longer = sorted((a, b), key=len)
        if (
            len(shorter) >= self.settings.min_substring_length
            and f" {shorter} " in f" {longer} "
        ):
            return 1.0

        tokens_a = tokenize(extrato_desc)
        tokens_b = tokenize(other)
        if not tokens_a or not tokens_b:
            return 0.0
        overlap = fuzz.token_set_ratio(" ".join(tokens_a), " ".join(tokens_b)) / 100.0
        return overlap * self.settings.partial_description_ceiling

    def _build_motivos(
        self,
        amount: float,
        direction: float,
        date_score: float,
        description: float,
        days_apart: int,
    ) -> List[str]:
        """Build human-readable match reasons."""
        motivos = []

        if amount == 1.0:
            motivos.append("Valor idêntico")
        elif amount >= 0.6:
            motivos.append("Valor muito próximo")
        elif self._contributes(amount):
            motivos.append("Valor dentro da tolerância")

        if direction == 1.0:
            motivos.append("Tipo compatível")

        if days_apart == 0:
            motivos.append("Mesmo dia")
        elif self._contributes(date_score):
            plural = "dia" if days_apart == 1 else "dias"
            motivos.append(f"Data próxima ({days_apart} {plural})")

        if description == 1.0:
            motivos.append("Descrição coincidente")
        elif self._contributes(description):
            motivos.append("Descrição similar")

        return motivos

    def _contributes(self, fraction: float) -> bool:
        # Tolerate float noise at the boundary, e.g. 1 - 4/5
        return fraction > 0 and fraction + 1e-9 >= self.settings.reason_min_fraction
