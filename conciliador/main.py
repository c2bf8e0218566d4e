"""
FastAPI application exposing the reconciliation core.

The cartorio (tenant) of every call comes from the ``X-Cartorio-Id``
header. Amounts are exchanged in cents.
"""

from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date, datetime
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import Settings, get_settings
from .errors import (
    AlreadyLinkedError,
    AutoMatchAbortedError,
    ConciliacaoError,
    InvalidScopeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .models import (
    AutoMatchResult,
    AutoMatchScope,
    Conciliacao,
    ConciliacaoDetalhada,
    ConciliacaoFiltros,
    ConciliacaoStats,
    FechamentoDiario,
    StatusConciliacao,
    SugestaoConciliacao,
    TipoLancamento,
    TipoTransacao,
)
from .service import ConciliacaoService
from .utils.log_config import setup_logging

logger = structlog.get_logger()

ERROR_STATUS = {
    NotFoundError: 404,
    AlreadyLinkedError: 409,
    InvalidTransitionError: 409,
    InvalidScopeError: 422,
    ValidationError: 422,
    AutoMatchAbortedError: 500,
}


# Request/Response models
class LinkRequest(BaseModel):
    extrato_item_id: str
    lancamento_id: str
    observacao: Optional[str] = None
    conta_id: Optional[str] = None


class AutoMatchRequest(BaseModel):
    conta_id: str
    extrato_id: Optional[str] = None
    data_inicio: Optional[date] = None
    data_fim: Optional[date] = None


class LancamentoResponse(BaseModel):
    id: str
    data: Optional[date]
    descricao: str
    tipo: str
    categoria: Optional[str]
    valor_centavos: int
    status_conciliacao: str


class SugestaoResponse(BaseModel):
    lancamento: LancamentoResponse
    score: int
    qualidade: str
    motivos: List[str]
    dias_diferenca: int


class ConciliacaoResponse(BaseModel):
    id: str
    extrato_item_id: str
    lancamento_id: str
    diferenca_centavos: int
    observacao: Optional[str]
    conciliado_em: datetime
    origem: str
    score: Optional[int]


class ConciliacaoDetalhadaResponse(ConciliacaoResponse):
    extrato_descricao: str
    extrato_data: Optional[date]
    extrato_valor_centavos: int
    lancamento_descricao: str
    lancamento_valor_centavos: int
    status: str


class SkippedResponse(BaseModel):
    extrato_item_id: str
    reason: str


class AutoMatchResponse(BaseModel):
    job_id: str
    linked: List[str]
    skipped: List[SkippedResponse]


class StatsResponse(BaseModel):
    conciliados: int
    pendentes: int
    divergentes: int
    taxa_conciliacao: float
    total_extrato: int
    total_lancamentos: int
    valor_total_extrato_centavos: int
    valor_total_lancamentos_centavos: int
    diferenca_valores_centavos: int


class FechamentoResponse(BaseModel):
    data: date
    total_conciliados: int
    total_pendentes: int
    total_divergentes: int
    valor_conciliado_centavos: int
    valor_pendente_centavos: int
    valor_divergente_centavos: int
    diferenca_total_centavos: int
    percentual_conciliado: float


def _conciliacao_response(link: Conciliacao) -> ConciliacaoResponse:
    return ConciliacaoResponse(
        id=link.id,
        extrato_item_id=link.extrato_item_id,
        lancamento_id=link.lancamento_id,
        diferenca_centavos=link.diferenca_centavos,
        observacao=link.observacao,
        conciliado_em=link.conciliado_em,
        origem=link.origem.value,
        score=link.score,
    )


def _detalhada_response(detalhe: ConciliacaoDetalhada) -> ConciliacaoDetalhadaResponse:
    base = _conciliacao_response(detalhe.conciliacao)
    return ConciliacaoDetalhadaResponse(
        **base.model_dump(),
        extrato_descricao=detalhe.extrato_item.descricao,
        extrato_data=detalhe.extrato_item.data_transacao,
        extrato_valor_centavos=detalhe.extrato_item.valor_centavos,
        lancamento_descricao=detalhe.lancamento.descricao,
        lancamento_valor_centavos=detalhe.lancamento.valor_centavos,
        status=detalhe.extrato_item.status_conciliacao.value,
    )


def _sugestao_response(sugestao: SugestaoConciliacao) -> SugestaoResponse:
    lanc = sugestao.lancamento
    return SugestaoResponse(
        lancamento=LancamentoResponse(
            id=lanc.id,
            data=lanc.data,
            descricao=lanc.descricao,
            tipo=lanc.tipo.value,
            categoria=lanc.categoria,
            valor_centavos=lanc.valor_centavos,
            status_conciliacao=lanc.status_conciliacao.value,
        ),
        score=sugestao.score,
        qualidade=sugestao.qualidade.value,
        motivos=sugestao.motivos,
        dias_diferenca=sugestao.dias_diferenca,
    )


def _auto_match_response(result: AutoMatchResult) -> AutoMatchResponse:
    return AutoMatchResponse(
        job_id=result.job_id,
        linked=result.linked,
        skipped=[
            SkippedResponse(extrato_item_id=s.extrato_item_id, reason=s.reason)
            for s in result.skipped
        ],
    )


def _filtros(
    data_inicio: Optional[date] = Query(default=None),
    data_fim: Optional[date] = Query(default=None),
    status: List[StatusConciliacao] = Query(default=[]),
    conta_id: Optional[str] = Query(default=None),
    extrato_id: Optional[str] = Query(default=None),
    busca: str = Query(default=""),
    tipo_lancamento: List[TipoLancamento] = Query(default=[]),
    tipo_transacao: List[TipoTransacao] = Query(default=[]),
    valor_minimo_centavos: Optional[int] = Query(default=None),
    valor_maximo_centavos: Optional[int] = Query(default=None),
) -> ConciliacaoFiltros:
    return ConciliacaoFiltros(
        data_inicio=data_inicio,
        data_fim=data_fim,
        status=status,
        conta_id=conta_id,
        extrato_id=extrato_id,
        busca=busca,
        tipo_lancamento=tipo_lancamento,
        tipo_transacao=tipo_transacao,
        valor_minimo_centavos=valor_minimo_centavos,
        valor_maximo_centavos=valor_maximo_centavos,
    )


def get_service(request: Request) -> ConciliacaoService:
    return request.app.state.service


def create_app(
    service: Optional[ConciliacaoService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the API around a service (a fresh in-memory one by default)."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        setup_logging(settings)
        logger.info("Starting reconciliation API", env=settings.app_env)
        yield
        logger.info("Shutting down reconciliation API")

    app = FastAPI(
        title="Conciliador Bancário",
        description="Núcleo de conciliação bancária: sugestões, vínculos e fechamento",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service or ConciliacaoService(settings=settings)

    @app.exception_handler(ConciliacaoError)
    async def conciliacao_error_handler(request: Request, exc: ConciliacaoError):
        status_code = ERROR_STATUS.get(type(exc), 400)
        content = {"error": exc.code, "detail": str(exc)}
        if isinstance(exc, AutoMatchAbortedError):
            content["committed"] = exc.committed
            logger.error("Auto-match aborted", committed=exc.committed_count, error=str(exc.cause))
        return JSONResponse(status_code=status_code, content=content)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}

    @app.get("/api/extrato-itens/{extrato_item_id}/sugestoes", response_model=List[SugestaoResponse])
    def suggest(
        extrato_item_id: str,
        conta_id: Optional[str] = None,
        x_cartorio_id: str = Header(...),
        service: ConciliacaoService = Depends(get_service),
    ):
        return [
            _sugestao_response(s)
            for s in service.suggest(x_cartorio_id, extrato_item_id, conta_id)
        ]

    @app.post("/api/conciliacoes", response_model=ConciliacaoResponse, status_code=201)
    def link(
        body: LinkRequest,
        x_cartorio_id: str = Header(...),
        service: ConciliacaoService = Depends(get_service),
    ):
        conciliacao = service.link(
            x_cartorio_id,
            body.extrato_item_id,
            body.lancamento_id,
            observacao=body.observacao,
            conta_id=body.conta_id,
        )
        return _conciliacao_response(conciliacao)

    @app.delete("/api/conciliacoes/{conciliacao_id}", response_model=ConciliacaoResponse)
    def unlink(
        conciliacao_id: str,
        x_cartorio_id: str = Header(...),
        service: ConciliacaoService = Depends(get_service),
    ):
        return _conciliacao_response(service.unlink(x_cartorio_id, conciliacao_id))

    @app.get("/api/conciliacoes", response_model=List[ConciliacaoDetalhadaResponse])
    def history(
        limit: int = Query(default=100),
        filtros: ConciliacaoFiltros = Depends(_filtros),
        x_cartorio_id: str = Header(...),
        service: ConciliacaoService = Depends(get_service),
    ):
        return [
            _detalhada_response(d)
            for d in service.history(x_cartorio_id, filtros, limit=limit)
        ]

    @app.post("/api/auto-match", response_model=AutoMatchResponse)
    async def auto_match(
        body: AutoMatchRequest,
        x_cartorio_id: str = Header(...),
        service: ConciliacaoService = Depends(get_service),
    ):
        scope = AutoMatchScope(
            cartorio_id=x_cartorio_id,
            conta_id=body.conta_id,
            extrato_id=body.extrato_id,
            data_inicio=body.data_inicio,
            data_fim=body.data_fim,
        )
        return _auto_match_response(await service.auto_match_async(scope))

    @app.get("/api/stats", response_model=StatsResponse)
    def stats(
        filtros: ConciliacaoFiltros = Depends(_filtros),
        x_cartorio_id: str = Header(...),
        service: ConciliacaoService = Depends(get_service),
    ):
        result: ConciliacaoStats = service.stats(x_cartorio_id, filtros)
        return StatsResponse(**asdict(result))

    @app.get("/api/fechamento/{data}", response_model=FechamentoResponse)
    def closing(
        data: date,
        filtros: ConciliacaoFiltros = Depends(_filtros),
        x_cartorio_id: str = Header(...),
        service: ConciliacaoService = Depends(get_service),
    ):
        result: FechamentoDiario = service.closing(x_cartorio_id, data, filtros)
        return FechamentoResponse(**asdict(result))

    return app
