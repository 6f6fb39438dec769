"""
Symbols Router

Tradable symbol catalog: universe import from Finnhub, search and
enable/disable.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.connection import get_db_session
from ..database.models import Symbol
from ..dependencies.auth import get_token_payload, require_admin
from ..dependencies.services import get_finnhub_client
from ..market.finnhub_client import FinnhubClient
from ..services.symbols import ImportSummary, SymbolService

router = APIRouter(prefix="/symbols", tags=["Symbols"])


# Request/Response Models
class ImportSummaryResponse(BaseModel):
    imported: int
    updated: int
    skipped: int


class ImportStatusResponse(BaseModel):
    running: bool
    last_imported_at: Optional[datetime]
    last_summary: Optional[ImportSummaryResponse]


class SymbolResponse(BaseModel):
    id: int
    symbol: str
    name: str
    exchange: Optional[str]
    currency: Optional[str]
    mic: Optional[str]
    enabled: bool


class SymbolPageResponse(BaseModel):
    items: List[SymbolResponse]
    total: int
    page: int
    size: int


class SetEnabledRequest(BaseModel):
    enabled: bool


def get_symbol_service(
    db: AsyncSession = Depends(get_db_session),
    finnhub: FinnhubClient = Depends(get_finnhub_client),
) -> SymbolService:
    return SymbolService(db, finnhub)


def _summary_response(summary: ImportSummary) -> ImportSummaryResponse:
    return ImportSummaryResponse(imported=summary.imported, updated=summary.updated, skipped=summary.skipped)


def _symbol_response(symbol: Symbol) -> SymbolResponse:
    return SymbolResponse(
        id=symbol.id,
        symbol=symbol.symbol,
        name=symbol.name,
        exchange=symbol.exchange,
        currency=symbol.currency,
        mic=symbol.mic,
        enabled=symbol.enabled,
    )


@router.post("/import", response_model=ImportSummaryResponse, dependencies=[Depends(require_admin)])
async def import_symbols(
    universe: str = Query("NDX", description="NDX (Nasdaq only) or GSPC (Nasdaq and NYSE)"),
    service: SymbolService = Depends(get_symbol_service),
):
    """
    Import US common stocks from Finnhub.

    Only one import runs at a time; a concurrent request gets 409.
    """
    return _summary_response(await service.import_universe(universe))


@router.get("/import/status", response_model=ImportStatusResponse, dependencies=[Depends(require_admin)])
async def import_status():
    status = SymbolService.import_status()
    return ImportStatusResponse(
        running=status.running,
        last_imported_at=status.last_imported_at,
        last_summary=_summary_response(status.last_summary) if status.last_summary else None,
    )


@router.get("", response_model=SymbolPageResponse, dependencies=[Depends(get_token_payload)])
async def list_symbols(
    q: Optional[str] = None,
    enabled: Optional[bool] = None,
    page: int = Query(0, ge=0),
    size: int = Query(25, ge=1, le=200),
    service: SymbolService = Depends(get_symbol_service),
):
    result = await service.list_symbols(q=q, enabled=enabled, page=page, size=size)
    return SymbolPageResponse(
        items=[_symbol_response(s) for s in result.items],
        total=result.total,
        page=result.page,
        size=result.size,
    )


@router.put("/{symbol_id}/enabled", response_model=SymbolResponse, dependencies=[Depends(require_admin)])
async def set_enabled(
    symbol_id: int,
    request: SetEnabledRequest,
    service: SymbolService = Depends(get_symbol_service),
):
    """Enable or disable trading; a held symbol cannot be disabled."""
    return _symbol_response(await service.set_enabled(symbol_id, request.enabled))
