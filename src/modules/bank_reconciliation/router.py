"""API endpoints for bank statement import and reconciliation."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.auth.dependencies import CurrentPrincipal, ReconciliationWriter
from src.core.database.session import get_db
from src.core.exceptions import NotFoundError
from src.modules.bank_reconciliation.excel_export import export_reconciliation_report
from src.modules.bank_reconciliation.models import TransactionStatus
from src.modules.bank_reconciliation.reporting import ReconciliationReportService
from src.modules.bank_reconciliation.schemas import (
    AutoMatchedTransaction,
    AutoMatchRequest,
    AutoMatchResult,
    BankTransactionDetail,
    BankTransactionResponse,
    BatchRollupRow,
    BookingSummary,
    DeleteBatchResult,
    ImportResult,
    ManualMatchRequest,
    MatchSuggestion,
    ParseIssueResponse,
    ReconciliationReport,
    ReconciliationSummary,
    ReportPeriod,
    ScoreBreakdown,
    UnmatchedTransaction,
)
from src.modules.bank_reconciliation.service import (
    BankReconciliationService,
    MatchCandidate,
)
from src.shared.schemas.base import ApiResponse, PaginatedResponse


router = APIRouter(prefix="/bank-reconciliation", tags=["Bank Reconciliation"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _suggestion(transaction_id: int, candidate: MatchCandidate) -> MatchSuggestion:
    return MatchSuggestion(
        transaction_id=transaction_id,
        booking=BookingSummary.model_validate(candidate.booking),
        match_score=candidate.score,
        breakdown=ScoreBreakdown.model_validate(candidate.breakdown.model_dump()),
    )


@router.post(
    "/import",
    response_model=ApiResponse[ImportResult],
    status_code=status.HTTP_201_CREATED,
)
async def import_bank_statement(
    principal: ReconciliationWriter,
    file: UploadFile = File(...),
    format: str | None = Form(None, description="csv | ofx | qfx; detected from the file when omitted"),
    db: AsyncSession = Depends(get_db),
):
    service = BankReconciliationService(db)
    outcome = await service.import_statement(
        tenant_id=principal.tenant_id,
        imported_by_id=principal.user_id,
        raw_bytes=await file.read(),
        file_name=file.filename,
        content_type=file.content_type,
        declared_format=format,
    )
    await db.commit()
    return ApiResponse(
        message=f"Imported {outcome.imported_count} transactions",
        data=ImportResult(
            import_batch_id=outcome.import_batch_id,
            format=outcome.format.value,
            rows_total=outcome.rows_total,
            imported_count=outcome.imported_count,
            skipped_count=outcome.skipped_count,
            issues=[
                ParseIssueResponse(row_index=i.row_index, reason=i.reason) for i in outcome.issues
            ],
        ),
    )


@router.post("/auto-match", response_model=ApiResponse[AutoMatchResult])
async def auto_match(
    principal: ReconciliationWriter,
    data: AutoMatchRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    data = data or AutoMatchRequest()
    service = BankReconciliationService(db)
    outcome = await service.auto_match(
        principal.tenant_id,
        import_batch_id=data.import_batch_id,
        min_score=data.min_score,
    )
    await db.commit()
    return ApiResponse(
        message=f"Matched {outcome.matched_count} transactions",
        data=AutoMatchResult(
            matched_count=outcome.matched_count,
            unmatched_count=outcome.unmatched_count,
            failed_count=outcome.failed_count,
            matches=[
                AutoMatchedTransaction(
                    transaction_id=m.transaction_id, booking_id=m.booking_id, match_score=m.score
                )
                for m in outcome.matches
            ],
            suggestions=[
                _suggestion(item.transaction.id, item.suggestion) for item in outcome.suggestions
            ],
            unmatched=[
                UnmatchedTransaction(
                    transaction_id=item.transaction.id,
                    transaction_date=item.transaction.transaction_date,
                    description=item.transaction.description,
                    amount=item.transaction.amount,
                    reference=item.transaction.reference,
                    import_batch_id=item.transaction.import_batch_id,
                )
                for item in outcome.unmatched
            ],
        ),
    )


@router.post("/manual-match", response_model=ApiResponse[BankTransactionResponse])
async def manual_match(
    data: ManualMatchRequest,
    principal: ReconciliationWriter,
    db: AsyncSession = Depends(get_db),
):
    service = BankReconciliationService(db)
    transaction = await service.manual_match(
        data.transaction_id,
        data.booking_id,
        principal.user_id,
        tenant_id=principal.tenant_id,
        score=data.match_score,
    )
    await db.commit()
    await db.refresh(transaction)
    return ApiResponse(
        message="Transaction matched",
        data=BankTransactionResponse.model_validate(transaction),
    )


@router.post("/unmatch/{transaction_id}", response_model=ApiResponse[BankTransactionResponse])
async def unmatch(
    transaction_id: int,
    principal: ReconciliationWriter,
    db: AsyncSession = Depends(get_db),
):
    service = BankReconciliationService(db)
    transaction = await service.unmatch(transaction_id, tenant_id=principal.tenant_id)
    await db.commit()
    await db.refresh(transaction)
    return ApiResponse(
        message="Transaction unmatched",
        data=BankTransactionResponse.model_validate(transaction),
    )


@router.get(
    "/transactions",
    response_model=ApiResponse[PaginatedResponse[BankTransactionResponse]],
)
async def list_transactions(
    principal: CurrentPrincipal,
    status_filter: TransactionStatus | None = Query(None, alias="status"),
    import_batch_id: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    service = BankReconciliationService(db)
    items, total = await service.list_transactions(
        principal.tenant_id,
        status=status_filter,
        import_batch_id=import_batch_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return ApiResponse(
        data=PaginatedResponse.create(
            [BankTransactionResponse.model_validate(t) for t in items], total, page, limit
        )
    )


@router.get("/transactions/{transaction_id}", response_model=ApiResponse[BankTransactionDetail])
async def get_transaction(
    transaction_id: int,
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
):
    service = BankReconciliationService(db)
    transaction = await service.get_transaction(transaction_id, tenant_id=principal.tenant_id)
    return ApiResponse(data=BankTransactionDetail.model_validate(transaction))


@router.get("/unmatched", response_model=ApiResponse[list[BankTransactionResponse]])
async def list_unmatched(
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
):
    service = BankReconciliationService(db)
    items = await service.list_unmatched(principal.tenant_id)
    return ApiResponse(data=[BankTransactionResponse.model_validate(t) for t in items])


@router.get("/suggestions/{transaction_id}", response_model=ApiResponse[MatchSuggestion])
async def get_suggestion(
    transaction_id: int,
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
):
    """Best-scoring booking for a transaction. Nothing is stored."""
    service = BankReconciliationService(db)
    candidate = await service.suggest_match(transaction_id, tenant_id=principal.tenant_id)
    if candidate is None:
        raise NotFoundError("Matching booking for transaction", transaction_id)
    return ApiResponse(data=_suggestion(transaction_id, candidate))


@router.get("/summary", response_model=ApiResponse[ReconciliationSummary])
async def get_summary(
    principal: CurrentPrincipal,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    service = ReconciliationReportService(db)
    return ApiResponse(data=await service.summary(principal.tenant_id, date_from, date_to))


@router.get("/report", response_model=ApiResponse[ReconciliationReport])
async def get_report(
    principal: CurrentPrincipal,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    service = ReconciliationReportService(db)
    data = await service.reconciliation_report(principal.tenant_id, date_from, date_to)
    return ApiResponse(
        data=ReconciliationReport(
            period=ReportPeriod(**data["period"]),
            summary=data["summary"],
            unmatched=[BankTransactionResponse.model_validate(t) for t in data["unmatched"]],
            matched=[BankTransactionResponse.model_validate(t) for t in data["matched"]],
        )
    )


@router.get("/report/export")
async def export_report(
    principal: CurrentPrincipal,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Reconciliation report as an Excel workbook."""
    service = ReconciliationReportService(db)
    data = await service.reconciliation_report(principal.tenant_id, date_from, date_to)
    content = export_reconciliation_report(data)
    filename = f"bank_reconciliation_{date_from or 'start'}_{date_to or 'today'}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/batches", response_model=ApiResponse[list[BatchRollupRow]])
async def list_batches(
    principal: CurrentPrincipal,
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    service = ReconciliationReportService(db)
    return ApiResponse(data=await service.batch_rollup(principal.tenant_id, date_from, date_to))


@router.delete("/transactions/{transaction_id}", response_model=ApiResponse[None])
async def delete_transaction(
    transaction_id: int,
    principal: ReconciliationWriter,
    db: AsyncSession = Depends(get_db),
):
    service = BankReconciliationService(db)
    await service.delete_transaction(principal.tenant_id, transaction_id)
    await db.commit()
    return ApiResponse(data=None, message="Transaction deleted")


@router.delete("/batches/{import_batch_id}", response_model=ApiResponse[DeleteBatchResult])
async def delete_batch(
    import_batch_id: str,
    principal: ReconciliationWriter,
    db: AsyncSession = Depends(get_db),
):
    service = BankReconciliationService(db)
    deleted = await service.delete_batch(principal.tenant_id, import_batch_id)
    await db.commit()
    return ApiResponse(
        message=f"Deleted {deleted} transactions",
        data=DeleteBatchResult(import_batch_id=import_batch_id, deleted_count=deleted),
    )
