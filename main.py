from fastapi import FastAPI, HTTPException, Request
from typing import Dict, List

import structlog

from models import BalanceReport, Ledger, Transfer
from compute import compute_balance_report, settle_ledger, quantize, to_dec
from serialization import LedgerImportError, load_ledgers
from settings import get_settings
from logs import configure_logging

logger = structlog.get_logger(__name__)

app = FastAPI(title="Multi-currency Settlement API")

@app.on_event("startup")
def on_startup():
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)

def engine_options() -> dict:
    settings = get_settings()
    return {
        "tolerance": to_dec(settings.conservation_tolerance),
        "warning_ratio": to_dec(settings.correction_warning_ratio),
    }

def format_net(report: BalanceReport, decimals: int) -> Dict[str, str]:
    return {pid: str(quantize(v, decimals)) for pid, v in report.balances.items()}

def format_settlements(transfers: List[Transfer], decimals: int) -> List[dict]:
    return [
        {"from": t.debtor_id, "to": t.creditor_id, "amount": str(quantize(t.amount, decimals))}
        for t in transfers
    ]

def settlement_summary(ledger: Ledger) -> dict:
    report, transfers = settle_ledger(
        ledger,
        max_iterations=get_settings().max_settlement_iterations,
        **engine_options(),
    )
    return {
        "net": format_net(report, ledger.decimals),
        "correction": str(report.correction),
        "settlements": format_settlements(transfers, ledger.decimals),
    }

@app.get("/health")
def health():
    return {"status": "ok"}

# ========== Balances ==========
@app.post("/balances")
def balances(ledger: Ledger):
    report = compute_balance_report(
        ledger.people, ledger.expenses, ledger.direct_debts, ledger.fx, **engine_options()
    )
    return {
        "base_currency": ledger.base_currency,
        "net": format_net(report, ledger.decimals),
        "correction": str(report.correction),
    }

# ========== Settlement endpoint ==========
@app.post("/settlement")
def settlement(ledger: Ledger):
    return settlement_summary(ledger)

# ========== Import ==========
@app.post("/ledgers/import")
async def import_ledgers(request: Request):
    payload = await request.body()
    try:
        ledgers = load_ledgers(payload)
    except LedgerImportError as exc:
        logger.warning("ledger_import_rejected", reason=str(exc))
        raise HTTPException(status_code=400, detail=str(exc))
    results = []
    for ledger in ledgers:
        summary = settlement_summary(ledger)
        results.append({"id": ledger.id, "name": ledger.name, **summary})
    return results
