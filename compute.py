from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

import structlog

from models import BalanceReport, DirectDebt, Expense, Ledger, Person, SplitMode, Transfer

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
# zero-sum drift (base units) tolerated before the anchor person absorbs it
CONSERVATION_TOLERANCE = Decimal("1e-6")
# |value| below this is treated as exactly zero in settlement output
SNAP_TOLERANCE = Decimal("1e-9")
CORRECTION_WARNING_RATIO = Decimal("1e-9")
MAX_SETTLEMENT_ITERATIONS = 10000

def to_dec(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))

def _finite_or_none(x) -> Optional[Decimal]:
    """Decimal value of x, or None when x is missing, non-numeric or not finite."""
    if x is None or isinstance(x, bool):
        return None
    try:
        d = to_dec(x)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return d if d.is_finite() else None

def _active_amount(x) -> Optional[Decimal]:
    """Amount of an entry that counts towards balances (finite and > 0)."""
    d = _finite_or_none(x)
    if d is None or d <= ZERO:
        return None
    return d

def quantize(d: Decimal, decimals: int) -> Decimal:
    return to_dec(d).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)

def snap(d: Decimal) -> Decimal:
    return ZERO if abs(d) < SNAP_TOLERANCE else d

# ============== Currency conversion ==============
def to_base(amount, currency: str, fx: Mapping) -> Decimal:
    """
    Convert an amount in `currency` to the ledger base currency.
    fx maps currency code -> base units per 1 unit of that code. A missing,
    non-numeric or non-positive rate means "not configured" and the amount is
    returned unchanged.
    """
    amount = to_dec(amount)
    rate = _finite_or_none((fx or {}).get(currency))
    if rate is None or rate <= ZERO:
        return amount
    return amount * rate

# ============== Balances ==============
def compute_shares(expense: Expense) -> Dict[str, Decimal]:
    """
    Split an expense among its participants, in the expense currency.
    Equal mode: amount / n each. Weights mode: amount * w / W, where a
    participant missing from the weights map weighs 0; if W == 0 nobody is
    charged. Weights mode without any weights map falls back to equal.
    """
    participants = list(dict.fromkeys(expense.participants))
    amount = _active_amount(expense.amount)
    if not participants or amount is None:
        return {}
    if expense.split_mode == SplitMode.WEIGHTS and expense.weights is not None:
        weights = {}
        for pid in participants:
            w = _finite_or_none(expense.weights.get(pid))
            weights[pid] = w if w is not None and w > ZERO else ZERO
        total = sum(weights.values(), ZERO)
        if total <= ZERO:
            return {pid: ZERO for pid in participants}
        return {pid: amount * w / total for pid, w in weights.items()}
    per = amount / len(participants)
    return {pid: per for pid in participants}

def compute_balance_report(
    people: List[Person],
    expenses: Iterable[Expense],
    direct_debts: Iterable[DirectDebt],
    fx: Mapping,
    tolerance: Decimal = CONSERVATION_TOLERANCE,
    warning_ratio: Decimal = CORRECTION_WARNING_RATIO,
) -> BalanceReport:
    """
    Fold expenses and direct debts into one net balance per person (base currency).
    positive -> is owed money; negative -> owes money.
    """
    tolerance = to_dec(tolerance)
    warning_ratio = to_dec(warning_ratio)
    net = {p.id: ZERO for p in people}
    volume = ZERO

    def credit(pid: str, amt: Decimal):
        if pid not in net:
            logger.warning("unknown_person_referenced", person_id=pid)
            net[pid] = ZERO
        net[pid] += amt

    for e in expenses:
        shares = compute_shares(e)
        if not shares:
            continue
        amount_base = to_base(e.amount, e.currency, fx)
        volume += amount_base
        credit(e.payer_id, amount_base)
        for pid, share in shares.items():
            credit(pid, -to_base(share, e.currency, fx))

    for d in direct_debts:
        amount = _active_amount(d.amount)
        if amount is None:
            continue
        amount_base = to_base(amount, d.currency, fx)
        volume += amount_base
        credit(d.debtor_id, -amount_base)
        credit(d.creditor_id, amount_base)

    correction = ZERO
    residual = sum(net.values(), ZERO)
    if abs(residual) > tolerance and people:
        anchor = people[0].id
        net[anchor] -= residual
        correction = residual
        logger.info("balance_correction_applied", anchor=anchor, correction=str(residual))
        if volume > ZERO and abs(residual) / volume > warning_ratio:
            logger.warning(
                "balance_correction_large",
                anchor=anchor,
                correction=str(residual),
                volume=str(volume),
            )

    return BalanceReport(balances=net, correction=correction, volume=volume)

def compute_net_balances(
    people: List[Person],
    expenses: Iterable[Expense],
    direct_debts: Iterable[DirectDebt],
    fx: Mapping,
) -> Dict[str, Decimal]:
    return compute_balance_report(people, expenses, direct_debts, fx).balances

# ============== Settlement ==============
def _next_transfer(working: List[list], eps: Decimal):
    """(debtor, creditor, amount) for the next greedy step, or None once settled."""
    if not working:
        return None
    # max()/min() keep the first of equal values
    creditor = max(working, key=lambda x: x[1])
    debtor = min(working, key=lambda x: x[1])
    if creditor[1] <= eps and debtor[1] >= -eps:
        return None
    amount = min(creditor[1], -debtor[1])
    if amount <= eps:
        return None
    return debtor, creditor, amount

def simplify(
    net: Mapping[str, Decimal],
    decimals: int,
    max_iterations: int = MAX_SETTLEMENT_ITERATIONS,
) -> List[Transfer]:
    """
    Given net map (person->net), produce transfers (debtor pays creditor) using
    the greedy largest-creditor / largest-debtor matching.
    Amounts below one display unit (10**-decimals) count as settled.
    Transfers are returned in the order they were found.
    """
    eps = Decimal(1).scaleb(-decimals)
    working = [[pid, to_dec(v)] for pid, v in net.items()]
    transfers = []

    for _ in range(max_iterations):
        step = _next_transfer(working, eps)
        if step is None:
            return transfers
        debtor, creditor, amount = step
        transfers.append(Transfer(debtor_id=debtor[0], creditor_id=creditor[0], amount=snap(amount)))
        creditor[1] = snap(creditor[1] - amount)
        debtor[1] = snap(debtor[1] + amount)

    if _next_transfer(working, eps) is None:
        return transfers
    logger.error(
        "settlement_iteration_cap_exceeded",
        max_iterations=max_iterations,
        transfers=len(transfers),
    )
    return transfers

def settle_ledger(
    ledger: Ledger,
    tolerance: Decimal = CONSERVATION_TOLERANCE,
    warning_ratio: Decimal = CORRECTION_WARNING_RATIO,
    max_iterations: int = MAX_SETTLEMENT_ITERATIONS,
) -> Tuple[BalanceReport, List[Transfer]]:
    report = compute_balance_report(
        ledger.people,
        ledger.expenses,
        ledger.direct_debts,
        ledger.fx,
        tolerance=tolerance,
        warning_ratio=warning_ratio,
    )
    return report, simplify(report.balances, ledger.decimals, max_iterations=max_iterations)
