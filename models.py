from enum import Enum
from typing import Annotated, Dict, List, Optional
from decimal import Decimal, InvalidOperation
from pydantic import BeforeValidator, model_validator
from sqlmodel import SQLModel, Field

def _number_or_none(value):
    # rates and weights are hand-edited; anything unparseable is "not set"
    if value is None or isinstance(value, bool):
        return None
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return None
    return d if d.is_finite() else None

LenientNumber = Annotated[Optional[Decimal], BeforeValidator(_number_or_none)]

def _rename_keys(data, names: Dict[str, str]):
    """Accept the camelCase keys used by older JSON exports of a ledger."""
    if not isinstance(data, dict):
        return data
    out = dict(data)
    for old, new in names.items():
        if old in out and new not in out:
            out[new] = out.pop(old)
    return out


# ============== People ==============
class Person(SQLModel):
    id: str
    name: str = ""
    phone: Optional[str] = None  # contact handle, only used by the presentation layer

# ============== Expenses ==============
class SplitMode(str, Enum):
    EQUAL = "equal"
    WEIGHTS = "weights"

    @classmethod
    def _missing_(cls, value):
        # "weighted" is accepted as a spelling of the weights mode
        if isinstance(value, str) and value.lower() == "weighted":
            return cls.WEIGHTS
        return None

class Expense(SQLModel):
    id: str
    label: str = ""
    amount: Decimal = Decimal("0")
    currency: str
    payer_id: str
    participants: List[str] = Field(default_factory=list)
    split_mode: SplitMode = SplitMode.EQUAL
    weights: Optional[Dict[str, LenientNumber]] = None  # participant -> weight, weights mode only

    @model_validator(mode="before")
    @classmethod
    def _camel_keys(cls, data):
        return _rename_keys(data, {"payerId": "payer_id", "splitMode": "split_mode"})

# ============== Direct debts ==============
class DirectDebt(SQLModel):
    id: str
    debtor_id: str  # owes
    creditor_id: str  # is owed
    amount: Decimal = Decimal("0")
    currency: str

    @model_validator(mode="before")
    @classmethod
    def _camel_keys(cls, data):
        return _rename_keys(data, {"fromId": "debtor_id", "toId": "creditor_id"})

# ============== Ledger ==============
class Ledger(SQLModel):
    id: str
    name: str = ""
    base_currency: str
    decimals: int = Field(default=2, ge=0, le=10)
    fx: Dict[str, LenientNumber] = Field(default_factory=dict)  # code -> base units per 1 unit of code
    people: List[Person] = Field(default_factory=list)
    expenses: List[Expense] = Field(default_factory=list)
    direct_debts: List[DirectDebt] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _camel_keys(cls, data):
        return _rename_keys(data, {"baseCurrency": "base_currency", "directDebts": "direct_debts"})

    def without_person(self, person_id: str) -> "Ledger":
        """
        Return a copy of the ledger with a person removed.

        The person is dropped from every participant list; expenses they paid
        and direct debts they are part of are removed entirely.
        """
        people = [p for p in self.people if p.id != person_id]
        expenses = [
            e.model_copy(update={"participants": [pid for pid in e.participants if pid != person_id]})
            for e in self.expenses
            if e.payer_id != person_id
        ]
        direct_debts = [
            d for d in self.direct_debts
            if d.debtor_id != person_id and d.creditor_id != person_id
        ]
        return self.model_copy(update={
            "people": people,
            "expenses": expenses,
            "direct_debts": direct_debts,
        })

# ============== Results ==============
class Transfer(SQLModel):
    debtor_id: str  # pays
    creditor_id: str  # receives
    amount: Decimal

class BalanceReport(SQLModel):
    balances: Dict[str, Decimal]  # positive: is owed, negative: owes
    correction: Decimal = Decimal("0")  # residual taken off the anchor person
    volume: Decimal = Decimal("0")  # base-currency total of all active entries
