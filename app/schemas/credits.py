from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


PaymentMethod = Literal["stripe", "paypal", "mobile_money"]
BoostTierName = Literal["basic", "premium", "urgent"]


class BalanceOut(BaseModel):
    user_id: str
    balance: int
    total_earned: int
    total_spent: int


class PurchaseIn(BaseModel):
    # upper bound is settings.credit_purchase_max, checked by the ledger
    amount: int = Field(gt=0)
    payment_method: PaymentMethod


class BoostIn(BaseModel):
    product_id: str = Field(min_length=1)
    boost_type: BoostTierName


class LedgerAdjustmentIn(BaseModel):
    user_id: str = Field(min_length=1)
    amount: int = Field(gt=0)
    reason: str = Field(min_length=1, max_length=255)


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    type: str
    amount: int
    balance_after: int
    description: str
    reference: str | None
    created_at: datetime


class BoostOut(BaseModel):
    listing_id: str
    tier: str
    cost: int
    duration_days: int
    boosted_until: datetime
    new_balance: int
    transaction_id: str


class CreditPackageOut(BaseModel):
    id: str
    name: str
    credits: int
    price: int
    bonus: int = 0
