"""
펀드 회계

펀드 간 이체/배분 검증과 펀드별 대차대조표.
잔액은 항상 원장 분개에서 재계산하며 별도 잔액 필드를 두지 않음.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from core.config.loader import FundPolicyConfig
from core.domain.errors import (
    InsufficientFundBalanceError,
    InvalidAmountError,
    RestrictedFundError,
    SameFundError,
    UnbalancedAllocationError,
)
from core.domain.events import EventTypes
from core.ledger.entry_builder import LedgerEntry, LedgerTransaction
from core.ledger.store import net_assets
from core.ledger.types import TransactionKind
from core.types import EntityKind, Principal, TransferPolicy
from core.utils.dates import add_days
from core.utils.money import ZERO, to_money

if TYPE_CHECKING:
    from core.ledger.accounts import Fund
    from core.ledger.store import LedgerStore

logger = logging.getLogger(__name__)


@dataclass
class FundAllocation:
    """배분 라인

    부호 규칙: 음수 = 해당 펀드가 받음 (Debit), 양수 = 해당 펀드가 내줌 (Credit)

    Attributes:
        fund_id: 펀드 ID
        amount: 부호 있는 금액
        account_id: 계정 (None이면 펀드 간 청산 계정)
        memo: 메모
    """

    fund_id: str
    amount: Decimal
    account_id: str | None = None
    memo: str | None = None


class FundAccountingService:
    """펀드 회계 서비스

    모든 쓰기는 LedgerStore.post()를 통해서만 수행.

    Args:
        ledger: 원장 저장소
        policies: 펀드 유형별 출금 정책
    """

    def __init__(self, ledger: LedgerStore, policies: FundPolicyConfig | None = None):
        self.ledger = ledger
        self.policies = policies or FundPolicyConfig()
        # (as_of, ledger version) → 대차대조표
        self._balance_sheet_cache: dict[tuple[date, int], dict[str, dict[str, Decimal]]] = {}

    # =========================================================================
    # 잔액
    # =========================================================================

    async def available_balance(self, fund_id: str, as_of: date | None = None) -> Decimal | None:
        """출금 가능 잔액

        Returns:
            BALANCE_REQUIRED: 펀드 잔액
            LOCKED: 0
            ALLOW_NEGATIVE: None (제한 없음)
        """
        fund = await self.ledger.require_fund(fund_id)
        policy = self.policies.policy_for(fund.fund_type)
        if policy == TransferPolicy.LOCKED:
            return ZERO
        if policy == TransferPolicy.ALLOW_NEGATIVE:
            return None
        return await self.ledger.fund_balance(fund_id, as_of)

    async def ensure_available(
        self,
        fund_id: str,
        amount: Decimal,
        as_of: date | None = None,
        account_id: str | None = None,
    ) -> Fund:
        """출금 가능 여부 검증

        account_id를 주면 펀드 순자산 대신 해당 계정의 펀드 내 잔액으로 판단
        (예: 현금 지급 전 현금 잔액 확인).

        Raises:
            RestrictedFundError: 출금이 잠긴 펀드
            InsufficientFundBalanceError: 잔액 부족
        """
        fund = await self.ledger.require_fund(fund_id)
        policy = self.policies.policy_for(fund.fund_type)

        if policy == TransferPolicy.LOCKED:
            raise RestrictedFundError(
                f"Fund {fund_id} ({fund.fund_type}) does not allow outflows",
                fund_id=fund_id,
                fund_type=fund.fund_type,
                requested=amount,
            )
        if policy == TransferPolicy.BALANCE_REQUIRED:
            if account_id:
                available = await self.ledger.account_net_amount(account_id, as_of, fund_id)
            else:
                available = await self.ledger.fund_balance(fund_id, as_of)
            if available < amount:
                raise InsufficientFundBalanceError(
                    f"Fund {fund_id} balance {available} is less than {amount}",
                    fund_id=fund_id,
                    requested=amount,
                    available=available,
                    account_id=account_id,
                )
        return fund

    # =========================================================================
    # 이체 / 배분
    # =========================================================================

    async def transfer(
        self,
        from_fund_id: str,
        to_fund_id: str,
        amount: Decimal,
        principal: Principal,
        txn_date: date | None = None,
        description: str | None = None,
    ) -> LedgerTransaction:
        """펀드 간 이체

        청산 계정에 대해 입금 펀드 Debit / 출금 펀드 Credit 한 건의 거래로 전기.

        Raises:
            SameFundError: 출금 = 입금 펀드
            InvalidAmountError: 0 이하 금액
            RestrictedFundError / InsufficientFundBalanceError: 출금 정책 위반
        """
        if from_fund_id == to_fund_id:
            raise SameFundError(
                f"Cannot transfer within the same fund: {from_fund_id}",
                from_fund_id=from_fund_id,
                to_fund_id=to_fund_id,
            )
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountError(
                "Transfer amount must be positive",
                from_fund_id=from_fund_id,
                to_fund_id=to_fund_id,
                amount=amount,
            )
        txn_date = txn_date or date.today()

        async with self.ledger.db.transaction():
            await self.ensure_available(from_fund_id, amount, txn_date)

            txn = self.ledger.builder.fund_transfer(
                from_fund_id, to_fund_id, amount, txn_date, description
            )
            await self.ledger.post(txn, principal)
            await self.ledger.record_event(
                EventTypes.FUND_TRANSFERRED,
                EntityKind.TRANSACTION,
                txn.transaction_id,
                principal,
                {"from_fund_id": from_fund_id, "to_fund_id": to_fund_id, "amount": amount},
            )

        logger.info(
            "펀드 이체",
            extra={
                "from_fund_id": from_fund_id,
                "to_fund_id": to_fund_id,
                "amount": str(amount),
            },
        )
        return txn

    async def allocate(
        self,
        allocations: list[FundAllocation],
        principal: Principal,
        txn_date: date | None = None,
        description: str | None = None,
    ) -> LedgerTransaction:
        """N개 펀드 배분

        transfer의 일반화. 부호 적용 후 합계가 0이어야 함.

        Raises:
            UnbalancedAllocationError: 합계 ≠ 0 또는 라인 2개 미만
            InvalidAmountError: 0 금액 라인
        """
        amounts = [to_money(a.amount) for a in allocations]
        total = sum(amounts, ZERO)
        if len(allocations) < 2 or total != ZERO:
            raise UnbalancedAllocationError(
                f"Allocation amounts must sum to zero (got {total})",
                total=total,
                fund_ids=[a.fund_id for a in allocations],
            )
        for allocation, amount in zip(allocations, amounts):
            if amount == ZERO:
                raise InvalidAmountError(
                    "Allocation lines must be non-zero",
                    fund_id=allocation.fund_id,
                )
        txn_date = txn_date or date.today()
        clearing = self.ledger.config.interfund_clearing_account

        entries = []
        outflows: dict[str, Decimal] = {}
        for allocation, amount in zip(allocations, amounts):
            account_id = allocation.account_id or clearing
            if amount < 0:
                entries.append(
                    LedgerEntry.debit(account_id, allocation.fund_id, -amount, allocation.memo)
                )
            else:
                entries.append(
                    LedgerEntry.credit(account_id, allocation.fund_id, amount, allocation.memo)
                )
                outflows[allocation.fund_id] = outflows.get(allocation.fund_id, ZERO) + amount

        async with self.ledger.db.transaction():
            for fund_id, amount in outflows.items():
                await self.ensure_available(fund_id, amount, txn_date)

            txn = self.ledger.builder.journal(
                txn_date,
                entries,
                description=description or "Fund allocation",
                kind=TransactionKind.FUND_ALLOCATION.value,
            )
            await self.ledger.post(txn, principal)
            await self.ledger.record_event(
                EventTypes.FUND_ALLOCATED,
                EntityKind.TRANSACTION,
                txn.transaction_id,
                principal,
                {"allocations": [{"fund_id": a.fund_id, "amount": a.amount} for a in allocations]},
            )

        logger.info(
            "펀드 배분",
            extra={"transaction_id": txn.transaction_id, "lines": len(entries)},
        )
        return txn

    # =========================================================================
    # 보고서
    # =========================================================================

    async def balance_sheet(self, as_of: date | None = None) -> dict[str, dict[str, Decimal]]:
        """펀드별 대차대조표

        Returns:
            {fund_id: {"assets", "liabilities", "fund_balance"}}

        원장 버전(마지막 이벤트 seq)이 같으면 캐시 반환.
        """
        as_of = as_of or date.today()
        key = (as_of, await self.ledger.get_version())
        cached = self._balance_sheet_cache.get(key)
        if cached is not None:
            return cached

        rows = await self.ledger.fund_entry_rows(as_of=as_of)
        by_fund: dict[str, list[tuple[str, str, str]]] = {}
        for r in rows:
            by_fund.setdefault(r["fund_id"], []).append(
                (r["account_type"], r["debit_amount"], r["credit_amount"])
            )

        sheet: dict[str, dict[str, Decimal]] = {}
        for fund in await self.ledger.list_funds():
            assets, liabilities = net_assets(by_fund.get(fund.fund_id, []))
            sheet[fund.fund_id] = {
                "assets": assets,
                "liabilities": liabilities,
                "fund_balance": assets - liabilities,
            }

        # 이전 버전 캐시 정리
        self._balance_sheet_cache = {
            k: v for k, v in self._balance_sheet_cache.items() if k[1] == key[1]
        }
        self._balance_sheet_cache[key] = sheet
        return sheet

    async def fund_activity(
        self,
        fund_id: str,
        start_date: date,
        end_date: date,
    ) -> dict[str, Any]:
        """펀드 활동 내역 (기초 잔액, 유입, 유출, 기말 잔액)

        유입/유출은 거래별 순자산 변동의 부호로 구분.
        """
        await self.ledger.require_fund(fund_id)
        beginning = await self.ledger.fund_balance(fund_id, add_days(start_date, -1))

        rows = [
            r for r in await self.ledger.fund_entry_rows(fund_id, as_of=end_date)
            if r["txn_date"] >= start_date.isoformat()
        ]

        per_txn: dict[str, dict[str, Any]] = {}
        for r in rows:
            item = per_txn.setdefault(r["transaction_id"], {
                "transaction_id": r["transaction_id"],
                "txn_date": r["txn_date"],
                "kind": r["kind"],
                "rows": [],
            })
            item["rows"].append((r["account_type"], r["debit_amount"], r["credit_amount"]))

        inflows = ZERO
        outflows = ZERO
        transactions = []
        for item in per_txn.values():
            assets, liabilities = net_assets(item.pop("rows"))
            change = assets - liabilities
            if change > 0:
                inflows += change
            else:
                outflows += -change
            item["net_change"] = change
            transactions.append(item)

        return {
            "fund_id": fund_id,
            "start_date": start_date,
            "end_date": end_date,
            "beginning_balance": beginning,
            "inflows": inflows,
            "outflows": outflows,
            "ending_balance": beginning + inflows - outflows,
            "transactions": transactions,
        }

    async def restriction_report(self, as_of: date | None = None) -> list[dict[str, Any]]:
        """제한 펀드 현황 (유형, 정책, 제한 내용, 잔액)"""
        report = []
        for fund in await self.ledger.list_funds():
            policy = self.policies.policy_for(fund.fund_type)
            report.append({
                "fund_id": fund.fund_id,
                "name": fund.name,
                "fund_type": fund.fund_type,
                "transfer_policy": policy.value,
                "restriction_details": fund.restriction_details,
                "start_date": fund.start_date,
                "end_date": fund.end_date,
                "is_active": fund.is_active,
                "balance": await self.ledger.fund_balance(fund.fund_id, as_of),
            })
        return report
