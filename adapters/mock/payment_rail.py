"""
Mock 지급 레일

테스트용 Mock Payment Rail.
IPaymentRail Protocol 준수.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import uuid4

from adapters.models import RailResult

if TYPE_CHECKING:
    from finance.tuition.repository import ProviderPayment


@dataclass
class RailSubmission:
    """전송 기록"""

    payment_id: str
    provider_id: str
    amount: Decimal
    timestamp: datetime
    result: RailResult


class MockPaymentRail:
    """Mock 지급 레일

    IPaymentRail Protocol 구현.
    모든 전송을 기록하여 테스트에서 검증 가능.

    사용 예시:
    ```python
    rail = MockPaymentRail()
    result = await rail.submit(payment)
    assert result.success
    assert rail.submissions[0].payment_id == payment.payment_id

    failing = MockPaymentRail(should_fail=True)
    ```
    """

    def __init__(self, should_fail: bool = False, failure_message: str = "Rail rejected payment"):
        """
        Args:
            should_fail: True면 모든 전송 실패 (에러 시나리오 테스트용)
            failure_message: 실패 시 메시지
        """
        self.should_fail = should_fail
        self.failure_message = failure_message
        self.submissions: list[RailSubmission] = []

    async def submit(self, payment: "ProviderPayment") -> RailResult:
        """지급 전송"""
        if self.should_fail:
            result = RailResult(success=False, message=self.failure_message)
        else:
            result = RailResult(success=True, reference_id=f"rail-{uuid4().hex[:10]}")

        self.submissions.append(
            RailSubmission(
                payment_id=payment.payment_id,
                provider_id=payment.provider_id,
                amount=payment.amount,
                timestamp=datetime.now(timezone.utc),
                result=result,
            )
        )
        return result

    def clear(self) -> None:
        """기록 초기화"""
        self.submissions.clear()
