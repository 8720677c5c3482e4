"""
Mock 지급 레일 테스트
"""

from decimal import Decimal

import pytest

from adapters.mock.payment_rail import MockPaymentRail
from finance.tuition.repository import ProviderPayment


class TestMockPaymentRail:
    """MockPaymentRail 테스트"""

    @pytest.mark.asyncio
    async def test_submit_success(
        self, mock_rail: MockPaymentRail, sample_payment: ProviderPayment
    ) -> None:
        """전송 성공 및 기록"""
        result = await mock_rail.submit(sample_payment)

        assert result.success
        assert result.reference_id is not None
        assert result.reference_id.startswith("rail-")
        assert len(mock_rail.submissions) == 1
        submission = mock_rail.submissions[0]
        assert submission.payment_id == "pp-sample"
        assert submission.provider_id == "provider-1"
        assert submission.amount == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_submit_failure(self, sample_payment: ProviderPayment) -> None:
        """실패 시나리오"""
        rail = MockPaymentRail(should_fail=True, failure_message="insufficient funds")

        result = await rail.submit(sample_payment)

        assert not result.success
        assert result.reference_id is None
        assert result.message == "insufficient funds"

    @pytest.mark.asyncio
    async def test_clear(
        self, mock_rail: MockPaymentRail, sample_payment: ProviderPayment
    ) -> None:
        await mock_rail.submit(sample_payment)
        mock_rail.clear()
        assert mock_rail.submissions == []
