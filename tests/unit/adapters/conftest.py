"""
어댑터 테스트 픽스처

공통 테스트 설정 및 픽스처 제공.
"""

from datetime import date
from decimal import Decimal

import pytest

from adapters.mock.payment_rail import MockPaymentRail
from adapters.mock.principal_provider import MockPrincipalProvider
from finance.tuition.repository import ProviderPayment


@pytest.fixture
def sample_payment() -> ProviderPayment:
    """샘플 기관 지급"""
    return ProviderPayment(
        payment_id="pp-sample",
        provider_id="provider-1",
        fund_id="FUND:GENERAL",
        amount=Decimal("400.00"),
        payment_date=date(2025, 2, 1),
        status="PROCESSING",
        credit_ids=["credit-1"],
    )


@pytest.fixture
def mock_rail() -> MockPaymentRail:
    return MockPaymentRail()


@pytest.fixture
def mock_principals() -> MockPrincipalProvider:
    provider = MockPrincipalProvider()
    provider.register("tok-manager", "manager-1", "FINANCE_MANAGER")
    return provider
