"""
어댑터 인터페이스 테스트

Mock 구현체가 Protocol을 준수하는지 확인
"""

from adapters.interfaces import IPaymentRail, IPrincipalProvider
from adapters.mock import MockPaymentRail, MockPrincipalProvider


class TestProtocolCompliance:
    """Protocol 준수 테스트"""

    def test_payment_rail(self) -> None:
        assert isinstance(MockPaymentRail(), IPaymentRail)

    def test_principal_provider(self) -> None:
        assert isinstance(MockPrincipalProvider(), IPrincipalProvider)

    def test_non_compliant(self) -> None:
        """submit 메서드가 없는 객체는 준수하지 않음"""
        assert not isinstance(object(), IPaymentRail)
        assert not isinstance(object(), IPrincipalProvider)
