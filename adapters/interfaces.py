"""
어댑터 인터페이스 정의

Protocol 기반으로 정의하여 의존성 주입 및 Mock 교체 가능.
모든 구현체는 이 Protocol을 준수해야 함.
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from adapters.models import RailResult
from core.types import Principal

if TYPE_CHECKING:
    from finance.tuition.repository import ProviderPayment


@runtime_checkable
class IPrincipalProvider(Protocol):
    """Principal/Role 제공자 인터페이스

    세션/토큰에서 사용자 ID와 역할을 조회.
    자격 증명 검증은 구현체 책임 (원장은 결과만 사용).
    """

    async def get_principal(self, token: str) -> Principal:
        """토큰에 해당하는 Principal 조회

        Args:
            token: 세션 토큰

        Returns:
            Principal (user_id, role)

        Raises:
            PermissionError: 알 수 없는 토큰
        """
        ...


@runtime_checkable
class IPaymentRail(Protocol):
    """지급 레일 인터페이스

    기관 지급을 외부 결제망에 전송. 결과만 반환하는 불투명 서비스.
    """

    async def submit(self, payment: "ProviderPayment") -> RailResult:
        """지급 전송

        Args:
            payment: 기관 지급

        Returns:
            RailResult (성공 여부, 참조 ID)
        """
        ...
