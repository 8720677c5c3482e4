"""
어댑터 레이어

외부 협력자(DB, Principal 제공자, 은행 명세서, 지급 레일)와의 연동을 담당.
Protocol 기반 인터페이스로 Mock 교체 가능.
"""

from adapters.interfaces import (
    IPaymentRail,
    IPrincipalProvider,
)
from adapters.models import (
    RailResult,
    StatementLine,
)

__all__ = [
    # Interfaces
    "IPaymentRail",
    "IPrincipalProvider",
    # Models
    "RailResult",
    "StatementLine",
]
