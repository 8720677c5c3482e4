"""
Mock Principal 제공자

테스트용 Mock Principal Provider.
IPrincipalProvider Protocol 준수.
"""

from core.types import Principal


class MockPrincipalProvider:
    """Mock Principal 제공자

    IPrincipalProvider Protocol 구현.
    등록된 토큰 → Principal 매핑으로 조회.

    사용 예시:
    ```python
    provider = MockPrincipalProvider()
    provider.register("tok-1", "alice", "FINANCE_MANAGER")

    principal = await provider.get_principal("tok-1")
    assert principal.role == "FINANCE_MANAGER"
    ```
    """

    def __init__(self, principals: dict[str, Principal] | None = None):
        self._principals: dict[str, Principal] = dict(principals or {})
        self.lookups: list[str] = []

    def register(self, token: str, user_id: str, role: str) -> Principal:
        """토큰 등록"""
        principal = Principal.user(user_id, role)
        self._principals[token] = principal
        return principal

    async def get_principal(self, token: str) -> Principal:
        """토큰에 해당하는 Principal 조회"""
        self.lookups.append(token)
        principal = self._principals.get(token)
        if principal is None:
            raise PermissionError(f"Unknown token: {token}")
        return principal
