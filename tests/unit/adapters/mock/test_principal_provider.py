"""
Mock Principal 제공자 테스트
"""

import pytest

from adapters.mock.principal_provider import MockPrincipalProvider
from core.types import Principal


class TestMockPrincipalProvider:
    """MockPrincipalProvider 테스트"""

    @pytest.mark.asyncio
    async def test_registered_token(self, mock_principals: MockPrincipalProvider) -> None:
        principal = await mock_principals.get_principal("tok-manager")

        assert principal == Principal.user("manager-1", "FINANCE_MANAGER")
        assert mock_principals.lookups == ["tok-manager"]

    @pytest.mark.asyncio
    async def test_unknown_token(self, mock_principals: MockPrincipalProvider) -> None:
        """알 수 없는 토큰은 PermissionError"""
        with pytest.raises(PermissionError):
            await mock_principals.get_principal("tok-unknown")

    @pytest.mark.asyncio
    async def test_initial_mapping(self) -> None:
        provider = MockPrincipalProvider({"t": Principal.user("u", "ADMIN")})
        assert (await provider.get_principal("t")).role == "ADMIN"
