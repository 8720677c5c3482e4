"""
core/types.py 테스트

모든 Enum이 문자열 직렬화 가능하고, Principal이 올바르게 동작하는지 확인
"""

from dataclasses import FrozenInstanceError

import pytest

from core.types import (
    ActorKind,
    AdjustmentType,
    EntityKind,
    Frequency,
    Principal,
    TransferPolicy,
)


class TestEntityKind:
    """EntityKind 테스트"""

    def test_string_serialization(self) -> None:
        """문자열 직렬화 확인"""
        assert EntityKind.TRANSACTION.value == "TRANSACTION"
        assert f"{EntityKind.RECONCILIATION.value}" == "RECONCILIATION"

    def test_from_string(self) -> None:
        assert EntityKind("CREDIT") == EntityKind.CREDIT


class TestFrequency:
    """Frequency 테스트"""

    def test_all_frequencies(self) -> None:
        assert [f.value for f in Frequency] == [
            "DAILY", "WEEKLY", "BIWEEKLY", "MONTHLY", "QUARTERLY", "ANNUALLY", "CUSTOM",
        ]

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            Frequency("HOURLY")


class TestSmallEnums:
    """조정 유형 / 이체 정책 테스트"""

    def test_adjustment_type(self) -> None:
        # Enum은 문자열과 == 비교 가능 (str 상속)
        assert AdjustmentType.EXPENSE == "EXPENSE"
        assert AdjustmentType.REVENUE == "REVENUE"

    def test_transfer_policy(self) -> None:
        assert TransferPolicy("LOCKED") == TransferPolicy.LOCKED
        assert len(TransferPolicy) == 3


class TestPrincipal:
    """Principal 테스트"""

    def test_user(self) -> None:
        """사용자 Principal 생성"""
        principal = Principal.user("u-1", "CLERK")
        assert principal.user_id == "u-1"
        assert principal.role == "CLERK"
        assert principal.kind == ActorKind.USER.value

    def test_system(self) -> None:
        """시스템 Principal 생성"""
        principal = Principal.system("recurring-scheduler")
        assert principal.user_id == "system:recurring-scheduler"
        assert principal.role == "SYSTEM"
        assert principal.kind == ActorKind.SYSTEM.value

    def test_immutable(self) -> None:
        """불변성 확인"""
        principal = Principal.user("u-1", "CLERK")
        with pytest.raises(FrozenInstanceError):
            principal.role = "ADMIN"  # type: ignore[misc]

    def test_hashable(self) -> None:
        assert len({Principal.user("u-1", "CLERK"), Principal.user("u-1", "CLERK")}) == 1
