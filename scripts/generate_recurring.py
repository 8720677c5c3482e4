"""
정기 청구서/송장 생성 (외부 스케줄러 진입점)

as_of 일자까지 생성 대상인 템플릿을 조회하여 템플릿별로 문서를 생성.
같은 일자를 다시 실행해도 중복 생성되지 않음.

사용법:
    python -m scripts.generate_recurring
    python -m scripts.generate_recurring --as-of 2025-02-28
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.config.loader import get_settings
from core.logging import setup_logging
from core.types import Principal
from finance.bootstrap import open_services

logger = logging.getLogger(__name__)


async def main(as_of: date, config_path: Path | None) -> int:
    """생성 실행

    Returns:
        실패한 템플릿 수 (프로세스 종료 코드)
    """
    settings = get_settings(config_path)
    principal = Principal.system("recurring-scheduler")

    async with open_services(settings.app) as services:
        due = await services.recurring.due_templates(as_of)
        logger.info(f"생성 대상 템플릿: {len(due)}개 (기준일 {as_of})")

        result = await services.recurring.run_due(principal, as_of)

    logger.info(
        "정기 문서 생성 종료",
        extra={"generated": len(result["generated"]), "failed": len(result["failed"])},
    )
    for template_id in result["failed"]:
        logger.warning(f"생성 실패 템플릿: {template_id}")
    return len(result["failed"])


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="정기 청구서/송장 생성")
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="기준일 YYYY-MM-DD (기본: 오늘)",
    )
    parser.add_argument("--config", type=Path, default=None, help="settings.yaml 경로")
    args = parser.parse_args()

    setup_logging("recurring", console_level=get_settings(args.config).app.log_level)
    sys.exit(asyncio.run(main(args.as_of or date.today(), args.config)))
