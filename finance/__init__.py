"""
업무 모듈

원장(core.ledger) 위에서 동작하는 펀드 회계, 정기 문서 생성,
수업료 크레딧, 은행 대사 서비스.
"""
