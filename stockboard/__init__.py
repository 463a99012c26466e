"""
KIS Open API 시세 조회 + 접근토큰 캐시 + 장초반 가격 로그 서비스
"""

__version__ = "0.1.0"
