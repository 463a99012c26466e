"""
==============================================================================
라우터 패키지 (routers/)
==============================================================================

화면(대시보드)과 스케줄러가 호출하는 얇은 HTTP 계층입니다.
실제 로직은 services/ 와 kis/ 에 있고, 여기서는 요청을 넘기고
KIS 오류를 HTTP 오류로 바꾸는 일만 합니다.

현재 구현된 라우터:
    - health.py: GET /health
    - stocks.py: 주식 API
        - GET /api/stock/{code}           -> 최근 개장일 시세
        - GET /api/stocks?codes=a,b,c     -> 여러 종목 일괄 조회
    - logs.py: 가격 로그 API
        - GET    /api/logs/{code}                      -> 최근 60일 로그
        - POST   /api/logs/{code}                      -> 조건 플래그 저장
        - DELETE /api/logs/{code}?date=YYYY-MM-DD      -> 날짜 로그 삭제
        - GET    /api/logs/fetch-today-prices?code=... -> 당일 누락 슬롯 보충
    - cron.py: GET /api/cron/log-prices -> 5분 간격 가격 기록

==============================================================================
"""
