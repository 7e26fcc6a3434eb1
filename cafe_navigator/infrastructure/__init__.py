"""
Infrastructure Layer
====================
외부 시스템 어댑터와 조립

- config: 환경변수 기반 AppConfig
- feature_flags: 롤아웃 플래그
- persistence: Supabase / 인메모리 저장소
- container: 의존성 주입 컨테이너
"""
