"""
Core 모듈
=========
검색 파이프라인 핵심 컴포넌트

모듈 구조:
- stt_corrections: 음성 인식 오인식 보정
- language_detector: 일본어/영어 감지와 응답 언어 결정
- query_classifier: 쿼리 → 카테고리 분류 (명확화 필요 여부 포함)
- clarification: 명확화 응답 생성
- context_resolver: 대화 메모리 기반 짧은 발화 보강
- circuit_breaker: 구현별 서킷 브레이커
- retrieval_pipeline: 검색 파이프라인 진입점

"""
