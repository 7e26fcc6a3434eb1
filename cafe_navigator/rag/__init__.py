"""
RAG 모듈
========
임베딩, 벡터 검색, 재정렬, 컨텍스트 조립

- embedding_cache / embedding_provider: LiteLLM 임베딩 + 캐시
- knowledge_retriever: 가속 경로 / 전수 스캔 / 다국어 검색
- priority_scorer: 엔티티 우선순위 재정렬
- context_builder: 응답용 컨텍스트 문자열
- implementation_router: v1/v2 A/B 라우팅
"""
