"""Legal question-answering service for Massachusetts criminal law: the query
pipeline, the retrieval engine, and the document ingestion queue.

Submodules overview:
- main: FastAPI application bootstrap and thin HTTP handlers.
- pipeline: End-to-end query orchestration (gate, retrieval, rerank, answer).
- router: Fail-closed LLM classification gate and the canned refusal.
- retrieval: Vector and lexical channels run concurrently, then fused.
- fusion: Reciprocal Rank Fusion and the transient candidate types.
- reranker: Best-effort listwise LLM rerank with fallback to input order.
- generation: Grounded answer generation, sources and confidence.
- embedding: Embedding client for the external model service.
- jobs: Processing job queue (atomic claim, complete, fail, cleanup).
- ingestion: Chunking and the ingestion worker/CLI.
- query_log: Append-only audit log written as a side channel.
- parsing: Tagged Ok/ParseError results for LLM output.
- config: Application settings and environment variable loading.
- db: Database engine/session management helpers.
- models: ORM models.
- schemas: Pydantic request/response models for API contracts.
- cache: Redis answer cache.
- obs: Logging setup and tracing (Langfuse, OpenTelemetry).
- errors: Exception hierarchy.
"""
