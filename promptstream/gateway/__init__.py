"""Streaming LLM Gateway Layer.

Provides async infrastructure for streaming prompts to LLM vendors with:
  - Vendor-Specific Adapters (OpenAI, Anthropic, Gemini wire formats)
  - Incremental SSE Stream Processor
  - Schema Validation for frames and configs
  - Request Manager with cooperative cancellation
  - Per-vendor Rate Limiter (exponential backoff)
"""
