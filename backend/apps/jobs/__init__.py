"""
Durable ingestion job queue.

Provides:
- Redis-backed at-least-once job queue with status polling
- Job progress events pushed to WebSocket clients
"""
