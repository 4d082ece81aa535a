"""Real-time infrastructure: in-process notification hub + WebSocket.

Learn: Events flow through two channels:
1. Route handlers → NotificationHub → every matching open WebSocket (push)
2. events table → GET /api/updates → clients that fell back to polling

Fan-out is best-effort: a frame that can't be written is dropped, and a
client that misses it can always catch up through the updates feed.
"""
