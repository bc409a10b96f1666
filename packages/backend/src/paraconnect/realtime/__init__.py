"""Real-time infrastructure — broadcasters, SSE streams, Redis relay.

Learn: Events flow through three hops:
1. Handlers → hub.publish() (optionally via Redis to every worker)
2. Broadcaster → every SSEConnection registered for the case/user
3. SSEConnection → StreamingResponse → EventSource in the browser

This decouples event producers (case, message and upload handlers) from
consumers (whoever has the case open right now).
"""
