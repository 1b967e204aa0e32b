"""Real-time infrastructure — Redis channel bus + WebSocket groups.

Learn: Events flow through two paths:
1. Services → BroadcastService → sockets held by this process (immediate)
2. Services → Redis PUBLISH → every process (mirroring + notifications)

This decouples event producers (services) from consumers (WebSocket
clients, the notification worker) across processes.
"""
