"""
Application Layer

Contains the queue engine, the broadcast hub and the services around them.

Structure:
- services/: Queue engine, broadcast hub, statistics and ingestion
- interfaces/: Port interfaces for infrastructure adapters
- protocol: The push-channel message set
"""
