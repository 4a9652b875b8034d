"""
db/ - Database Layer
====================
Handles PostgreSQL connections, schema initialization and LISTEN/NOTIFY
subscriptions. This layer is the lowest in the architecture.
"""
