"""
db/ - Database Layer
====================
Handles MySQL connections, the connection pool and the driver contract.
This layer is the lowest in the architecture and has no dependencies on other layers.
"""
