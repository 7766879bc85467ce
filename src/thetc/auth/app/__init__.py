"""
Application Layer

Operational surroundings of the identity store. Nothing here defines a network protocol; the
consuming authentication service owns that.

Key Components:
- config.py: Configuration management using Pydantic settings
- database.py: Async engine, session factory and schema creation
- metrics.py: Metrics client abstraction (Telegraf/StatsD or no-op)
- cli.py: Logging configuration shared by entry points
- tasks.py: The expired session and token reaper loop
- util/: The thetc-auth-util administration command
"""
