"""
Human-in-the-loop support: interrupt records, user decisions and the
interrupt lifecycle manager.

Import from the submodules (trip_agents.hitl.schemas,
trip_agents.hitl.manager); the package itself stays import-free so the
persistence layer can depend on the schemas.
"""
