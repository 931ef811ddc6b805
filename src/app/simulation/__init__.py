"""Staff "view as student" simulation -- session manager, role scopes and write guard.

Provides SimulationService (start/end/status/listings/cleanup and the
best-effort tracking mutators), SimulationSessionRepository for the central
``simulation_sessions`` table, and SimulationWriteGuard, the request-time
check that keeps simulation credentials read-only.
"""
