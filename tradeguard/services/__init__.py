"""Core services: fee policies, reconciliation engine, position lifecycle manager.

Import from the submodules directly:
    from tradeguard.services.reconciliation import ReconciliationEngine
    from tradeguard.services.position_manager import PositionLifecycleManager
"""
