from slotting.services.audit import AuditEntry, RepartitionAuditLog
from slotting.services.base import BaseService
from slotting.services.level_config_store import LevelConfigStore
from slotting.services.move_executor import MoveExecutor
from slotting.services.occupancy_analyzer import OccupancyAnalyzer
from slotting.services.orchestrator import OrchestratorState, RepartitionOrchestrator
from slotting.services.placement_validator import PlacementValidator
from slotting.services.repartition_planner import RepartitionPlanner
from slotting.services.stock_validator import StockValidator

__all__ = [
    "AuditEntry",
    "BaseService",
    "LevelConfigStore",
    "MoveExecutor",
    "OccupancyAnalyzer",
    "OrchestratorState",
    "PlacementValidator",
    "RepartitionAuditLog",
    "RepartitionOrchestrator",
    "RepartitionPlanner",
    "StockValidator",
]
