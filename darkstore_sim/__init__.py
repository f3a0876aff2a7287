# darkstore-sim/darkstore_sim/__init__.py

from .models import (
    Agent,
    AgentStatus,
    DemandProfile,
    HotspotZone,
    Order,
    OrderStatus,
    RouteZone,
    RunStatistics,
    SectorZone,
    UniformZone,
)
from .config import SimulationParameters
from .city import CITY_POLYGON, DEFAULT_HUB, SECTORS
from .engine import SimulationWorld, step
from .simulation import InteractiveSimulation, SimulationStatus
from .optimizer import (
    OptimizationConfig,
    Recommendation,
    WorkforceOptimizer,
    select_recommendation,
)
from .dispatch import estimate_eta
from .demand import load_profiles, sample_order_location

__version__ = "1.0.0"

__all__ = [
    # Models
    "Agent",
    "AgentStatus",
    "Order",
    "OrderStatus",
    "DemandProfile",
    "UniformZone",
    "HotspotZone",
    "SectorZone",
    "RouteZone",
    "RunStatistics",
    # Core
    "SimulationWorld",
    "InteractiveSimulation",
    "SimulationStatus",
    "WorkforceOptimizer",
    "OptimizationConfig",
    "Recommendation",
    # Functions
    "step",
    "estimate_eta",
    "sample_order_location",
    "load_profiles",
    "select_recommendation",
    # Config
    "SimulationParameters",
    "CITY_POLYGON",
    "DEFAULT_HUB",
    "SECTORS",
]
