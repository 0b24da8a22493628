from .scope import OrderFilters, ProjectionFilters
from .vendor_service import VendorService
from .otd_service import OTDService
from .risk_service import RiskService
from .projection_service import ProjectionService
from .task_service import TaskService

__all__ = [
    'OrderFilters',
    'ProjectionFilters',
    'VendorService',
    'OTDService',
    'RiskService',
    'ProjectionService',
    'TaskService'
]
