from .inventory import Cylinder, CylinderMovement

__all__ = [
    'Cylinder', 'CylinderMovement',
]
