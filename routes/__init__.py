# Routes Module
from routes.esewa import esewa_bp

__all__ = [
    'esewa_bp',
]
