# campusdesk/core/dependencies.py
"""FastAPI providers for collaborators that tests swap out."""
from .database import AsyncBackgroundSessionLocal
from ..services.identity_service import IdentityProviderClient
from ..services.roll_number_service import RollNumberRecalculator


def get_roll_number_recalculator() -> RollNumberRecalculator:
    return RollNumberRecalculator(AsyncBackgroundSessionLocal)


def get_identity_client() -> IdentityProviderClient:
    return IdentityProviderClient()
