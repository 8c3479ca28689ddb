'''
API endpoints for resolving an asset's bookable slots.
'''
from datetime import date
from typing import Annotated, Any
from uuid import UUID
from fastapi import APIRouter, Depends, Query

from ..models import availability as availability_models
from ..services.availability_service import AvailabilityService


class AvailabilityAPI:
    """
    A class to encapsulate the read-only availability endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/assets",
            tags=["Availability"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
            "/{asset_id}/availability",
            self.get_day_availability,
            methods=["GET"],
            response_model=availability_models.DayAvailability)

        self.router.add_api_route(
            "/{asset_id}/availability/range",
            self.get_range_availability,
            methods=["GET"],
            response_model=list[availability_models.DayAvailability])

    async def get_day_availability(
        self,
        asset_id: UUID,
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        target_date: Annotated[date, Query(alias="date", description="Calendar date, YYYY-MM-DD")]
    ) -> Any:
        """
        Returns the asset's slots on one date, each marked available or booked.
        """
        return await availability_service.get_day_availability_for_api(asset_id, target_date)

    async def get_range_availability(
        self,
        asset_id: UUID,
        availability_service: Annotated[AvailabilityService, Depends(AvailabilityService)],
        from_date: Annotated[date, Query()],
        to_date: Annotated[date, Query()]
    ) -> list[Any]:
        """
        Returns one day of slots per date in [from_date, to_date].
        """
        return await availability_service.get_range_availability_for_api(asset_id, from_date, to_date)

# Instantiate the class and export its router
availability_api = AvailabilityAPI()
router = availability_api.router
