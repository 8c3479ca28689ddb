'''
API endpoints for date-level unavailability exceptions.
'''
from typing import Annotated, Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, Response, status

from ..models import availability as availability_models
from ..services.security import get_current_actor_id
from ..services.schedule_service import ScheduleService


class UnavailabilityAPI:
    """
    A class to encapsulate endpoints for blocking and unblocking dates.
    """
    def __init__(self):
        self.router = APIRouter(tags=["Unavailability"])
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/assets/{asset_id}/unavailability-dates",
                self.list_exceptions,
                methods=["GET"],
                response_model=List[availability_models.UnavailabilityRead])

        self.router.add_api_route(
                "/assets/{asset_id}/unavailability-dates",
                self.create_exception,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=availability_models.UnavailabilityRead)

        self.router.add_api_route(
                "/unavailability-dates/{exception_id}",
                self.delete_exception,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)

    async def list_exceptions(
        self,
        asset_id: UUID,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> List[Any]:
        return await schedule_service.list_exceptions_for_api(asset_id)

    async def create_exception(
        self,
        asset_id: UUID,
        exception_data: availability_models.UnavailabilityCreate,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> Any:
        """
        Marks the asset unavailable for a whole date. Returns 409 if the date is already blocked.
        """
        return await schedule_service.set_exception(
            asset_id, exception_data.date, exception_data.description, actor_id
        )

    async def delete_exception(
        self,
        exception_id: UUID,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ):
        await schedule_service.remove_exception(exception_id, actor_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

# Instantiate the class and export its router
unavailability_api = UnavailabilityAPI()
router = unavailability_api.router
