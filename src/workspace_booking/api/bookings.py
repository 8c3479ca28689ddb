'''
API endpoints for reserving slots and managing bookings.
'''
from typing import Annotated, Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from ..database.db_enums import BookingStatusEnum
from ..models import booking as booking_models
from ..services.security import get_current_actor_id
from ..services.booking_service import BookingService


class BookingsAPI:
    """
    A class to encapsulate endpoints for Bookings.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/bookings",
            tags=["Bookings"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_bookings,
                methods=["GET"],
                response_model=List[booking_models.BookingRead])

        self.router.add_api_route(
                "/{booking_id}",
                self.get_booking,
                methods=["GET"],
                response_model=booking_models.BookingRead)

        self.router.add_api_route(
                "/",
                self.create_bookings,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=List[booking_models.BookingRead])

        self.router.add_api_route(
                "/{booking_id}/cancel",
                self.cancel_booking,
                methods=["POST"],
                response_model=booking_models.BookingRead)

        self.router.add_api_route(
                "/{booking_id}/status",
                self.update_booking_status,
                methods=["PATCH"],
                response_model=booking_models.BookingRead)

        self.router.add_api_route(
                "/{booking_id}/payment-status",
                self.update_payment_status,
                methods=["PATCH"],
                response_model=booking_models.BookingRead)

    async def list_bookings(
        self,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        booking_service: Annotated[BookingService, Depends(BookingService)],
        booking_status: Annotated[BookingStatusEnum | None, Query()] = None,
        asset_id: Annotated[UUID | None, Query()] = None
    ) -> List[Any]:
        return await booking_service.list_bookings_for_api(booking_status, asset_id)

    async def get_booking(
        self,
        booking_id: UUID,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.get_booking_for_api(booking_id)

    async def create_bookings(
        self,
        booking_data: booking_models.BookingCreate,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> List[Any]:
        """
        Reserves the requested slots. 409 means a slot was taken in the
        meantime: re-fetch availability and let the user choose again.
        """
        return await booking_service.reserve_many(
            booking_data.space_asset_id, booking_data.slots, booking_data, actor_id
        )

    async def cancel_booking(
        self,
        booking_id: UUID,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.cancel(booking_id, actor_id)

    async def update_booking_status(
        self,
        booking_id: UUID,
        status_data: booking_models.BookingStatusUpdate,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        return await booking_service.update_booking_status(booking_id, status_data.booking_status, actor_id)

    async def update_payment_status(
        self,
        booking_id: UUID,
        payment_data: booking_models.PaymentStatusUpdate,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        booking_service: Annotated[BookingService, Depends(BookingService)]
    ) -> Any:
        """
        Called by the payment collaborator when a payment settles, fails or is refunded.
        """
        return await booking_service.update_booking_payment_status(booking_id, payment_data.payment_status, actor_id)

# Instantiate the class and export its router
bookings_api = BookingsAPI()
router = bookings_api.router
