'''
API endpoints for managing weekly recurrence rules.
'''
from typing import Annotated, Any, List
from uuid import UUID
from fastapi import APIRouter, Depends, Query, Response, status

from ..database.db_enums import SlotTypeEnum
from ..models import availability as availability_models
from ..services.security import get_current_actor_id
from ..services.schedule_service import ScheduleService


class SchedulesAPI:
    """
    A class to encapsulate CRUD endpoints for recurrence rules.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/schedules",
            tags=["Schedules"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/",
                self.list_rules,
                methods=["GET"],
                response_model=List[availability_models.RecurrenceRuleRead])

        self.router.add_api_route(
                "/{rule_id}",
                self.get_rule,
                methods=["GET"],
                response_model=availability_models.RecurrenceRuleRead)

        self.router.add_api_route(
                "/",
                self.set_rule,
                methods=["PUT"],
                response_model=availability_models.RecurrenceRuleRead)

        self.router.add_api_route(
                "/bulk",
                self.set_weekly_schedule,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=List[availability_models.RecurrenceRuleRead])

        self.router.add_api_route(
                "/{rule_id}",
                self.delete_rule,
                methods=["DELETE"],
                status_code=status.HTTP_204_NO_CONTENT)

    async def list_rules(
        self,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)],
        asset_id: Annotated[UUID | None, Query()] = None,
        day_of_week: Annotated[int | None, Query(ge=0, le=6)] = None,
        slot_type: Annotated[SlotTypeEnum | None, Query()] = None
    ) -> List[Any]:
        """
        Lists recurrence rules, optionally filtered by asset, weekday and slot type.
        """
        return await schedule_service.list_rules_for_api(asset_id, day_of_week, slot_type)

    async def get_rule(
        self,
        rule_id: UUID,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> Any:
        return await schedule_service.get_rule_for_api(rule_id)

    async def set_rule(
        self,
        rule_data: availability_models.RecurrenceRuleSet,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> Any:
        """
        Creates or replaces the rule for (asset_id, day_of_week, slot_type).
        """
        return await schedule_service.set_rule(
            rule_data.asset_id, rule_data.day_of_week, rule_data.slot_type, rule_data, actor_id
        )

    async def set_weekly_schedule(
        self,
        schedule_data: availability_models.WeeklyScheduleSet,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> List[Any]:
        """
        Saves several weekday rules of one asset in a single all-or-nothing call.
        """
        return await schedule_service.set_weekly_schedule(schedule_data.asset_id, schedule_data.schedules, actor_id)

    async def delete_rule(
        self,
        rule_id: UUID,
        actor_id: Annotated[UUID, Depends(get_current_actor_id)],
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ):
        await schedule_service.delete_rule(rule_id, actor_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

# Instantiate the class and export its router
schedules_api = SchedulesAPI()
router = schedules_api.router
