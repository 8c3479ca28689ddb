'''
Asset Service: read-only view of the asset directory.
'''
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.engine import get_db_session
from ..database import models as db_models
from ..common.exceptions import ValidationError
from ..common.logger import log


class AssetService:
    """
    Resolves asset ids for the availability and booking services.
    Unknown assets are a client error, not a missing resource.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_asset(self, asset_id: UUID) -> db_models.SpaceAssets:
        asset = await self.db.get(db_models.SpaceAssets, asset_id)
        if asset is None:
            log.warning(f"Request referenced unknown asset {asset_id}.")
            raise ValidationError(f"Unknown asset '{asset_id}'.")
        return asset

    async def lock_asset_row(self, asset_id: UUID) -> db_models.SpaceAssets:
        """
        Re-reads the asset row with FOR UPDATE so concurrent writers in other
        processes queue behind this transaction. SQLite ignores the clause.
        """
        stmt = select(db_models.SpaceAssets).filter(
            db_models.SpaceAssets.id == asset_id
        ).with_for_update()
        result = await self.db.execute(stmt)
        asset = result.scalars().first()
        if asset is None:
            raise ValidationError(f"Unknown asset '{asset_id}'.")
        return asset
