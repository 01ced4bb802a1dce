from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from cafe_api.api.dependencies import get_migrator
from cafe_api.core.errors import StorageAppError
from cafe_api.core.identity import UNKNOWN_ADDRESS, CallerContext, require_user
from cafe_api.schemas.migration import MigrationResponse
from cafe_api.services.migration import AnonymousDataMigrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["User"])


@router.post("/migrate-anonymous-data", response_model=MigrationResponse)
async def migrate_anonymous_data(
    caller: Annotated[CallerContext, Depends(require_user)],
    migrator: Annotated[AnonymousDataMigrator, Depends(get_migrator)],
) -> MigrationResponse:
    """Merge the caller's pre-login interactions and quota into their account.

    Requires a bearer token. Callers whose address could not be determined
    have nothing to migrate (that identity is shared by every such client).
    """
    if caller.client_ip == UNKNOWN_ADDRESS:
        logger.info("migration.skipped_unknown_address")
        return MigrationResponse(migrated_count=0)

    result = await migrator.migrate(caller.ip_hash, caller.user.sub)

    errors = list(result.errors)
    try:
        merged = await migrator.merge_rate_limit_data(caller.client_ip, caller.user.sub)
    except StorageAppError as exc:
        logger.warning("migration.rate_limit_merge_failed", extra={"error_code": exc.code})
        errors.append("Failed to merge rate limit data")
        merged = False

    return MigrationResponse(
        migrated_count=result.migrated_count,
        errors=errors,
        already_migrated=result.already_migrated,
        rate_limit_merged=merged,
    )
