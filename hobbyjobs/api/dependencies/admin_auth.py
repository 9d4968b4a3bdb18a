"""
אימות X-Admin-API-Key עבור ה-router של /api/admin/batch.

שימוש (hobbyjobs/api/routes/admin_batch.py):
    @router.post("/rgpd-cleanup", status_code=status.HTTP_202_ACCEPTED)
    async def trigger_rgpd_cleanup(
        _: None = Depends(require_admin_api_key),
    ) -> JobTriggerResponse:
        return _enqueue(run_rgpd_cleanup, RGPD_JOB_NAME)

    @router.get("/runs")
    async def list_runs(
        _: None = Depends(require_admin_api_key),
        db: AsyncSession = Depends(get_db),
    ) -> list[RunAuditResponse]:
        ...
"""
import hmac

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from hobbyjobs.core.config import settings
from hobbyjobs.core.logging import get_logger

logger = get_logger(__name__)

ADMIN_KEY_HEADER = "X-Admin-API-Key"

_api_key_header = APIKeyHeader(name=ADMIN_KEY_HEADER, auto_error=False)


def _reject(request: Request, status_code: int, reason: str) -> HTTPException:
    # הערך של המפתח עצמו לא נרשם ללוג
    logger.warning(
        "Admin batch request rejected",
        extra_data={"path": request.url.path, "reason": reason},
    )
    return HTTPException(status_code=status_code, detail=reason)


async def require_admin_api_key(
    request: Request,
    api_key: str | None = Depends(_api_key_header),
) -> None:
    """
    401 כשהכותרת חסרה, 403 כשהמפתח שגוי.
    ADMIN_API_KEY ריק בסביבה חוסם את כל ה-endpoints (403), גם הפעלה ידנית של jobs.
    """
    configured_key = settings.ADMIN_API_KEY
    if not configured_key:
        raise _reject(request, status.HTTP_403_FORBIDDEN, "ADMIN_API_KEY is not configured")
    if not api_key:
        raise _reject(
            request, status.HTTP_401_UNAUTHORIZED, f"Missing API key: {ADMIN_KEY_HEADER} header is required"
        )
    if not hmac.compare_digest(api_key.encode(), configured_key.encode()):
        raise _reject(request, status.HTTP_403_FORBIDDEN, "Invalid API key")
