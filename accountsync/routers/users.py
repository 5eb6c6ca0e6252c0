from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from accountsync.core.security import get_current_caller
from accountsync.dependencies import get_user_reconciler
from accountsync.schemas.account import UserCreated, UserRecord, UserSpec
from accountsync.services import UserReconciler

router = APIRouter(prefix="/api/hosts/{host_id}/users", tags=["users"], dependencies=[Depends(get_current_caller)])

@router.post("", response_model=UserCreated, status_code=201)
async def create_user(
    desired: UserSpec,
    reconciler: UserReconciler = Depends(get_user_reconciler),
) -> UserCreated:
    """Creates a user account on the host.

    Args:
        desired: Desired account state. uid/gid of 0 are chosen by the host.
        reconciler: User reconciler bound to the host's SSH session.

    Returns:
        The uid to persist as the identifier, and the observed record.
    """
    ident, record = await reconciler.create(desired)
    return UserCreated(id=ident, record=record)

@router.get("/{ident}", response_model=UserRecord)
async def read_user(ident: str, reconciler: UserReconciler = Depends(get_user_reconciler)):
    """Observed state of the user with uid ``ident``.

    A 404 with ``absent`` set tells the caller to drop its record.
    """
    record = await reconciler.read(ident)
    if record is None:
        return JSONResponse(status_code=404, content={"absent": True, "id": ident})
    return record

@router.put("/{ident}", response_model=UserRecord)
async def update_user(
    ident: str,
    desired: UserSpec,
    reconciler: UserReconciler = Depends(get_user_reconciler),
) -> UserRecord:
    return await reconciler.update(ident, desired)

@router.delete("/{ident}", status_code=204)
async def delete_user(ident: str, reconciler: UserReconciler = Depends(get_user_reconciler)) -> Response:
    await reconciler.delete(ident)
    return Response(status_code=204)
