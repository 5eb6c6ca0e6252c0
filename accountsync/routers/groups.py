from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from accountsync.core.security import get_current_caller
from accountsync.dependencies import get_group_reconciler
from accountsync.schemas.account import GroupCreated, GroupRecord, GroupSpec
from accountsync.services import GroupReconciler

router = APIRouter(prefix="/api/hosts/{host_id}/groups", tags=["groups"], dependencies=[Depends(get_current_caller)])

@router.post("", response_model=GroupCreated, status_code=201)
async def create_group(
    desired: GroupSpec,
    reconciler: GroupReconciler = Depends(get_group_reconciler),
) -> GroupCreated:
    ident, record = await reconciler.create(desired)
    return GroupCreated(id=ident, record=record)

@router.get("/{ident}", response_model=GroupRecord)
async def read_group(ident: str, reconciler: GroupReconciler = Depends(get_group_reconciler)):
    record = await reconciler.read(ident)
    if record is None:
        return JSONResponse(status_code=404, content={"absent": True, "id": ident})
    return record

@router.put("/{ident}", response_model=GroupRecord)
async def update_group(
    ident: str,
    desired: GroupSpec,
    reconciler: GroupReconciler = Depends(get_group_reconciler),
) -> GroupRecord:
    """Renames the group and/or moves it to a new gid.

    When the gid changes, the returned record's gid is the new identifier.
    """
    return await reconciler.update(ident, desired)

@router.delete("/{ident}", status_code=204)
async def delete_group(ident: str, reconciler: GroupReconciler = Depends(get_group_reconciler)) -> Response:
    await reconciler.delete(ident)
    return Response(status_code=204)
