from fastapi import APIRouter, Depends, HTTPException, Response
from typing import List

from accountsync.core.security import get_current_caller
from accountsync.dependencies import get_inventory_service, get_session_manager, get_host
from accountsync.models import Host
from accountsync.schemas.host import HostCreate, HostRead, HostStatus
from accountsync.services import InventoryService, SessionManager

router = APIRouter(prefix="/api/hosts", tags=["hosts"], dependencies=[Depends(get_current_caller)])

@router.get("", response_model=List[HostRead])
def list_hosts(inventory: InventoryService = Depends(get_inventory_service)) -> List[HostRead]:
    return [InventoryService.to_read(h) for h in inventory.list_hosts()]

@router.post("", response_model=HostRead, status_code=201)
def create_host(
    data: HostCreate,
    inventory: InventoryService = Depends(get_inventory_service),
) -> HostRead:
    """Registers a host whose accounts will be managed.

    Args:
        data: Connection configuration. A password, if given, is used
            exclusively; otherwise the key file and the local agent are tried.
        inventory: Inventory service.

    Returns:
        The stored host, without its secret.
    """
    if inventory.get_host_by_alias(data.alias):
        raise HTTPException(status_code=409, detail=f"Host alias {data.alias} already registered")
    return InventoryService.to_read(inventory.create_host(data))

@router.get("/{host_id}", response_model=HostRead)
def read_host(host: Host = Depends(get_host)) -> HostRead:
    return InventoryService.to_read(host)

@router.delete("/{host_id}", status_code=204)
async def delete_host(
    host_id: int,
    inventory: InventoryService = Depends(get_inventory_service),
    manager: SessionManager = Depends(get_session_manager),
) -> Response:
    """Removes a host from the inventory and closes its SSH session."""
    if not inventory.delete_host(host_id):
        raise HTTPException(status_code=404, detail=f"Host {host_id} not found in inventory")
    await manager.evict(host_id)
    return Response(status_code=204)

@router.get("/{host_id}/status", response_model=HostStatus)
async def host_status(host: Host = Depends(get_host)) -> HostStatus:
    """TCP reachability of the host's SSH port, without authenticating."""
    online, latency, banner = await InventoryService.probe(host)
    return HostStatus(id=host.id, online=online, latency_ms=latency, banner=banner)
