from sqlmodel import Session
from accountsync.core.database import engine
from typing import Generator
from fastapi import Depends, HTTPException, Request

from accountsync.models import Host
from accountsync.remote.executor import CommandExecutor
from accountsync.services import InventoryService, SessionManager, UserReconciler, GroupReconciler

def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session

def get_inventory_service(db: Session = Depends(get_db)) -> InventoryService:
    return InventoryService(db)

def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager

def get_host(host_id: int, inventory: InventoryService = Depends(get_inventory_service)) -> Host:
    host = inventory.get_host(host_id)
    if not host:
        raise HTTPException(status_code=404, detail=f"Host {host_id} not found in inventory")
    return host

async def get_executor(
    host: Host = Depends(get_host),
    manager: SessionManager = Depends(get_session_manager),
) -> CommandExecutor:
    return await manager.executor_for(host)

def get_user_reconciler(executor: CommandExecutor = Depends(get_executor)) -> UserReconciler:
    return UserReconciler(executor)

def get_group_reconciler(executor: CommandExecutor = Depends(get_executor)) -> GroupReconciler:
    return GroupReconciler(executor)
