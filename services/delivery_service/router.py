from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import DELIVERY_BOY, Principal, require_role
from .schemas import (
    AgentProfile, AgentProfileResponse, AgentProfileUpdate, AssignmentResponse, DeliveryOrder,
    DeliveryOrderRequest, DeliveryOrdersResponse, EarningsResponse, MessageResponse,
)
from .service import DeliveryService

# Every delivery route acts on the caller's own agent record
router = APIRouter()
public_router = APIRouter()

agent_only = require_role(DELIVERY_BOY)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "delivery", "status": "running"}


@router.get("/getOrders", response_model=DeliveryOrdersResponse)
async def get_orders(principal: Principal = Depends(agent_only), db: AsyncSession = Depends(get_db)):
    orders = await DeliveryService.get_open_orders(db, principal.user_id)
    return DeliveryOrdersResponse(
        message="Orders fetched successfully" if orders else "Currently no orders found",
        totalOrders=len(orders),
        orders=[DeliveryOrder.from_order(order) for order in orders],
    )


@router.post("/acceptOrder", response_model=MessageResponse)
async def accept_order(
    payload: DeliveryOrderRequest,
    principal: Principal = Depends(agent_only),
    db: AsyncSession = Depends(get_db),
):
    await DeliveryService.accept_order(db, principal.user_id, payload.order_id)
    return MessageResponse(message="Order accepted successfully")


@router.post("/completeOrder", response_model=MessageResponse)
async def complete_order(
    payload: DeliveryOrderRequest,
    principal: Principal = Depends(agent_only),
    db: AsyncSession = Depends(get_db),
):
    await DeliveryService.complete_order(db, principal.user_id, payload.order_id)
    return MessageResponse(message="Order completed successfully")


@router.post("/releaseOrder", response_model=MessageResponse)
async def release_order(
    payload: DeliveryOrderRequest,
    principal: Principal = Depends(agent_only),
    db: AsyncSession = Depends(get_db),
):
    await DeliveryService.release_order(db, principal.user_id, payload.order_id)
    return MessageResponse(message="Order released successfully")


@router.get("/getActiveOrders", response_model=DeliveryOrdersResponse)
async def get_active_orders(principal: Principal = Depends(agent_only), db: AsyncSession = Depends(get_db)):
    orders = await DeliveryService.get_active_orders(db, principal.user_id)
    return DeliveryOrdersResponse(
        message="Active orders fetched successfully",
        totalOrders=len(orders),
        orders=[DeliveryOrder.from_order(order) for order in orders],
    )


@router.get("/getEarnings", response_model=EarningsResponse)
async def get_earnings(principal: Principal = Depends(agent_only), db: AsyncSession = Depends(get_db)):
    agent, assignments = await DeliveryService.get_earnings(db, principal.user_id)
    return EarningsResponse(
        total_earnings=float(agent.total_earnings or 0),
        total_deliveries=agent.total_deliveries or 0,
        data=[AssignmentResponse.model_validate(a) for a in assignments],
    )


@router.get("/getProfile", response_model=AgentProfileResponse)
async def get_profile(principal: Principal = Depends(agent_only), db: AsyncSession = Depends(get_db)):
    agent = await DeliveryService.get_agent(db, principal.user_id)
    return AgentProfileResponse(data=AgentProfile.model_validate(agent))


@router.patch("/updateProfile", response_model=AgentProfileResponse)
async def update_profile(
    payload: AgentProfileUpdate,
    principal: Principal = Depends(agent_only),
    db: AsyncSession = Depends(get_db),
):
    agent = await DeliveryService.update_profile(db, principal.user_id, payload)
    return AgentProfileResponse(message="Profile updated successfully", data=AgentProfile.model_validate(agent))
