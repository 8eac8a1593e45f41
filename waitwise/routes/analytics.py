from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..services.analytics_service import AnalyticsService, get_analytics_service

router = APIRouter(prefix="/analytics", tags=["Analytics"])


class AnalyticsRequest(BaseModel):
    shop_id: Optional[str] = None
    startDate: Optional[str] = None
    endDate: Optional[str] = None


class BarberRevenue(BaseModel):
    name: str
    revenue: float


class BarberClients(BaseModel):
    name: str
    clients: int


class AnalyticsResponse(BaseModel):
    totalRevenue: float
    totalCustomers: int
    noShowRate: float
    barberRevenueData: list[BarberRevenue]
    barberClientData: list[BarberClients]


@router.post("", response_model=AnalyticsResponse)
async def get_analytics(
    body: AnalyticsRequest,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Revenue, customer count and no-show rate for a date range"""
    return service.get_analytics(body.shop_id, body.startDate, body.endDate)
