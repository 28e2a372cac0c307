from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import OrderStatus, PaymentMethod, PaymentStatus


class ShippingAddress(BaseModel):
    name: str = Field(min_length=1)
    email: Optional[EmailStr] = None
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    pincode: str = Field(min_length=1)
    landmark: Optional[str] = None


class OrderItemCreate(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0, strict=True)


class OrderCreate(BaseModel):
    items: List[OrderItemCreate] = Field(min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    order_notes: Optional[str] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: str
    product_name: str
    quantity: int
    price: Decimal


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    total_amount: Decimal
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    shipping_address: Dict[str, Any]
    order_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    tracking_number: Optional[str] = None
    instamojo_payment_request_id: Optional[str] = None
    instamojo_payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []


class CreatedOrder(OrderResponse):
    instamojo_payment: Optional[Dict[str, Any]] = None


class CreateOrderResponse(BaseModel):
    success: bool = True
    order: CreatedOrder


class OrderEnvelope(BaseModel):
    order: OrderResponse


class UpdatedOrderResponse(BaseModel):
    success: bool = True
    order: OrderResponse


class AdminOrderResponse(OrderResponse):
    user_name: Optional[str] = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    pagination: Pagination


class AdminOrderListResponse(BaseModel):
    orders: List[AdminOrderResponse]
    pagination: Pagination


class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    tracking_number: Optional[str] = None
    admin_notes: Optional[str] = None


class VerifyPaymentRequest(BaseModel):
    order_id: Optional[str] = None
    payment_request_id: Optional[str] = None
    payment_id: Optional[str] = None


class VerifyPaymentResponse(BaseModel):
    success: bool
    message: str
    order: Optional[OrderResponse] = None
    payment_status: Optional[str] = None


class WebhookResponse(BaseModel):
    success: bool = True
    message: str


class OrderStats(BaseModel):
    total_orders: int
    pending_orders: int
    confirmed_orders: int
    shipped_orders: int
    delivered_orders: int
    cancelled_orders: int
    paid_orders: int
    total_revenue: Decimal
    average_order_value: Optional[Decimal] = None


class OrderStatsResponse(BaseModel):
    stats: OrderStats
