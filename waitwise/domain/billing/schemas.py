"""Billing domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator, model_validator


class RetryPaymentRequest(BaseModel):
    """Schema for retrying a shop's latest failed invoice"""

    shop_id: Optional[str] = None


class AttachPaymentMethodRequest(BaseModel):
    """Schema for saving a Stripe payment method against a shop"""

    payment_method_id: Optional[str] = None
    email: Optional[str] = None
    shop_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_required(self) -> "AttachPaymentMethodRequest":
        values = (self.payment_method_id, self.email, self.shop_id)
        if not all(value and value.strip() for value in values):
            raise ValueError("Missing required fields: payment_method_id, email, shop_id")
        return self


class PinCustomerRequest(BaseModel):
    """Schema for creating a Pin Payments customer from a card token"""

    card_token: str
    email: str

    @field_validator("card_token", "email")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("card_token and email are required")
        return v.strip()


class PinCardUpdateRequest(BaseModel):
    card_token: str

    @field_validator("card_token")
    @classmethod
    def validate_card_token(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("card_token is required")
        return v.strip()


class PinChargeRequest(BaseModel):
    """Schema for charging a Pin Payments customer"""

    customer_token: str
    amount: int  # cents
    shop_id: str
    email: str

    @field_validator("customer_token", "shop_id", "email")
    @classmethod
    def validate_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Customer token, amount, shop_id, and email are required.")
        return v.strip()

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("amount must be a positive number of cents")
        return v


class PinChargeResponse(BaseModel):
    success: bool
    charge_token: Optional[str] = None
    error: Optional[str] = None
