from pydantic import BaseModel, Field, ConfigDict
from typing import List, Dict, Any, Optional, Literal
from datetime import date, datetime
from enum import Enum


CouponType = Literal["cart_wide", "product_specific", "category_based", "bogo"]
DiscountType = Literal["Percent", "Fixed"]
CouponStatus = Literal["active", "inactive", "expired", "scheduled"]


class ValidationCode(str, Enum):
    COUPON_NOT_FOUND = "COUPON_NOT_FOUND"
    COUPON_INVALID = "COUPON_INVALID"
    FIRST_ORDER_ONLY = "FIRST_ORDER_ONLY"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    USER_LIMIT_REACHED = "USER_LIMIT_REACHED"
    CART_ITEMS_REQUIRED = "CART_ITEMS_REQUIRED"
    NO_ELIGIBLE_ITEMS = "NO_ELIGIBLE_ITEMS"
    NO_ELIGIBLE_CATEGORIES = "NO_ELIGIBLE_CATEGORIES"
    BOGO_NOT_MET = "BOGO_NOT_MET"
    MIN_ORDER_NOT_MET = "MIN_ORDER_NOT_MET"
    VALID = "VALID"


# Request schemas
class CouponCreate(BaseModel):
    code: str = Field(..., description="Upper-case letters, digits and hyphens, 3-50 chars")
    description: str = Field(..., min_length=1)
    discount_type: DiscountType
    discount_value: float = Field(..., gt=0, description="Percentage (0-100) or fixed amount")
    min_order_value: Optional[float] = Field(default=None, ge=0)
    max_discount: Optional[float] = Field(default=None, gt=0)
    start_date: date
    end_date: date
    usage_limit: Optional[int] = Field(default=None, ge=1)
    usage_per_user: int = Field(default=1, ge=1)
    coupon_type: CouponType = "cart_wide"
    eligible_product_ids: List[str] = Field(default_factory=list)
    eligible_category_ids: List[str] = Field(default_factory=list)
    bogo_buy_quantity: Optional[int] = Field(default=None, ge=1)
    bogo_get_quantity: Optional[int] = Field(default=None, ge=1)
    bogo_discount_percent: float = Field(default=100, gt=0, le=100)
    max_discount_items: Optional[int] = Field(default=None, ge=1)
    first_order_only: bool = False
    exclude_sale_items: bool = False


class CouponUpdate(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = Field(default=None, min_length=1)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = Field(default=None, gt=0)
    min_order_value: Optional[float] = Field(default=None, ge=0)
    max_discount: Optional[float] = Field(default=None, gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[CouponStatus] = None
    usage_limit: Optional[int] = Field(default=None, ge=1)
    usage_per_user: Optional[int] = Field(default=None, ge=1)
    coupon_type: Optional[CouponType] = None
    eligible_product_ids: Optional[List[str]] = None
    eligible_category_ids: Optional[List[str]] = None
    bogo_buy_quantity: Optional[int] = Field(default=None, ge=1)
    bogo_get_quantity: Optional[int] = Field(default=None, ge=1)
    bogo_discount_percent: Optional[float] = Field(default=None, gt=0, le=100)
    max_discount_items: Optional[int] = Field(default=None, ge=1)
    first_order_only: Optional[bool] = None
    exclude_sale_items: Optional[bool] = None


# Response schemas
class CouponResponse(BaseModel):
    id: int
    code: str
    description: str
    discount_type: DiscountType
    discount_value: float
    min_order_value: Optional[float] = None
    max_discount: Optional[float] = None
    start_date: date
    end_date: date
    status: CouponStatus
    usage_limit: Optional[int] = None
    usage_count: int = 0
    usage_per_user: int = 1
    coupon_type: CouponType = "cart_wide"
    eligible_product_ids: List[str] = Field(default_factory=list)
    eligible_category_ids: List[str] = Field(default_factory=list)
    bogo_buy_quantity: Optional[int] = None
    bogo_get_quantity: Optional[int] = None
    bogo_discount_percent: float = 100
    max_discount_items: Optional[int] = None
    first_order_only: bool = False
    exclude_sale_items: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CouponStats(BaseModel):
    total_usage: int
    total_discount: int
    average_discount: int


class CouponDetailResponse(CouponResponse):
    stats: CouponStats


class CouponListResponse(BaseModel):
    coupons: List[CouponResponse]
    total: int
    page: int
    limit: int
    total_pages: int


# Cart related schemas
class CartLineItem(BaseModel):
    id: Optional[str] = None
    type: str = Field(..., description="'bundle' or 'product'")
    bundle_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0, description="Price per unit")
    category_id: Optional[str] = Field(default=None, description="Category of the bundle or product")


class ValidateCouponRequest(BaseModel):
    code: str
    cart_total: float = Field(..., gt=0)
    user_id: str = Field(..., min_length=1)
    cart_items: List[CartLineItem] = Field(default_factory=list)


class CouponValidationResult(BaseModel):
    valid: bool
    code: ValidationCode
    reason: Optional[str] = None
    shortfall: Optional[int] = None
    discount: Optional[int] = None
    coupon: Optional[Dict[str, Any]] = None


class AppliedCouponSummary(BaseModel):
    id: int
    code: str
    description: str
    discount_type: DiscountType
    discount_value: float
    coupon_type: CouponType


class ValidateCouponData(BaseModel):
    coupon: AppliedCouponSummary
    discount: int
    savings_text: str


class ValidateCouponResponse(BaseModel):
    success: bool = True
    message: str
    data: ValidateCouponData


class ActiveCouponsResponse(BaseModel):
    all_coupons: List[Dict[str, Any]]
    unlocked_coupons: List[Dict[str, Any]]
    locked_coupons: List[Dict[str, Any]]
    total: int


class CouponUsageResponse(BaseModel):
    coupon_code: str
    usage_count: int
    usage_limit: int
    can_use: bool
    remaining_uses: int


class RedemptionCreate(BaseModel):
    order_id: int = Field(..., gt=0)
    coupon_id: int = Field(..., gt=0)
    user_id: str = Field(..., min_length=1)
    discount_amount: int = Field(..., ge=0)


class RedemptionResponse(BaseModel):
    id: int
    order_id: int
    coupon_id: int
    user_id: str
    discount_amount: int
    usage_count: int


class StatusRefreshResponse(BaseModel):
    updated: int
