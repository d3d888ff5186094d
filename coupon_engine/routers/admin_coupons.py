
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
from coupon_engine.database import get_db
from coupon_engine.schemas.coupon import (
    CouponCreate, CouponUpdate, CouponResponse, CouponDetailResponse, CouponListResponse,
    CouponStats, CouponStatus, StatusRefreshResponse
)
from coupon_engine.services.coupon_service import CouponService

router = APIRouter(prefix="/admin/coupons", tags=["admin-coupons"])


@router.get("", response_model=CouponListResponse)
def list_coupons(page: int = 1, limit: int = 20, status: Optional[CouponStatus] = None,
                 search: Optional[str] = None, db: Session = Depends(get_db)):
    result = CouponService.list_coupons(db, page, limit, status, search)
    result["coupons"] = [CouponResponse.model_validate(c) for c in result["coupons"]]
    return result


@router.post("", response_model=CouponResponse, status_code=201)
def create_coupon(coupon: CouponCreate, db: Session = Depends(get_db)):
    return CouponService.create_coupon(db, coupon)


@router.post("/refresh-status", response_model=StatusRefreshResponse)
def refresh_statuses(db: Session = Depends(get_db)):
    return StatusRefreshResponse(updated=CouponService.refresh_statuses(db))


@router.get("/{coupon_id}", response_model=CouponDetailResponse)
def get_coupon(coupon_id: int, db: Session = Depends(get_db)):
    c = CouponService.get_coupon(db, coupon_id)
    if not c:
        raise HTTPException(status_code=404, detail="Coupon not found")
    stats = CouponService.get_coupon_stats(db, coupon_id)
    return CouponDetailResponse(**CouponResponse.model_validate(c).model_dump(), stats=stats)


@router.put("/{coupon_id}", response_model=CouponResponse)
def update_coupon(coupon_id: int, payload: CouponUpdate, db: Session = Depends(get_db)):
    updated = CouponService.update_coupon(db, coupon_id, payload)
    if not updated:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return updated


@router.delete("/{coupon_id}", status_code=204)
def delete_coupon(coupon_id: int, db: Session = Depends(get_db)):
    ok = CouponService.delete_coupon(db, coupon_id)
    if not ok:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return


@router.patch("/{coupon_id}/toggle", response_model=CouponResponse)
def toggle_coupon(coupon_id: int, db: Session = Depends(get_db)):
    toggled = CouponService.toggle_status(db, coupon_id)
    if not toggled:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return toggled


@router.get("/{coupon_id}/stats", response_model=CouponStats)
def get_coupon_stats(coupon_id: int, db: Session = Depends(get_db)):
    if not CouponService.get_coupon(db, coupon_id):
        raise HTTPException(status_code=404, detail="Coupon not found")
    return CouponService.get_coupon_stats(db, coupon_id)
