# dentalshop/routes/admin.py
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from dentalshop.database import get_db
from dentalshop.models.order import OrderStatus
from dentalshop.models.users import User
from dentalshop.routes.orders import _order_to_out
from dentalshop.schemas.order import OrdersPage
from dentalshop.schemas.user import RoleUpdate, UserResponse
from dentalshop.services import orders as order_service
from dentalshop.utils.audit import client_ip, write_log_safe
from dentalshop.utils.tokenJWT import role_required

router = APIRouter(prefix="/admin", tags=["Admin"])

ROLES = {"customer", "admin"}


# Schema for paginated user list response
class PaginatedUsersResponse(BaseModel):
    items: List[UserResponse]
    total: int
    page: int
    page_size: int


# All orders across shoppers, optionally filtered by status (Admin only)
@router.get("/orders", response_model=OrdersPage)
def get_all_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    if status_filter:
        status_filter = status_filter.strip().lower()
        if status_filter not in {s.value for s in OrderStatus}:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown status '{status_filter}'")

    rows, total = order_service.list_orders(db, status_filter, page, page_size)
    return {"items": [_order_to_out(o) for o in rows], "total": total, "page": page, "page_size": page_size}


# Retrieve a list of users with filtering, sorting, and pagination (Admin only)
@router.get("/users", response_model=PaginatedUsersResponse)
def get_all_users(
    q: Optional[str] = Query(None, description="Search by e-mail or name"),
    role: Optional[str] = Query(None, description="Filter by role"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    sort_by: Literal["id", "email", "role", "name"] = "id",
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    query = db.query(User)

    if q:
        like = f"%{q.lower()}%"
        query = query.filter(User.email.ilike(like) | User.name.ilike(like))

    if role:
        query = query.filter(User.role.ilike(role))

    sort_map = {
        "id": User.id,
        "email": User.email,
        "role": User.role,
        "name": User.name,
    }
    col = sort_map.get(sort_by, User.id)
    query = query.order_by(col.asc() if order == "asc" else col.desc())

    total = query.count()
    users = query.offset((page - 1) * page_size).limit(page_size).all()

    return {
        "items": users,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


# Update user role (Admin only)
@router.patch("/users/{user_id}/role", response_model=UserResponse)
def update_user_role(
    user_id: int,
    new_role: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin"))
):
    role = new_role.role.strip().lower()
    if role not in ROLES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown role '{new_role.role}'")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    # An admin cannot lock themselves out of the back-office
    if user.id == current_user.id and role != "admin":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot demote your own account")

    old_role = user.role
    user.role = role
    db.commit()
    db.refresh(user)

    write_log_safe(db, user_id=current_user.id, action="USER_ROLE_CHANGE", resource="users", status="SUCCESS",
                   ip=client_ip(request), meta={"user_id": user.id, "old": old_role, "new": role})
    return user
