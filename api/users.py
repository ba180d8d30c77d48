from fastapi import APIRouter, Depends, HTTPException, status
from api.dependencies import get_user_service
from api.models import (
    EntitlementResponse,
    PasswordChange,
    PasswordReset,
    SubscriptionUpdate,
    UserResponse,
    UserUpdate,
)
from api.services.user_service import UserService, UserServiceException
from db.models.user import DEFAULT_REPORT_TYPE

router = APIRouter()


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    user_service: UserService = Depends(get_user_service),
):
    return user_service.get_by_id(user_id)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    update: UserUpdate,
    user_service: UserService = Depends(get_user_service),
):
    return user_service.update_profile(user_id, name=update.name, email=update.email)


@router.put("/users/{user_id}/password", response_model=UserResponse)
def change_password(
    user_id: int,
    change: PasswordChange,
    user_service: UserService = Depends(get_user_service),
):
    try:
        return user_service.change_password(
            user_id, change.current_password, change.new_password
        )
    except UserServiceException as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/password-reset", response_model=UserResponse)
def reset_password(
    reset: PasswordReset,
    user_service: UserService = Depends(get_user_service),
):
    try:
        return user_service.reset_password(reset.token, reset.new_password)
    except UserServiceException as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/users/{user_id}/subscription", response_model=UserResponse)
def update_subscription(
    user_id: int,
    update: SubscriptionUpdate,
    user_service: UserService = Depends(get_user_service),
):
    return user_service.update_subscription(
        user_id,
        update.subscription,
        subscription_expiry=update.subscription_expiry,
        stripe_customer_id=update.stripe_customer_id,
        ai_credits=update.ai_credits,
    )


@router.get("/users/{user_id}/entitlements", response_model=EntitlementResponse)
def get_entitlement(
    user_id: int,
    report_type: str = DEFAULT_REPORT_TYPE,
    user_service: UserService = Depends(get_user_service),
):
    allowed = user_service.check_entitlement(user_id, report_type)
    user = user_service.get_by_id(user_id)
    return EntitlementResponse(
        user_id=user.id,
        subscription=user.subscription,
        report_type=report_type,
        allowed=allowed,
    )


@router.post("/users/{user_id}/reports", response_model=UserResponse)
def record_report(
    user_id: int,
    report_type: str = DEFAULT_REPORT_TYPE,
    user_service: UserService = Depends(get_user_service),
):
    return user_service.record_report(user_id, report_type)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    user_service: UserService = Depends(get_user_service),
):
    user_service.delete_user(user_id)
