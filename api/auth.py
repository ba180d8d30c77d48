from fastapi import APIRouter, Depends, Form, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from api.models import UserResponse
from api.dependencies import get_user_service
from api.services.user_service import UserService, UserServiceException

router = APIRouter()


@router.post("/signup", response_model=UserResponse)
def signup(
    name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    user_service: UserService = Depends(get_user_service),
):
    return user_service.signup(name, email, password)


@router.post("/login", response_model=UserResponse)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    user_service: UserService = Depends(get_user_service),
):
    try:
        return user_service.authenticate(form_data.username, form_data.password)
    except UserServiceException as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/verify-email/{token}", response_model=UserResponse)
def verify_email(
    token: str,
    user_service: UserService = Depends(get_user_service),
):
    try:
        return user_service.verify_email(token)
    except UserServiceException as e:
        raise HTTPException(status_code=400, detail=str(e))
