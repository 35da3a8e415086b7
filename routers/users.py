# routers/users.py
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from typing import List, Optional

from database import get_database
from crud.user import UserCRUD
from models.user import User, RoleEnum
from schemas.user import UserOut, UserCreate, UserStatusUpdate, Token
from utils.security import verify_password, create_access_token
from dependencies import get_current_user, get_optional_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

async def get_user_crud(db=Depends(get_database)):
    return UserCRUD(db)

@router.post("/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def signup(
    user_data: UserCreate,
    crud: UserCRUD = Depends(get_user_crud),
    current_user: Optional[User] = Depends(get_optional_user)
):
    if user_data.role == RoleEnum.admin and not (current_user and current_user.role == RoleEnum.admin):
        raise HTTPException(status_code=403, detail="Only an admin can create admin accounts")

    user = await crud.create_user(user_data)
    if not user:
        raise HTTPException(status_code=409, detail="Email or username already registered")
    return user

# Login endpoint - No authentication required
@router.post("/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    crud: UserCRUD = Depends(get_user_crud)
):
    identifier = form_data.username.strip()

    # Find user by email OR username
    user = await crud.get_user_by_identifier(identifier)
    if not user or not verify_password(form_data.password, user.password_hash):
        logger.info(f"🔒 Failed login for '{identifier}'")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email/username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Ensure user account is active
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Your account is deactivated. Contact admin."
        )

    await crud.update_last_login(user.id)

    # Create token including role
    access_token = create_access_token(
        data={"sub": user.email, "role": user.role}
    )
    return Token(access_token=access_token, user=UserOut.model_validate(user))

# --- Get current user ---
@router.get("/me", response_model=UserOut)
async def get_current_user_profile(current_user: User = Depends(get_current_user)):
    return current_user

# --- List users (admin only) ---
@router.get("/admin/list", response_model=List[UserOut])
async def list_users(
    role: Optional[RoleEnum] = None,
    crud: UserCRUD = Depends(get_user_crud),
    current_admin: User = Depends(require_admin)
):
    return await crud.get_users(role=role)

# --- Activate / deactivate (admin only) ---
@router.put("/admin/{user_id}/status", response_model=UserOut)
async def update_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    crud: UserCRUD = Depends(get_user_crud),
    current_admin: User = Depends(require_admin)
):
    if user_id == current_admin.id and not payload.is_active:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    user = await crud.update_user(user_id, {"is_active": payload.is_active})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info(f"👤 {current_admin.username} set {user.username} active={payload.is_active}")
    return user
