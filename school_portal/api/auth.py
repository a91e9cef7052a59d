from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from school_portal.core.database import get_session
from school_portal.core.security import verify_password, get_password_hash, create_access_token
from school_portal.models.user import User
from school_portal.schemas.auth import LoginRequest, TokenResponse, UserResponse, CreateUserRequest
from school_portal.utils.auth import get_current_user, get_current_admin
from school_portal.api.responses import user_response

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=TokenResponse)
def login(
    login_data: LoginRequest,
    session: Session = Depends(get_session)
):
    """Authenticate user and return JWT token"""
    statement = select(User).where(User.email == login_data.email)
    user = session.exec(statement).first()

    if not user or not verify_password(login_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user"
        )

    access_token = create_access_token(data={"sub": user.id})

    return TokenResponse(
        access_token=access_token,
        user_id=user.id,
        email=user.email,
        role=user.role
    )


@router.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return user_response(current_user)


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: CreateUserRequest,
    current_admin: User = Depends(get_current_admin),
    session: Session = Depends(get_session)
):
    """Create a user of any role (admin only)"""
    existing_user = session.exec(select(User).where(User.email == user_data.email)).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    user = User(
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        name=user_data.name,
        role=user_data.role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    return user_response(user)
