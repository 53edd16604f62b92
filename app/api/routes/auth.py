from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core import config
from app.core.dependencies import get_db, get_current_user
from app.core.jwt import create_access_token
from app.core.logging_config import get_logger
from app.core.security import hash_password, verify_password
from app.models.user import User
from app.schemas.user import UserCreate, UserLogin, UserOut

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = get_logger()


# =====================================================================
#                              REGISTER
# =====================================================================
@router.post("/register", response_model=UserOut, status_code=201)
def register(data: UserCreate, db: Session = Depends(get_db)):
    if data.role == "admin":
        if not config.ADMIN_SIGNUP_CODE or data.signup_code != config.ADMIN_SIGNUP_CODE:
            raise HTTPException(status_code=403, detail="Admin registration requires a valid signup code")

    if db.query(User).filter(User.email == data.email).first():
        raise HTTPException(status_code=400, detail="Account already exists")

    user = User(
        name=data.name,
        email=data.email,
        password_hash=hash_password(data.password),
        role=data.role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.bind(log_type="audit").info(f"Account registered | Email={user.email} | Role={user.role}")
    return user


# =====================================================================
#                               LOGIN
# =====================================================================
@router.post("/login")
def login(data: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email).first()

    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token({"sub": user.email, "role": user.role})

    return {
        "access_token": token,
        "role": user.role,
        "token_type": "bearer"
    }


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user
