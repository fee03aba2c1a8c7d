from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import crud, errors
from ..auth import TokenClaims, get_current_claims
from ..database import get_db
from ..schemas import LoginRequest, Token, UserCreate, UserOut

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(body: UserCreate, db: Session = Depends(get_db)):
    return crud.create_user(db, name=body.name, email=body.email, password=body.password)


@router.post("/login", response_model=Token)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    _, access_token, expires_at = crud.login_user(db, email=body.email, password=body.password)
    return {"access_token": access_token, "token_type": "bearer", "expires_at": expires_at}


@router.get("/me", response_model=UserOut)
def read_users_me(claims: TokenClaims = Depends(get_current_claims), db: Session = Depends(get_db)):
    user = crud.get_user_by_id(db, claims.user_id)
    if not user:
        raise errors.NotFound("User not found")
    return user
