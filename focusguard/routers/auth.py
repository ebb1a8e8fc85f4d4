import os

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from focusguard.database import get_db
from focusguard.schemas.auth import DevLoginRequest, TokenResponse
from focusguard.models.users import User
from focusguard.utils.jwt import create_access_token

DEV_LOGIN_FLAG = "ENABLE_DEV_LOGIN"


def dev_login_enabled() -> bool:
    return os.getenv(DEV_LOGIN_FLAG, "").strip().lower() in ("1", "true", "yes", "on")


def require_dev_login():
    # 플래그가 꺼져 있으면 라우트가 없는 것처럼 응답
    if not dev_login_enabled():
        raise HTTPException(status_code=404, detail="Not Found")


router = APIRouter(dependencies=[Depends(require_dev_login)])


# ⚠️ 개발 환경에서만 사용 (ENABLE_DEV_LOGIN=1, 실제 인증/토큰 발급은 외부 서비스 담당)
@router.post("/dev", response_model=TokenResponse)
def dev_login(
    payload: DevLoginRequest,
    db: Session = Depends(get_db)
):
    user = db.query(User).filter(User.email == payload.email).first()

    if not user:
        user = User(
            email=payload.email,
            name=payload.name,
            total_focus_time=0,
            total_distraction_time=0,
            app_usage={},
        )
        db.add(user)
    elif payload.name:
        user.name = payload.name

    db.commit()
    db.refresh(user)

    access_token = create_access_token(
        data={"sub": str(user.user_id)}
    )

    return TokenResponse(
        access_token=access_token,
        user_id=user.user_id,
        name=user.name
    )
