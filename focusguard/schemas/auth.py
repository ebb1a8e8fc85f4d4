from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional


class DevLoginRequest(BaseModel):
    # 개발/테스트 환경용 간소화된 로그인 요청
    email: str
    name: Optional[str] = None


class TokenResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    access_token: str
    token_type: str = "bearer"
    user_id: int
    name: Optional[str]
