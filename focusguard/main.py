from dotenv import load_dotenv
load_dotenv()

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from focusguard.database import Base, engine
from focusguard.models import *  # 모든 모델 import 후 테이블 생성
from focusguard.routers import auth, sessions

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


# FastAPI APP
app = FastAPI(
    title="Focus Guardian",
    description="Work-session focus tracking API for the local analysis engine and dashboard",
    version="1.0.0"
)


# CORS 설정 (desktop 앱의 renderer 는 Origin 이 file:// 또는 localhost)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Malformed bodies are reported as 400, not FastAPI's default 422
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    if request.url.path.startswith("/api/sessions/data/"):
        detail = "Invalid analysis data payload."
    else:
        detail = "Invalid request."
    logger.info(f"Rejected request to {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"detail": detail})


# DB 초기화
def init_db():
    logger.info("Creating DB tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("DB table creation completed.")


@app.on_event("startup")
def on_startup():
    init_db()
    if auth.dev_login_enabled():
        logger.warning("Development login is enabled (POST /api/auth/dev). Do not use in production.")


# Router 등록
# (endpoint prefix: /api)
app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(sessions.router, prefix="/api/sessions", tags=["Sessions"])


# 기본 헬스체크용 엔드포인트
@app.get("/")
def root():
    return {"status": "ok", "message": "Backend is running."}
