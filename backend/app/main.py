"""
主应用入口
酒店账户台账与夜审入账服务
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.database import SessionLocal, init_db
from app.routers import auth, folios, packages, night_audit, reports
from app.routers import settings as settings_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 初始化数据库
    init_db()

    # 注册事件处理器
    from app.services.event_handlers import register_event_handlers
    register_event_handlers()

    # 确保存在物业记录（最后夜审日期挂在物业上）
    from app.services.night_audit_service import NightAuditService
    db = SessionLocal()
    try:
        prop = NightAuditService(db).get_property()
        logger.info(f"Property '{prop.name}' ready, last audit date: {prop.last_audit_date}")
    finally:
        db.close()

    yield


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    description="酒店住店账户台账、套餐入账与夜审批处理",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(auth.router)
app.include_router(folios.router)
app.include_router(packages.router)
app.include_router(night_audit.router)
app.include_router(reports.router)
app.include_router(settings_router.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
