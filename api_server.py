"""
FastAPI сервер для API удостоверений и счетов
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from certdesk.api import CertificateAPI
from certdesk.database import DatabaseManager
from certdesk.service import build_services
from config.settings import Settings, get_settings, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    logging.info("Запуск API сервера...")

    app.state.db_manager.create_tables()
    logging.info("Подключение к БД установлено")

    yield

    logging.info("Остановка API сервера...")
    app.state.db_manager.dispose()


def create_app(settings: Optional[Settings] = None, configure_logging: bool = True) -> FastAPI:
    """
    Создание FastAPI приложения.

    Args:
        settings: Настройки (по умолчанию из окружения)
        configure_logging: Настраивать ли корневой логгер

    Returns:
        FastAPI: Приложение
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings)

    app = FastAPI(
        title="Certificate & Invoice API",
        description="API для выдачи удостоверений и учета счетов",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    db_manager = DatabaseManager(settings.database_url, pool_size=settings.db_pool_size, echo=settings.debug)
    certificate_api = CertificateAPI(build_services(db_manager, settings))
    app.state.db_manager = db_manager
    app.state.certificate_api = certificate_api

    # Регистрируется до монтирования: маршрут "/" перехватывает все пути
    @app.get("/health", tags=["monitoring"])
    def health_check():
        """Проверка здоровья API и БД"""
        health_status = {
            "status": "checking",
            "timestamp": datetime.now().isoformat(),
            "components": {
                "api": {"status": "healthy", "message": "API is running"}
            }
        }

        if app.state.db_manager.health_check():
            health_status["components"]["database"] = {
                "status": "healthy",
                "message": "Database connection is active"
            }
        else:
            health_status["components"]["database"] = {
                "status": "unhealthy",
                "message": "Database is unreachable"
            }

        all_healthy = all(
            comp.get("status") == "healthy"
            for comp in health_status["components"].values()
        )
        health_status["status"] = "healthy" if all_healthy else "unhealthy"

        return JSONResponse(content=health_status, status_code=200 if all_healthy else 503)

    app.mount("/", certificate_api.app)

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
    )
