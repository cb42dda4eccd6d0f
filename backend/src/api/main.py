from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from src.core.config import settings
from src.core.logging_config import configure_logging
from src.api.routes import conversation
import logging

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Backend API for the Dental Office Assistant",
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    conversation.router, prefix="/api/v1/conversations", tags=["Conversations"]
)


@app.on_event("shutdown")
async def shutdown():
    await conversation.close_bot()
    logger.info("Dialog state store closed")


@app.get("/health")
async def health_check():
    return {"status": "ok", "version": settings.VERSION}


@app.get("/")
async def root():
    return {"message": "Welcome to Dental Office Assistant API"}
