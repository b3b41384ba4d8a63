"""
FastAPI application entry point
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pbi_chat.core.config import settings
from pbi_chat.api import chat

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = FastAPI(
    title="Power BI Chat Assistant API",
    description="Chat relay that answers questions from a Power BI semantic model via Azure OpenAI",
    version="1.0.0"
)

# CORS (browser client served from another origin)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat.router, prefix="/api", tags=["chat"])


@app.get("/")
async def root():
    """Service info"""
    return {
        "message": "Power BI Chat Assistant API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "openai_configured": settings.openai_configured,
        "powerbi_dataset_configured": settings.powerbi_dataset_configured,
        "powerbi_report_configured": settings.powerbi_report_configured
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pbi_chat.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
