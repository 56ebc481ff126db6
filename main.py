from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, engine, settings
from core.broadcaster import RealtimeBroadcaster
from api import exercises, participants, websocket

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 在應用啟動時建立資料庫表
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="Tabletop Exercise API",
    description="Backend API for facilitator-driven tabletop exercises",
    version="1.0.0",
    lifespan=lifespan
)

# 整個 process 共用一個 broadcaster
app.state.broadcaster = RealtimeBroadcaster()

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(exercises.router)
app.include_router(participants.router)
app.include_router(websocket.router)


@app.get("/")
def root():
    return {"message": "Tabletop Exercise API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
