# oral_exam/main.py

# ------------------------
# settings (.env is loaded by config)
# ------------------------
import logging
from contextlib import asynccontextmanager

from oral_exam.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ------------------------
# FastAPI, CORS
# ------------------------
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from oral_exam.db.base import Base, engine
import oral_exam.db.models  # noqa: F401  registers every table on Base.metadata

# ------------------------
# routers
# ------------------------
from oral_exam.routers import sessions as sessions_router
from oral_exam.routers import recordings as recordings_router
from oral_exam.routers import phonemes as phonemes_router
from oral_exam.routers import official_exams as official_exams_router
from oral_exam.routers import tts as tts_router

# ------------------------
# 1) app
# ------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="French Oral Assessment API", lifespan=lifespan)

# ------------------------
# 2) CORS
#    - open in local/dev
#    - restrict origins in production
# ------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------------------
# 3) routers
# ------------------------
app.include_router(sessions_router.router)
app.include_router(recordings_router.router)
app.include_router(phonemes_router.router)
app.include_router(official_exams_router.router)
app.include_router(tts_router.router)


# ------------------------
# 4) health check
# ------------------------
@app.get("/")
def root():
    return {"ok": True}
