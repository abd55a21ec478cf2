from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.logs import configure_logging
from .db.database import create_db_and_tables
from .routers.inventory import router as inventory_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Salon Inventory API",
    description="Bottle-based product inventory: consumption, availability and stock alerts",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])


@app.get("/health")
async def health():
    return {"status": "ok", "service": "salon-inventory"}


def run():
    uvicorn.run("salon_inventory.main:app", host="0.0.0.0", port=8000, reload=True)


if __name__ == "__main__":
    run()
