from fastapi import FastAPI
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from core.config import settings
from core.logging_config import configure_logging
from db.database import create_db_and_tables
from routers.transactions import router as transactions_router
from routers.inventory import router as inventory_router

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    yield


app = FastAPI(
    title="Inventory Movement API",
    description="Stock deduction, container tracking and reversal for point-of-sale transactions",
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


app.include_router(transactions_router, prefix="/transactions", tags=["transactions"])
app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
