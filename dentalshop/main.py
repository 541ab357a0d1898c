# dentalshop/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dentalshop.config import settings
from dentalshop.database import init_db
from dentalshop.exception_handlers import register_exception_handlers

from dentalshop.routes.auth import router as auth_router
from dentalshop.routes.admin import router as admin_router
from dentalshop.routes.cart import router as cart_router
from dentalshop.routes.orders import router as orders_router
from dentalshop.routes.payments import router as payments_router
from dentalshop.routes.products import router as products_router
from dentalshop.routes.stats import router as stats_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="Dental Shop API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list({*settings.CORS_ORIGINS, settings.FRONTEND_URL}),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(products_router)
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(stats_router)
app.include_router(admin_router)

@app.get("/")
def read_root():
    return {"message": "Dental Shop API is running"}
