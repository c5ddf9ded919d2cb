# main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from discount_engine.core.config import LOG_LEVEL
from discount_engine.core.db import init_models
from discount_engine.routers import discount_router, promo_router, checkout_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Discount & Promotion Pricing API",
    description="Rule-based pricing, promo codes, checkout finalization and catalog baking",
    version="0.1.0"
)
# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # adjust for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Health check endpoint
@app.get("/", tags=["Health"])
async def health_check():
    return {"status": "ok", "message": "Pricing engine is running"}

# Register routers
app.include_router(discount_router)
app.include_router(promo_router)
app.include_router(checkout_router)


@app.on_event("startup")
async def on_startup():
    await init_models()
