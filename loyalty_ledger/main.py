import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from loyalty_ledger.config import settings
from loyalty_ledger.db import engine, Base
from loyalty_ledger.errors import LedgerError

from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.points_balance import PointsBalance
from loyalty_ledger.models.points_transaction import PointsTransaction
from loyalty_ledger.models.purchase import Purchase
from loyalty_ledger.models.purchase_claim import PurchaseClaim
from loyalty_ledger.models.reward import Reward
from loyalty_ledger.models.redemption import Redemption
from loyalty_ledger.models.notification_outbox import NotificationOutbox

from loyalty_ledger.routes.customers import router as customers_router
from loyalty_ledger.routes.purchases import router as purchases_router
from loyalty_ledger.routes.claims import router as claims_router
from loyalty_ledger.routes.rewards import router as rewards_router
from loyalty_ledger.routes.redemptions import router as redemptions_router
from loyalty_ledger.routes.settings import router as settings_router
from loyalty_ledger.routes.admin import router as admin_router

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Loyalty Ledger")

# ─── CORS ─────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "https://localhost:3000",
        "http://127.0.0.1:3000",
        "https://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
def handle_ledger_error(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error("request failed", extra={"path": request.url.path, "code": exc.code})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)


app.include_router(customers_router)
app.include_router(purchases_router)
app.include_router(claims_router)
app.include_router(rewards_router)
app.include_router(redemptions_router)
app.include_router(settings_router)
app.include_router(admin_router)


@app.get("/")
def read_root():
    return {"message": "Loyalty Ledger is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001, reload=True)
