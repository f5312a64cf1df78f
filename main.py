from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware import Middleware
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1.admin import router as admin_router
from api.v1.chat import router as chat_router
from api.v1.credits import router as credits_router
from api.v1.cron import router as cron_router
from api.v1.notifications import router as notifications_router
from api.v1.orders import router as orders_router
from api.v1.quotes import router as quotes_router
from api.v1.rfqs import router as rfqs_router
from core.exceptions import DealError
from core.logger import app_logger
from init_db import close_db, init_db

middleware = [
    Middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
]

app = FastAPI(
    title="Deal Desk Backend",
    middleware=middleware
)


@app.exception_handler(DealError)
async def deal_error_handler(request: Request, exc: DealError):
    app_logger.warning(f"⚠️ {request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code, **exc.details}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={
            "error": message,
            "code": "VALIDATION_ERROR",
            "fields": [".".join(str(p) for p in e.get("loc", ())) for e in errors],
        }
    )


@app.on_event("startup")
async def startup():
    await init_db()


@app.on_event("shutdown")
async def shutdown():
    await close_db()


@app.get("/api/health", tags=["Health"])
async def health():
    return {"status": "ok"}


app.include_router(rfqs_router)
app.include_router(quotes_router)
app.include_router(chat_router)
app.include_router(credits_router)
app.include_router(admin_router)
app.include_router(cron_router)
app.include_router(notifications_router)
app.include_router(orders_router)
