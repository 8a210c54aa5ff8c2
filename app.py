from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from services.exceptions import ConfigurationError, VerificationError
from services.mail_dispatcher import get_mail_dispatcher
from services.verification_service import details_exposed
from utils.logger_factory import new_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    log = new_logger("startup")
    # Refuse to serve with a partial mail configuration
    try:
        dispatcher = get_mail_dispatcher()
    except ConfigurationError as e:
        log.error(f"Mail transport misconfigured, refusing to start: {e}")
        raise
    log.info(f"Mail dispatcher ready: {type(dispatcher).__name__}")
    yield


app = FastAPI(lifespan=lifespan)


@app.middleware("http")
async def log_request(request: Request, call_next):
    log = new_logger("log_request")
    # Bodies are not logged: verification requests carry one-time codes
    log.info(f"INCOMING REQUEST: {request.method} {request.url.path}")
    response = await call_next(request)
    log.info(f"RESPONSE: {request.method} {request.url.path} -> {response.status_code}")
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VerificationError)
async def verification_error_handler(request: Request, exc: VerificationError):
    log = new_logger("verification_error_handler")
    log.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.detail}")
    content = {"error": exc.public_message, "kind": exc.kind}
    if details_exposed():
        content["details"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 405:
        detail = "Method not allowed. Use POST."
    return JSONResponse(status_code=exc.status_code, content={"error": detail}, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(err.get("type") == "json_invalid" for err in errors):
        message = "Invalid JSON in request body"
    elif errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message, "kind": "ValidationError"})


@app.get("/")
def root():
    return {"message": "Financial Assistant verification API deployed."}


from api.email_verification import router as email_verification_router
from api.healthcheck import router as health_router

app.include_router(email_verification_router, prefix="/api")
app.include_router(health_router, prefix="/api")
