"""
medconsent - FastAPI Application
Consent-gated medical record exchange between institutions and individuals
"""

from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import List, Dict, Any, Optional
import base64
import logging
import binascii
import structlog

from pydantic import BaseModel, Field

from .config import get_exchange_config
from .constants import ErrorCodes, RecordCategories, SERVICE_NAME, SERVICE_VERSION
from .consent.models import ConsentRequest
from .crypto.tokens import create_session_token, verify_session_token, extract_bearer_token, TokenError
from .exceptions import ExchangeError
from .identity.models import Account, Individual, Institution, Sex
from .records.models import Record
from .service import ExchangeService

# Global settings
settings = get_exchange_config()


def configure_logging(level: str) -> None:
    """Route structlog through stdlib logging at the configured level"""
    level = level.upper()
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger(SERVICE_NAME).setLevel(level)


configure_logging(settings.log_level)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Initialized in lifespan unless injected beforehand (tests)
exchange_service: Optional[ExchangeService] = None

_STATUS_BY_ERROR_CODE = {
    ErrorCodes.DUPLICATE_IDENTIFIER: 409,
    ErrorCodes.INVALID_CREDENTIALS: 401,
    ErrorCodes.NOT_FOUND: 404,
    ErrorCodes.UNAUTHORIZED: 403,
    ErrorCodes.INVALID_STATE: 409,
    ErrorCodes.VALIDATION_ERROR: 422,
}


# -- request bodies ----------------------------------------------------------

class InstitutionRegistration(BaseModel):
    email: str
    name: str
    secret: str


class IndividualRegistration(BaseModel):
    name: str
    sex: Sex
    phone: str
    secret: str
    subject_key: Optional[str] = None


class SubjectKeyRequest(BaseModel):
    name: str
    phone: str


class LoginRequest(BaseModel):
    identifier: str = Field(..., description="Login email or subject key")
    secret: str


class RecordUpload(BaseModel):
    subject_key: str
    category: str = RecordCategories.DEFAULT
    payload_b64: str = Field(..., description="Base64-encoded file content")
    filename: str
    mime_type: str
    notes: Optional[str] = None


class AccessRequestIn(BaseModel):
    subject_key: str


# -- serialization -----------------------------------------------------------

def account_out(account: Account) -> Dict[str, Any]:
    return account.model_dump(mode="json", exclude={"credential_hash"})


def record_out(record: Record, uploader_name: Optional[str] = None,
               include_payload: bool = True) -> Dict[str, Any]:
    data = record.model_dump(mode="json", exclude={"payload"})
    if include_payload:
        data["payload_b64"] = base64.b64encode(record.payload).decode("ascii")
    if uploader_name is not None:
        data["uploader_name"] = uploader_name
    return data


def request_out(request: ConsentRequest) -> Dict[str, Any]:
    return request.model_dump(mode="json")


# -- dependencies ------------------------------------------------------------

def get_exchange_service() -> ExchangeService:
    if exchange_service is None:
        raise HTTPException(status_code=503, detail="Exchange service not available")
    return exchange_service


def current_account(
    authorization: Optional[str] = Header(default=None),
    service: ExchangeService = Depends(get_exchange_service),
) -> Account:
    try:
        claims = verify_session_token(extract_bearer_token(authorization))
    except TokenError as e:
        raise HTTPException(status_code=401, detail={"error": "invalid_token", "message": str(e)})

    account = service.identity.find_by_id(claims["sub"])
    if account is None:
        raise HTTPException(status_code=401, detail={"error": "unknown_account"})
    return account


def current_institution(account: Account = Depends(current_account)) -> Institution:
    if not isinstance(account, Institution):
        raise HTTPException(status_code=403, detail={"error": "institution_required"})
    return account


def current_individual(account: Account = Depends(current_account)) -> Individual:
    if not isinstance(account, Individual):
        raise HTTPException(status_code=403, detail={"error": "individual_required"})
    return account


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global exchange_service

    logger.info("Starting medconsent record exchange", version=SERVICE_VERSION)

    # Initialize only if not already provided (for testing/injection)
    if exchange_service is None:
        exchange_service = ExchangeService()
    logger.info("Exchange service initialized", backend=settings.storage_backend.value)

    yield

    logger.info("Shutting down medconsent record exchange")

# Create FastAPI app
app = FastAPI(
    title="medconsent",
    description="Consent-gated medical record exchange",
    version=SERVICE_VERSION,
    debug=settings.debug_mode,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExchangeError)
async def exchange_error_handler(request: Request, exc: ExchangeError):
    status_code = _STATUS_BY_ERROR_CODE.get(exc.error_code, 400)
    logger.warning("Request failed", path=request.url.path, error=exc.error_code,
                   status_code=status_code)
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "components": {
            "exchange_service": exchange_service is not None,
        },
    }


# -- identity ----------------------------------------------------------------

@app.post("/institutions", status_code=201)
async def register_institution(body: InstitutionRegistration,
                               service: ExchangeService = Depends(get_exchange_service)):
    institution = await service.register_institution(body.email, body.name, body.secret)
    return {"account": account_out(institution)}


@app.post("/individuals", status_code=201)
async def register_individual(body: IndividualRegistration,
                              authorization: Optional[str] = Header(default=None),
                              service: ExchangeService = Depends(get_exchange_service)):
    """Self-registration, or registration by a logged-in institution on the patient's behalf"""
    registered_by = None
    if authorization:
        registered_by = current_institution(current_account(authorization, service)).id

    individual = await service.register_individual(
        body.name, body.sex, body.phone, body.secret,
        subject_key=body.subject_key, registered_by=registered_by,
    )
    return {"account": account_out(individual)}


@app.post("/subject-keys")
async def issue_subject_key(body: SubjectKeyRequest,
                            service: ExchangeService = Depends(get_exchange_service)):
    subject_key = await service.issue_subject_key(body.name, body.phone)
    return {"subject_key": subject_key}


@app.post("/auth/login")
async def login(body: LoginRequest, service: ExchangeService = Depends(get_exchange_service)):
    account = await service.login(body.identifier, body.secret)
    token = create_session_token(account.id, account.kind.value)
    return {"access_token": token, "token_type": "bearer", "account": account_out(account)}


@app.get("/individuals/{subject_key}")
async def lookup_individual(subject_key: str,
                            institution: Institution = Depends(current_institution),
                            service: ExchangeService = Depends(get_exchange_service)):
    individual = await service.lookup_individual(subject_key)
    return {
        "subject_key": individual.subject_key,
        "display_name": individual.display_name,
        "sex": individual.sex.value,
    }


# -- records -----------------------------------------------------------------

@app.post("/records", status_code=201)
async def upload_record(body: RecordUpload,
                        institution: Institution = Depends(current_institution),
                        service: ExchangeService = Depends(get_exchange_service)):
    try:
        payload = base64.b64decode(body.payload_b64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail={"error": "invalid_payload"})

    record, request = await service.upload_record(
        institution.id, body.subject_key, payload, body.filename, body.mime_type,
        category=body.category, notes=body.notes,
    )
    return {"record": record_out(record, include_payload=False), "request": request_out(request)}


@app.get("/records/categories")
async def record_categories():
    """Categories offered on the upload form; other strings are still accepted"""
    return {"categories": list(RecordCategories.ALL), "default": RecordCategories.DEFAULT}


@app.get("/records/uploaded")
async def uploaded_records(institution: Institution = Depends(current_institution),
                           service: ExchangeService = Depends(get_exchange_service)):
    records = await service.records_by_uploader(institution.id)
    return {"records": [record_out(r) for r in records]}


@app.get("/records/mine")
async def my_records(individual: Individual = Depends(current_individual),
                     service: ExchangeService = Depends(get_exchange_service)):
    records = await service.records_for_subject(individual.subject_key)
    names = service.institution_names(r.uploader_institution_id for r in records)
    return {
        "records": [record_out(r, names.get(r.uploader_institution_id)) for r in records]
    }


@app.get("/subjects/{subject_key}/records")
async def visible_records(subject_key: str,
                          institution: Institution = Depends(current_institution),
                          service: ExchangeService = Depends(get_exchange_service)):
    records = await service.visible_records(institution.id, subject_key)
    names = service.institution_names(r.uploader_institution_id for r in records)
    return {
        "subject_key": subject_key,
        "records": [record_out(r, names.get(r.uploader_institution_id)) for r in records],
    }


# -- consent -----------------------------------------------------------------

@app.post("/access-requests")
async def request_access(body: AccessRequestIn,
                         institution: Institution = Depends(current_institution),
                         service: ExchangeService = Depends(get_exchange_service)):
    request, created = await service.request_access(institution.id, body.subject_key)
    return JSONResponse(
        status_code=201 if created else 200,
        content={"request": request_out(request), "created": created},
    )


@app.get("/consent-requests/pending")
async def pending_requests(individual: Individual = Depends(current_individual),
                           service: ExchangeService = Depends(get_exchange_service)):
    requests: List[Dict[str, Any]] = []
    for pending in await service.pending_requests(individual.subject_key):
        item = request_out(pending)
        record_id = getattr(pending, "record_id", None)
        if record_id:
            record = service.records.by_id(record_id)
            if record is not None:
                item["record"] = record_out(record, include_payload=False)
        requests.append(item)
    return {"requests": requests}


@app.get("/consent-requests/mine")
async def institution_requests(institution: Institution = Depends(current_institution),
                               service: ExchangeService = Depends(get_exchange_service)):
    requests = await service.institution_requests(institution.id)
    return {"requests": [request_out(r) for r in requests]}


@app.post("/consent-requests/{request_id}/approve")
async def approve_request(request_id: str,
                          individual: Individual = Depends(current_individual),
                          service: ExchangeService = Depends(get_exchange_service)):
    request = await service.approve_request(individual.id, request_id)
    return {"request": request_out(request)}


@app.post("/consent-requests/{request_id}/reject")
async def reject_request(request_id: str,
                         individual: Individual = Depends(current_individual),
                         service: ExchangeService = Depends(get_exchange_service)):
    request = await service.reject_request(individual.id, request_id)
    return {"request": request_out(request)}
