from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from services.analyzer import EmailAnalyzer
from services.auth import AuthProvider, StaticAuthProvider, User
from services.config import Settings, load_settings
from services.db import ScanStore
from services.errors import AuthenticationError, InvalidRequestError, PhishGuardError
from services.gemini_client import GeminiClient
from services.logging_utils import get_logger
from services.models import (
    AnalyzeEmailRequest,
    EmailAccountCreate,
    EmailSample,
    LoginRequest,
    ScanRequest,
)

logger = get_logger(__name__)

CORS_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"

# auto_error=False so each route decides how a missing token is reported
bearer = HTTPBearer(auto_error=False)


def create_app(
    settings: Optional[Settings] = None,
    auth_provider: Optional[AuthProvider] = None,
    ai_client: Optional[GeminiClient] = None,
) -> FastAPI:
    """
    Build the API. Run with: uvicorn api.main:create_app --factory
    """
    settings = settings or load_settings()
    store = ScanStore(settings.db_path)
    store.init_db()

    app = FastAPI(title="PhishGuard")
    app.state.settings = settings
    app.state.store = store
    app.state.auth = auth_provider or StaticAuthProvider(
        settings.accounts, session_ttl_seconds=settings.session_ttl_seconds
    )
    app.state.analyzer = EmailAnalyzer(settings, store, ai_client or GeminiClient(settings))

    cors_headers = {
        "Access-Control-Allow-Origin": settings.cors_allow_origin,
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    }

    @app.middleware("http")
    async def cors(request: Request, call_next):
        # Pre-flight: empty 200 with the CORS headers, never routed
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=cors_headers)
        response = await call_next(request)
        response.headers.update(cors_headers)
        return response

    _register_function_routes(app)
    _register_dashboard_routes(app)
    return app


def _user_for(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> User:
    if credentials is None:
        raise AuthenticationError("Unauthorized")
    user = request.app.state.auth.current_user(credentials.credentials)
    if user is None:
        raise AuthenticationError("Unauthorized")
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> User:
    """Resolve the bearer token to a user, or 401."""
    try:
        return _user_for(request, credentials)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


# ---------- Serverless-style analysis functions ----------

def _register_function_routes(app: FastAPI):
    @app.post("/functions/analyze-email")
    async def analyze_email(request: Request):
        """
        Analyze a single email body. Gemini first, keyword scorer on any AI
        failure. With a userId the result is saved as a manual scan.
        """
        try:
            try:
                body = AnalyzeEmailRequest.model_validate(await request.json())
            except (ValueError, ValidationError):
                raise InvalidRequestError("Email content is required")
            if not body.email_content or not body.email_content.strip():
                raise InvalidRequestError("Email content is required")

            logger.info("starting email analysis", extra={"user_id": body.user_id})
            sample = EmailSample(content=body.email_content)
            result = await request.app.state.analyzer.analyze(sample, user_id=body.user_id)
            return JSONResponse(result.to_response())

        except Exception as exc:
            if isinstance(exc, InvalidRequestError):
                logger.warning("rejected analyze-email request", extra={"error": str(exc)})
            else:
                logger.exception("error in analyze-email")
            return JSONResponse(
                {
                    "error": str(exc),
                    "riskScore": 0,
                    "classification": "Error",
                    "explanation": "Failed to analyze email due to technical error",
                },
                status_code=500,
            )

    @app.post("/functions/scan-emails")
    async def scan_emails(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    ):
        """Batch-scan the caller's connected accounts."""
        try:
            user = _user_for(request, credentials)

            try:
                body = ScanRequest.model_validate(await request.json())
            except (ValueError, ValidationError):
                raise InvalidRequestError("Invalid action")
            if body.action != "scan_recent":
                raise InvalidRequestError("Invalid action")

            summary = await run_in_threadpool(request.app.state.analyzer.scan_recent, user.id)
            return JSONResponse(summary.model_dump(mode="json"))

        except PhishGuardError as exc:
            logger.warning("scan-emails failed", extra={"error": str(exc)})
            return JSONResponse({"error": str(exc)}, status_code=400)
        except Exception as exc:
            logger.exception("error in scan-emails")
            return JSONResponse({"error": str(exc) or "Internal server error"}, status_code=400)


# ---------- Dashboard API ----------

def _register_dashboard_routes(app: FastAPI):
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/auth/login")
    def login(body: LoginRequest, request: Request):
        try:
            session = request.app.state.auth.login(body.email, body.password)
        except AuthenticationError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
        return {
            "access_token": session.access_token,
            "token_type": "bearer",
            "user": {"id": session.user.id, "email": session.user.email},
        }

    @app.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
    def logout(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    ):
        if credentials is not None:
            request.app.state.auth.logout(credentials.credentials)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/auth/me")
    def me(user: User = Depends(get_current_user)):
        return {"id": user.id, "email": user.email}

    @app.get("/accounts")
    def list_accounts(request: Request, user: User = Depends(get_current_user)):
        return {"accounts": request.app.state.store.list_email_accounts(user.id)}

    @app.post("/accounts", status_code=status.HTTP_201_CREATED)
    def add_account(body: EmailAccountCreate, request: Request, user: User = Depends(get_current_user)):
        account = request.app.state.store.add_email_account(user.id, body.email_address, body.provider)
        logger.info("email account connected", extra={"user_id": user.id, "account_id": account["id"]})
        return account

    @app.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_account(account_id: str, request: Request, user: User = Depends(get_current_user)):
        if not request.app.state.store.delete_email_account(user.id, account_id):
            raise HTTPException(status_code=404, detail="Email account not found")
        logger.info("email account removed", extra={"user_id": user.id, "account_id": account_id})
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/emails")
    def list_emails(request: Request, limit: int = 10, user: User = Depends(get_current_user)):
        limit = max(1, min(limit, 100))
        return {"emails": request.app.state.store.list_scanned_emails(user.id, limit)}

    @app.get("/emails/{record_id}")
    def get_email(record_id: str, request: Request, user: User = Depends(get_current_user)):
        store = request.app.state.store
        record = store.get_scanned_email(user.id, record_id)
        if not record:
            raise HTTPException(status_code=404, detail="Scanned email not found")
        record["analyses"] = store.list_ai_analysis(record_id)
        return record

    @app.delete("/emails/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_email(record_id: str, request: Request, user: User = Depends(get_current_user)):
        if not request.app.state.store.delete_scanned_email(user.id, record_id):
            raise HTTPException(status_code=404, detail="Scanned email not found")
        logger.info("scanned email deleted", extra={"user_id": user.id, "record_id": record_id})
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/dashboard/stats")
    def dashboard_stats(request: Request, user: User = Depends(get_current_user)):
        return request.app.state.store.get_dashboard_stats(user.id)
