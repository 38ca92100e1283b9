"""FastAPI application entry point

Run with ``uvicorn dashboard.main:create_app --factory``.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
import logging

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dashboard.config.logging import configure_logging
from dashboard.config.settings import Settings
from dashboard.crawlers.github.errors import ConfigError, GitHubError, RateLimitError
from dashboard.orchestrator import DashboardOrchestrator
from dashboard.storage.repositories import NotFoundError

logger = logging.getLogger(__name__)

FORCE_VALUES = {"1", "true"}


class AutomationRequest(BaseModel):
    apply: bool = False


def is_force(refresh: Optional[str]) -> bool:
    return (refresh or "").strip().lower() in FORCE_VALUES


def _dump(items: List[Any]) -> List[Dict[str, Any]]:
    return [item.to_json() for item in items]


def _error(status_code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[DashboardOrchestrator] = None,
) -> FastAPI:
    """Build the API around one orchestrator. Routes only delegate to it."""

    settings = settings or Settings()
    configure_logging(settings.LOG_LEVEL)
    orchestrator = orchestrator or DashboardOrchestrator(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await orchestrator.aclose()

    app = FastAPI(
        title=settings.APP_NAME,
        description="GitHub account dashboard API",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConfigError)
    async def config_error_handler(request: Request, exc: ConfigError):
        return _error(500, str(exc))

    @app.exception_handler(RateLimitError)
    async def rate_limit_handler(request: Request, exc: RateLimitError):
        return _error(429, str(exc), headers={"Retry-After": str(exc.retry_after)})

    @app.exception_handler(GitHubError)
    async def github_error_handler(request: Request, exc: GitHubError):
        logger.error(f"GitHub request failed: {exc}")
        return _error(502, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(400, str(exc))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail), headers=exc.headers)

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "github-dashboard",
            "version": settings.APP_VERSION,
            "credentials": settings.has_credentials,
        }

    @app.get("/api/repos")
    async def get_repos(refresh: Optional[str] = None):
        return _dump(await orchestrator.get_repos(force=is_force(refresh)))

    @app.get("/api/issues")
    async def get_issues(refresh: Optional[str] = None):
        return _dump(await orchestrator.get_issues(force=is_force(refresh)))

    @app.get("/api/prs")
    async def get_pull_requests(refresh: Optional[str] = None):
        return _dump(await orchestrator.get_pull_requests(force=is_force(refresh)))

    @app.get("/api/commits")
    async def get_commits(refresh: Optional[str] = None):
        return _dump(await orchestrator.get_commits(force=is_force(refresh)))

    @app.get("/api/timeline")
    async def get_timeline(refresh: Optional[str] = None, limit: int = 200):
        return _dump(await orchestrator.get_timeline(limit=limit, force=is_force(refresh)))

    @app.get("/api/repo-context")
    async def get_repo_context(refresh: Optional[str] = None):
        return _dump(await orchestrator.get_repo_context(force=is_force(refresh)))

    @app.get("/api/stats")
    async def get_stats(refresh: Optional[str] = None):
        return (await orchestrator.get_stats(force=is_force(refresh))).to_json()

    @app.get("/api/ops")
    async def get_ops(refresh: Optional[str] = None):
        return (await orchestrator.get_ops_summary(force=is_force(refresh))).to_json()

    @app.post("/api/sync")
    async def run_sync(refresh: Optional[str] = None):
        return await orchestrator.run_sync(force=is_force(refresh))

    @app.post("/api/automation/run")
    async def run_automation(request: Optional[AutomationRequest] = None, refresh: Optional[str] = None):
        run = await orchestrator.run_automation(
            apply=bool(request and request.apply),
            force=is_force(refresh),
        )
        return {"ok": True, **run.to_json()}

    @app.get("/api/rules")
    async def list_rules():
        return {"rules": _dump(orchestrator.rules.list())}

    @app.post("/api/rules", status_code=201)
    async def create_rule(payload: Dict[str, Any] = Body(...)):
        return orchestrator.rules.create(payload).to_json()

    @app.patch("/api/rules")
    async def update_rule(payload: Dict[str, Any] = Body(...)):
        rule_id = payload.get("id")
        if not rule_id or not isinstance(rule_id, str):
            raise HTTPException(status_code=400, detail="id is required.")
        return orchestrator.rules.update(rule_id, payload).to_json()

    @app.delete("/api/rules")
    async def delete_rule(id: str = ""):
        if not id:
            raise HTTPException(status_code=400, detail="id query param is required.")
        orchestrator.rules.delete(id)
        return {"ok": True}

    @app.get("/api/alerts")
    async def list_alerts():
        return {"alerts": _dump(orchestrator.alerts.list())}

    @app.post("/api/alerts", status_code=201)
    async def create_alert(payload: Dict[str, Any] = Body(...)):
        return orchestrator.alerts.create(payload).to_json()

    @app.patch("/api/alerts")
    async def acknowledge_alert(payload: Dict[str, Any] = Body(...)):
        alert_id = payload.get("id")
        if not alert_id or not isinstance(alert_id, str):
            raise HTTPException(status_code=400, detail="id is required.")
        return orchestrator.alerts.acknowledge(alert_id, payload.get("acknowledged")).to_json()

    @app.delete("/api/alerts")
    async def delete_alert(id: str = ""):
        if not id:
            raise HTTPException(status_code=400, detail="id query param is required.")
        orchestrator.alerts.delete(id)
        return {"ok": True}

    @app.get("/api/knowledge")
    async def get_knowledge(repo: str = ""):
        if repo:
            entry = orchestrator.knowledge.get(repo)
            if entry is not None:
                return entry
        return {"repos": orchestrator.knowledge.all()}

    @app.post("/api/knowledge")
    async def upsert_knowledge(payload: Dict[str, Any] = Body(...)):
        return orchestrator.knowledge.upsert(
            payload.get("repo"),
            tags=payload.get("tags"),
            notes=payload.get("notes"),
        )

    @app.delete("/api/knowledge")
    async def delete_knowledge(repo: str = ""):
        if not repo:
            raise HTTPException(status_code=400, detail="repo query param is required.")
        orchestrator.knowledge.delete(repo)
        return {"ok": True}

    @app.post("/api/ai/summarize")
    async def summarize_repos(refresh: Optional[str] = None):
        return await orchestrator.summarize_repos(force=is_force(refresh))

    return app
