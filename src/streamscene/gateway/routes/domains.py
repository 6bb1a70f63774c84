"""Mount points for the application's functional domains.

Each domain package contributes its handlers to the router registered here;
the gateway only fixes the prefix and the precedence.
"""

from fastapi import APIRouter

# (prefix, name) in registration order; prefixes are disjoint
API_DOMAINS = (
    ("/api/ai", "ai"),
    ("/api/schedule", "schedule"),
    ("/api/content-scheduler", "content-scheduler"),
    ("/api/tasks", "tasks"),
    ("/api/s3", "s3"),
    ("/api/files", "files"),
    ("/api/shares", "shares"),
    ("/api/budget", "budget"),
    ("/api/threads", "threads"),
    ("/api/caption", "caption"),
)

social_router = APIRouter(tags=["social"])
general_router = APIRouter()

domain_routers: dict[str, APIRouter] = {
    name: APIRouter(tags=[name]) for _, name in API_DOMAINS
}
