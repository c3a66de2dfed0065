"""
Adaptive AI Service FastAPI Application

HTTP surface over AdaptiveAIService.

Endpoints:
    POST /generate - Generate a completion (200) or batch it (202)
    GET /generate/{request_id} - Poll a batched request
    DELETE /generate/{request_id} - Cancel a batched request
    GET /health - Provider availability
    GET /stats - Cache, queue and provider statistics
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config.ai_config import AIServiceConfig
from ..llm.base import AIServiceError, AllProvidersUnavailable, ValidationError
from ..models.llm_models import (
    CompletionRequest,
    CompletionResponse,
    ComplexityTier,
    Message,
    PriorityTier,
    ProviderName,
    QueuedAcknowledgement,
    ResponseFormat,
)
from ..services.completion_service import AdaptiveAIService

logger = logging.getLogger(__name__)

# Seconds between client-disconnect checks while holding a wait=true request
DISCONNECT_POLL_INTERVAL = 0.5

# nginx convention for "client closed request"
CLIENT_CLOSED_REQUEST = 499


# Request Models
class GenerateRequest(BaseModel):
    """Request body for POST /generate."""

    user_id: str = Field(..., alias="userId", min_length=1, description="Requesting user")
    messages: List[Message] = Field(..., min_length=1, description="Chat messages")
    complexity: Optional[ComplexityTier] = Field(default=None, description="Complexity override")
    priority: PriorityTier = Field(default=PriorityTier.NORMAL)
    response_format: ResponseFormat = Field(default=ResponseFormat.TEXT, alias="responseFormat")
    force_fresh: bool = Field(default=False, alias="forceFresh")
    preferred_provider: Optional[ProviderName] = Field(default=None, alias="preferredProvider")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "userId": "user-123",
                "messages": [{"role": "user", "content": "What are some healthy snacks?"}],
                "priority": "normal",
            }
        }

    def to_completion_request(self) -> CompletionRequest:
        return CompletionRequest(
            user_id=self.user_id,
            messages=self.messages,
            complexity=self.complexity,
            priority=self.priority,
            response_format=self.response_format,
            force_fresh=self.force_fresh,
            preferred_provider=self.preferred_provider,
        )


def error_envelope(
    status_code: int,
    error: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """JSON error body shared by every failure response."""
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message},
        headers=headers,
    )


def render_response(response: CompletionResponse) -> Dict[str, Any]:
    """Wire format of a completed response."""
    metadata: Dict[str, Any] = {
        "complexity": response.complexity,
        "processingTime": response.processing_time_ms,
        "modelUsed": response.model,
        "provider": response.provider,
        "cached": response.cached,
        "fallbackUsed": response.fallback_used,
        "queued": response.queued,
        "inputTokens": response.input_tokens,
        "outputTokens": response.output_tokens,
    }
    if response.cache_type is not None:
        metadata["cacheType"] = response.cache_type
        metadata["similarity"] = response.similarity

    return {
        "requestId": response.request_id,
        "response": response.content,
        "metadata": metadata,
    }


def render_acknowledgement(ack: QueuedAcknowledgement) -> Dict[str, Any]:
    """Wire format of a batched request."""
    return {
        "queued": True,
        "requestId": ack.request_id,
        "queuePosition": ack.queue_position,
        "estimatedWaitTime": ack.estimated_wait_seconds,
        "priority": ack.priority,
    }


def render_stats(stats: Dict[str, Any]) -> Dict[str, Any]:
    """Wire format of service statistics."""
    queue = stats["queue"]
    cache = stats["cache"]
    orchestrator = stats["orchestrator"]
    return {
        "activePrompts": stats["active_prompts"],
        "queueSizes": queue.queue_sizes,
        "isProcessingBatch": queue.is_processing_batch,
        "queue": {
            "processed": queue.processed,
            "failed": queue.failed,
            "retried": queue.retried,
            "cancelled": queue.cancelled,
        },
        "cache": {
            "hits": cache.hits,
            "misses": cache.misses,
            "size": cache.size,
            "maxSize": cache.max_size,
            "diskSize": cache.disk_size,
            "fingerprintHits": cache.fingerprint_hits,
            "coalesced": cache.coalesced,
            "evictions": cache.evictions,
            "hitRate": round(cache.hit_rate, 4),
            "createdAt": cache.created_at.isoformat(),
            "lastCleanup": cache.last_cleanup.isoformat() if cache.last_cleanup else None,
        },
        "orchestrator": {
            "serviceUsage": orchestrator["service_usage"],
            "tokenUsage": orchestrator["token_usage"],
            "fallbacks": orchestrator["fallbacks"],
        },
    }


async def wait_for_queued(
    service: AdaptiveAIService,
    request_id: str,
    request: Request,
) -> Optional[CompletionResponse]:
    """
    Hold the connection until a batched request finishes.

    CRITICAL: A client disconnect cancels the queued item

    Returns:
        The response, or None if the client went away
    """
    waiter = asyncio.ensure_future(service.wait_for_result(request_id))
    try:
        while True:
            done, _ = await asyncio.wait({waiter}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                if waiter.cancelled():
                    raise StarletteHTTPException(
                        status_code=404,
                        detail=f"Request {request_id} was cancelled",
                    )
                return waiter.result()

            if await request.is_disconnected():
                logger.info(f"Client disconnected, cancelling {request_id}")
                service.cancel(request_id)
                return None
    finally:
        if not waiter.done():
            waiter.cancel()


def create_app(
    service: Optional[AdaptiveAIService] = None,
    config: Optional[AIServiceConfig] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Service instance (built from config if None)
        config: Configuration used when building the service

    Returns:
        Configured FastAPI app
    """
    service = service or AdaptiveAIService(config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan handler for application startup/shutdown"""
        logger.info("=" * 60)
        logger.info(" Adaptive AI Service Starting")
        logger.info(f"   Providers: {', '.join(service.providers) or 'none'}")
        logger.info(f"   Batched priorities: {', '.join(service.config.batch_priorities)}")
        logger.info("=" * 60)
        service.start()
        try:
            yield
        finally:
            await service.shutdown()

    app = FastAPI(
        title="Adaptive AI Service",
        description="Cached, batched, multi-provider AI completions",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Malformed request body"
        return error_envelope(400, ValidationError.code, message)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return error_envelope(400, exc.code, str(exc))

    @app.exception_handler(AllProvidersUnavailable)
    async def unavailable_handler(request: Request, exc: AllProvidersUnavailable):
        return error_envelope(
            503,
            exc.code,
            str(exc),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(AIServiceError)
    async def service_error_handler(request: Request, exc: AIServiceError):
        logger.error(f"Service error on {request.url.path}: {exc}")
        return error_envelope(500, exc.code, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = exc.detail if exc.detail != "Not Found" else f"Route {request.url.path} not found"
            return error_envelope(404, "not_found", message)
        return error_envelope(exc.status_code, "http_error", str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
        return error_envelope(500, "internal_error", "Internal server error")

    @app.post("/generate")
    async def generate(body: GenerateRequest, request: Request, wait: bool = False):
        """
        Generate a completion.

        Returns 200 with the response, or 202 with queue position when the
        request was batched. With wait=true the connection is held until the
        batched result is ready.
        """
        result = await service.generate_completion(body.to_completion_request())

        if isinstance(result, QueuedAcknowledgement):
            if not wait:
                return JSONResponse(status_code=202, content=render_acknowledgement(result))
            result = await wait_for_queued(service, result.request_id, request)
            if result is None:
                return Response(status_code=CLIENT_CLOSED_REQUEST)

        return render_response(result)

    @app.get("/generate/{request_id}")
    async def get_generation(request_id: str):
        """Poll a batched request: 200 finished, 202 waiting, 404 unknown."""
        result = service.get_queued_result(request_id)
        if result is None:
            return error_envelope(404, "not_found", f"Request {request_id} not found")
        if isinstance(result, QueuedAcknowledgement):
            return JSONResponse(status_code=202, content=render_acknowledgement(result))
        return render_response(result)

    @app.delete("/generate/{request_id}")
    async def cancel_generation(request_id: str):
        """Cancel a batched request that has not been dispatched."""
        if not service.cancel(request_id):
            return error_envelope(404, "not_found", f"No cancellable request {request_id}")
        return Response(status_code=204)

    @app.get("/health")
    async def health_check():
        """Provider availability; 503 when no provider can be used."""
        health = service.get_health()
        status_code = 200 if health["status"] == "healthy" else 503
        return JSONResponse(status_code=status_code, content=health)

    @app.get("/stats")
    async def stats():
        """Cache, queue and provider statistics."""
        return render_stats(service.get_stats())

    return app
