"""
Handler chain: authentication và logging bọc quanh core handler

Stages share the ImageHandler contract, so they stack in any order; the
canonical order is declared once in build_handler_chain().
"""

import logging
import time
from typing import Callable, Protocol

from .errors import ImageApiError, UnauthorizedError
from .handlers import ImageHandler
from .models import AuthIdentity, LogEntry, RequestContext
from .sinks import LogSink

logger = logging.getLogger(__name__)

StageFactory = Callable[[ImageHandler], ImageHandler]


class TokenVerifier(Protocol):
    async def verify_token(self, token: str) -> AuthIdentity:
        ...


class AuthenticationStage:
    """Yêu cầu token hợp lệ trước khi gọi inner handler"""

    def __init__(self, inner: ImageHandler, verifier: TokenVerifier):
        self.inner = inner
        self.verifier = verifier

    async def handle(self, context: RequestContext, buffer: bytes) -> bytes:
        if not context.token:
            raise UnauthorizedError("missing token")

        try:
            identity = await self.verifier.verify_token(context.token)
        except Exception as e:
            logger.info(f"Token rejected for {context.endpoint}: {e}")
            raise UnauthorizedError("invalid token") from e

        context.attach_identity(identity)
        return await self.inner.handle(context, buffer)


class LoggingStage:
    """Ghi đúng một LogEntry cho mỗi request, success hoặc error"""

    def __init__(self, inner: ImageHandler, sink: LogSink, clock: Callable[[], float] = time.perf_counter):
        self.inner = inner
        self.sink = sink
        self.clock = clock

    async def handle(self, context: RequestContext, buffer: bytes) -> bytes:
        start = self.clock()
        try:
            result = await self.inner.handle(context, buffer)
        except Exception as e:
            message = e.message if isinstance(e, ImageApiError) else str(e) or type(e).__name__
            await self._record(context, start, "error", message)
            raise
        await self._record(context, start, "success")
        return result

    async def _record(self, context: RequestContext, start: float, result: str, message: str = None):
        identity = context.identity
        entry = LogEntry(
            level="info" if result == "success" else "error",
            user=identity.email if identity else None,
            user_id=identity.user_id if identity else None,
            endpoint=context.endpoint,
            params=context.params_for_log(),
            duration_ms=max(0.0, (self.clock() - start) * 1000),
            result=result,
            message=message,
        )
        try:
            await self.sink.append(entry)
        except Exception as e:
            logger.warning(f"Failed to record log entry for {context.endpoint}: {e}")


def authenticated(verifier: TokenVerifier) -> StageFactory:
    return lambda inner: AuthenticationStage(inner, verifier)


def logged(sink: LogSink) -> StageFactory:
    return lambda inner: LoggingStage(inner, sink)


def compose(core: ImageHandler, *stages: StageFactory) -> ImageHandler:
    """
    Wrap core handler với các stages

    Stages are listed innermost first: compose(core, a, b) -> b(a(core)).
    """
    handler = core
    for stage in stages:
        handler = stage(handler)
    return handler


def build_handler_chain(core: ImageHandler, verifier: TokenVerifier, sink: LogSink) -> ImageHandler:
    """Canonical order: logging outermost, authentication inside it"""
    return compose(core, authenticated(verifier), logged(sink))
