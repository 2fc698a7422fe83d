"""
aiohttp integration for cookie sessions.

The middleware reads the session cookie, decodes it with a SessionCodec,
and hands the result to handlers through an explicit ``SessionContext``
stored on the request (read it with ``get_session(request)``). After the
handler runs, changed or nearly expired sessions are re-encoded and set
back on the response; invalidated sessions delete the cookie.

A rejected cookie is never an error for the client: the request simply
continues with a fresh anonymous session. Fatal codec errors propagate
and become server errors.
"""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from aiohttp import web

from .codec import SessionCodec
from .conf import SESSION_CONTEXT, SESSION_COOKIE_NAME, SESSION_MAX_AGE
from .data import SessionData
from .exceptions import RejectionReason, SessionRejected

logger = logging.getLogger("navigator.session.middleware")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionContext:
    """Per-request session state handed to handlers."""

    session: SessionData
    now: datetime
    cookie_present: bool = False
    rejected: Optional[RejectionReason] = None

    @property
    def anonymous(self) -> bool:
        """No identity is attached, whether or not a cookie was accepted."""
        return self.session.identity is None


def get_session_context(request: web.Request) -> SessionContext:
    try:
        return request[SESSION_CONTEXT]
    except KeyError:
        raise RuntimeError(
            "Session middleware is not installed on this application"
        ) from None


def get_session(request: web.Request) -> SessionData:
    return get_session_context(request).session


def session_middleware(
    codec: SessionCodec,
    *,
    cookie_name: str = SESSION_COOKIE_NAME,
    max_age: int = SESSION_MAX_AGE,
    renew_threshold: float = 0.5,
    domain: Optional[str] = None,
    path: str = "/",
    secure: bool = True,
    httponly: bool = True,
    samesite: Optional[str] = "Lax",
    clock: Callable[[], datetime] = utcnow,
):
    """Build an aiohttp middleware bound to ``codec``.

    Args:
        codec: Session codec used for every request.
        cookie_name: Name of the session cookie.
        max_age: Session lifetime in seconds, also sent as cookie Max-Age.
        renew_threshold: Fraction of ``max_age``; sessions with less
            remaining lifetime are re-issued with a fresh expiry.
        clock: Returns the current UTC time.
    """
    renew_window = timedelta(seconds=max_age * renew_threshold)

    def _load(request: web.Request, now: datetime) -> SessionContext:
        raw = request.cookies.get(cookie_name)
        if raw:
            try:
                session = codec.decode(raw, now)
                return SessionContext(session=session, now=now, cookie_present=True)
            except SessionRejected as err:
                logger.info(
                    "Session cookie rejected (%s), starting an anonymous session",
                    err.reason.value,
                )
                rejected = err.reason
        else:
            rejected = None
        session = codec.new_session(now, max_age)
        # an untouched anonymous session does not need a cookie
        session.is_changed = False
        return SessionContext(
            session=session,
            now=now,
            cookie_present=bool(raw),
            rejected=rejected,
        )

    def _store(context: SessionContext, response: web.StreamResponse) -> None:
        session = context.session
        if response.prepared:
            logger.warning("Response already sent, session cookie not updated")
            return
        if session.invalidated:
            if context.cookie_present:
                response.del_cookie(cookie_name, domain=domain, path=path)
            return
        renew = (
            context.cookie_present
            and context.rejected is None
            and session.remaining(context.now) < renew_window
        )
        if not session.is_changed and not renew:
            if context.rejected is not None:
                response.del_cookie(cookie_name, domain=domain, path=path)
            return
        value = codec.renew(session, context.now, max_age)
        response.set_cookie(
            cookie_name,
            value,
            domain=domain,
            path=path,
            max_age=max_age,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        )
        session.is_changed = False

    @web.middleware
    async def middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        context = _load(request, clock())
        request[SESSION_CONTEXT] = context
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            # redirects and errors raised by handlers carry the cookie too
            _store(context, exc)
            raise
        _store(context, response)
        return response

    return middleware


def setup_session(app: web.Application, config, clock: Callable[[], datetime] = utcnow) -> SessionCodec:
    """Install the session middleware on ``app`` from a ``SessionConfig``."""
    codec = SessionCodec.from_config(config)
    app.middlewares.append(
        session_middleware(
            codec,
            cookie_name=config.cookie_name,
            max_age=config.max_age,
            renew_threshold=config.renew_threshold,
            domain=config.cookie_domain,
            path=config.cookie_path,
            secure=config.cookie_secure,
            httponly=config.cookie_httponly,
            samesite=config.cookie_samesite,
            clock=clock,
        )
    )
    logger.info(
        "Cookie sessions enabled: mode=%s cookie=%s active key v%d",
        codec.mode, config.cookie_name, codec.key_ring.active().id,
    )
    return codec
