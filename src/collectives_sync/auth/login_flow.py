#!/usr/bin/env python3
"""
Nextcloud Login Flow v2

Obtains an app password through the browser: the flow is started against
``/index.php/login/v2``, the user logs in on the returned page, and the poll
endpoint is queried until Nextcloud hands out the credentials, the user
gives up, or the attempt budget runs out.
"""

import asyncio
import webbrowser
from enum import Enum
from typing import Callable, Optional

import aiohttp
import structlog

from .credentials import CredentialProvider, Credentials, CredentialError

logger = structlog.get_logger(__name__)


class LoginFlowState(str, Enum):
    """Lifecycle of one login attempt."""
    REQUESTED = "requested"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    DENIED = "denied"


class LoginFlowDenied(CredentialError):
    """Raised when the server rejects the flow or polling fails."""
    pass


class LoginFlowTimeout(CredentialError):
    """Raised when the user did not finish logging in in time."""
    pass


class LoginFlowV2(CredentialProvider):
    """Browser-based credential acquisition for one Nextcloud instance."""

    def __init__(
        self,
        nextcloud_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        poll_interval: float = 5.0,
        max_attempts: int = 60,
        open_browser: Callable[[str], object] = webbrowser.open,
        on_status: Optional[Callable[[str], None]] = None,
        user_agent: str = "Collectives Sync"
    ):
        self.nextcloud_url = nextcloud_url.rstrip('/')
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.open_browser = open_browser
        self.on_status = on_status
        self.user_agent = user_agent

        self.session = session
        self._owns_session = session is None

        self.state: Optional[LoginFlowState] = None
        self.login_url: Optional[str] = None
        self.poll_endpoint: Optional[str] = None
        self.poll_token: Optional[str] = None
        self.attempts = 0

    async def __aenter__(self):
        """Async context manager entry."""
        if not self.session:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None

    def _status(self, message: str) -> None:
        logger.info(message, state=self.state.value if self.state else None)
        if self.on_status:
            self.on_status(message)

    def _fail(self, state: LoginFlowState, error: CredentialError) -> CredentialError:
        self.state = state
        logger.error("Login flow ended without credentials", state=state.value, error=str(error))
        return error

    async def start(self) -> str:
        """Start the flow and return the URL the user has to open."""
        if not self.session:
            self.session = aiohttp.ClientSession()
            self._owns_session = True

        endpoint = f"{self.nextcloud_url}/index.php/login/v2"
        self.state = LoginFlowState.REQUESTED

        try:
            async with self.session.post(endpoint, headers={"User-Agent": self.user_agent}) as response:
                if response.status != 200:
                    raise self._fail(
                        LoginFlowState.DENIED,
                        LoginFlowDenied(f"Failed to initiate login flow: {response.status}")
                    )
                data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise self._fail(LoginFlowState.DENIED, LoginFlowDenied(f"Failed to initiate login flow: {e}")) from e

        try:
            self.login_url = data["login"]
            self.poll_endpoint = data["poll"]["endpoint"]
            self.poll_token = data["poll"]["token"]
        except (KeyError, TypeError) as e:
            raise self._fail(LoginFlowState.DENIED, LoginFlowDenied(f"Unexpected login flow response: {e}")) from e

        self.state = LoginFlowState.PENDING
        self.attempts = 0
        logger.info("Login flow started", nextcloud_url=self.nextcloud_url)
        return self.login_url

    async def poll_once(self) -> Optional[Credentials]:
        """Ask the poll endpoint once.

        Returns:
            Credentials when the user has finished, None while still pending
        """
        if self.state != LoginFlowState.PENDING:
            raise LoginFlowDenied("Login flow is not pending")

        try:
            async with self.session.post(
                self.poll_endpoint,
                data={"token": self.poll_token},
                headers={"User-Agent": self.user_agent}
            ) as response:
                if response.status == 404:
                    return None
                if response.status != 200:
                    raise self._fail(
                        LoginFlowState.DENIED,
                        LoginFlowDenied(f"Authentication polling error: HTTP {response.status}")
                    )
                data = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise self._fail(LoginFlowState.DENIED, LoginFlowDenied(f"Authentication polling error: {e}")) from e

        try:
            credentials = Credentials(
                url=(data.get("server") or self.nextcloud_url).rstrip('/'),
                username=data["loginName"],
                secret=data["appPassword"]
            )
        except (KeyError, AttributeError) as e:
            raise self._fail(LoginFlowState.DENIED, LoginFlowDenied(f"Unexpected poll response: {e}")) from e

        self.state = LoginFlowState.SUCCEEDED
        return credentials

    async def acquire(self) -> Credentials:
        """Run the whole flow: start, open the browser, poll until done.

        Raises:
            LoginFlowDenied: the server refused the flow or polling failed
            LoginFlowTimeout: ``max_attempts`` polls without a result
        """
        login_url = await self.start()

        try:
            self.open_browser(login_url)
        except Exception as e:
            logger.warning("Could not open a browser", error=str(e), login_url=login_url)

        self._status("Nextcloud login page opened. Please log in through your browser.")

        while True:
            credentials = await self.poll_once()
            if credentials is not None:
                self._status("Successfully authenticated with Nextcloud!")
                return credentials

            self.attempts += 1
            if self.attempts >= self.max_attempts:
                raise self._fail(
                    LoginFlowState.TIMED_OUT,
                    LoginFlowTimeout("Authentication timed out. Please try again.")
                )

            remaining = int((self.max_attempts - self.attempts) * self.poll_interval // 60)
            self._status(f"Nextcloud: Waiting for authentication... ({remaining}m remaining)")
            await asyncio.sleep(self.poll_interval)

    async def get_credentials(self) -> Credentials:
        async with self:
            return await self.acquire()
