"""Explorer client for the Etherscan-style verification API."""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

import requests
from dateutil import parser as date_parser
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .. import __version__
from ..errors import (
    CancelledError,
    MigrationError,
    RejectedRequestError,
    SourceNotFoundError,
    TransientError,
)
from ..models.contract import (
    PollResult,
    SourceMetadata,
    SubmissionGuid,
    SubmissionRequest,
)
from ..models.migration import ExplorerConfig
from .dialects import ExplorerDialect, get_dialect
from .rate_limiter import RateLimiter, limiter_for
from .responses import (
    Envelope,
    is_rate_limited,
    parse_poll_response,
    parse_source_response,
    parse_submit_response,
)

logger = logging.getLogger(__name__)

SENSITIVE_PARAMS = {"apikey"}


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given as seconds or as an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def mask_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy request parameters with credentials masked and long values shortened."""
    masked: Dict[str, Any] = {}
    for key, value in (params or {}).items():
        if key in SENSITIVE_PARAMS and value:
            masked[key] = "****"
        elif isinstance(value, str) and len(value) > 80:
            masked[key] = f"<{len(value)} chars>"
        else:
            masked[key] = value
    return masked


class ExplorerClient:
    """
    Protocol-aware adapter around one explorer endpoint.

    Supports:
    - Fetching verified source metadata (`getsourcecode`)
    - Submitting verification requests (`verifysourcecode`)
    - Checking submission status (`checkverifystatus`)
    - Per-key request spacing shared across clients and threads
    - Bounded retries with backoff for transient failures

    Failure timings are kept apart: synchronous rejections raise
    RejectedRequestError and are never retried, network/5xx/rate-limit
    failures raise TransientError after the retry budget is spent, and
    asynchronous compilation results come back from poll_status.
    """

    def __init__(
        self,
        config: ExplorerConfig,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cancel_event: Optional[threading.Event] = None,
        pool_size: int = 10,
    ):
        """
        Initialize the explorer client.

        Args:
            config: Explorer connection settings
            session: Custom requests session
            rate_limiter: Override the shared per-key limiter
            cancel_event: Batch cancellation signal; interrupts waits
            pool_size: Connection pool size (match the worker count)
        """
        self.config = config
        self.dialect: ExplorerDialect = get_dialect(config.dialect)
        self.base_url = config.base_url.rstrip("/")
        self.cancel_event = cancel_event
        self._session = session or self._create_session(pool_size)
        self._rate_limiter = rate_limiter or limiter_for(
            self.base_url, config.api_key, config.min_request_interval
        )

    def _create_session(self, pool_size: int) -> requests.Session:
        """Create a requests session; retries are handled by the client itself."""
        session = requests.Session()

        # Transport-level retries would bypass request spacing and could
        # resend a verification POST, so urllib3 is told not to retry.
        adapter = HTTPAdapter(
            pool_connections=pool_size,
            pool_maxsize=pool_size,
            max_retries=Retry(total=0, raise_on_status=False),
        )
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers["User-Agent"] = f"contract-verification-migrator/{__version__}"

        return session

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def fetch_source(self, address: str) -> SourceMetadata:
        """
        Read the verified source metadata for a contract.

        Raises:
            SourceNotFoundError: The contract is unverified or unknown
            TransientError: Network, 5xx or rate-limit failure after retries
        """
        params = self._envelope_params(self.dialect.get_source_action)
        params["address"] = address

        envelope = self._send("GET", params, client_error=SourceNotFoundError)
        metadata = parse_source_response(address, envelope)
        logger.info(
            f"Fetched {metadata.contract_name} ({metadata.code_format.value}, "
            f"{metadata.compiler_version}) for {address} from {self.base_url}"
        )
        return metadata

    def submit(self, request: SubmissionRequest) -> SubmissionGuid:
        """
        Submit a verification request.

        Raises:
            AlreadyVerifiedError: The target already has the contract verified
            RejectedRequestError: The explorer refused the payload
            TransientError: The request could not be delivered
        """
        query: Dict[str, Any] = {}
        if self.config.chain_id:
            query["chainid"] = self.config.chain_id
        data = self.build_submit_params(request)

        envelope = self._send(
            "POST", query, data=data, client_error=RejectedRequestError, idempotent=False
        )
        guid = parse_submit_response(envelope)
        logger.info(f"Submitted {request.address} to {self.base_url}, guid {guid}")
        return guid

    def poll_status(self, guid: SubmissionGuid) -> PollResult:
        """
        Check a submission once. Does not retry; the caller spaces the polls.

        Raises:
            TransientError: The status request failed in transport
        """
        params = self._envelope_params(self.dialect.check_status_action)
        params["guid"] = guid

        envelope = self._send("GET", params, client_error=RejectedRequestError, attempts=1)
        result = parse_poll_response(envelope)
        logger.debug(f"Status of {guid}: {result.state.value} ({result.reason})")
        return result

    def build_submit_params(self, request: SubmissionRequest) -> Dict[str, str]:
        """Translate a normalized request into this explorer's form fields."""
        d = self.dialect
        data: Dict[str, str] = {
            "apikey": self.config.api_key,
            "module": d.module,
            "action": d.verify_action,
            d.address_field: request.address,
            d.source_code_field: request.source_code,
            d.code_format_field: d.code_format_value(request.code_format),
            d.contract_name_field: request.contract_name,
            d.compiler_version_field: request.compiler_version,
            d.optimization_field: "1" if request.optimization_used else "0",
            d.runs_field: str(request.runs),
        }
        if request.evm_version:
            data[d.evm_version_field] = request.evm_version

        license_code = d.license_value(request.license_type)
        if license_code:
            data[d.license_field] = license_code

        for field_name in d.constructor_argument_fields:
            data[field_name] = request.constructor_arguments

        for n, (name, address) in enumerate(request.libraries, start=1):
            data[d.library_name_field.format(n=n)] = name
            data[d.library_address_field.format(n=n)] = address

        return data

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _envelope_params(self, action: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "module": self.dialect.module,
            "action": action,
        }
        if self.config.api_key:
            params["apikey"] = self.config.api_key
        if self.config.chain_id:
            params["chainid"] = self.config.chain_id
        return params

    def _send(
        self,
        method: str,
        params: Dict[str, Any],
        data: Optional[Dict[str, Any]] = None,
        client_error: Type[MigrationError] = RejectedRequestError,
        idempotent: bool = True,
        attempts: Optional[int] = None,
    ) -> Envelope:
        """Send a request, retrying transient failures per the retry policy."""
        delays = self.config.retry.delays()
        if attempts is not None:
            delays = delays[:max(attempts - 1, 0)]

        attempt = 0
        while True:
            attempt += 1
            try:
                return self._send_once(method, params, data, client_error, idempotent)
            except TransientError as e:
                if not e.retryable or attempt > len(delays):
                    if attempt > 1:
                        e.reason = f"{e.reason} (after {attempt} attempts)"
                    raise
                delay = delays[attempt - 1]
                if e.retry_after is not None:
                    delay = max(delay, e.retry_after)
                logger.warning(
                    f"{method} {self.base_url} failed ({e.reason}); "
                    f"retry {attempt}/{len(delays)} in {delay:.1f}s"
                )
                self._wait(delay)

    def _send_once(
        self,
        method: str,
        params: Dict[str, Any],
        data: Optional[Dict[str, Any]],
        client_error: Type[MigrationError],
        idempotent: bool,
    ) -> Envelope:
        if not self._rate_limiter.acquire(self.cancel_event):
            raise CancelledError()

        logger.debug(f"{method} {self.base_url} params={mask_params(params)} data={mask_params(data)}")
        try:
            response = self._session.request(
                method,
                self.base_url,
                params=params,
                data=data,
                timeout=self.config.timeout,
            )
        except requests.exceptions.ConnectTimeout as e:
            raise TransientError(f"Connection timed out: {e}")
        except requests.exceptions.RequestException as e:
            # The explorer may already hold the payload; resending could
            # produce a second verification job.
            raise TransientError(f"Request failed: {e}", retryable=idempotent)

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientError(
                f"HTTP {response.status_code}",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if response.status_code >= 400:
            raise client_error(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError:
            raise TransientError(f"Non-JSON response (HTTP {response.status_code}): {response.text[:200]}")

        envelope = Envelope.from_json(body)
        if not envelope.ok and is_rate_limited(envelope.text):
            raise TransientError(envelope.text)
        return envelope

    def _wait(self, seconds: float) -> None:
        """Sleep between retries; abort if the batch is cancelled."""
        if self.cancel_event is not None:
            if self.cancel_event.wait(seconds):
                raise CancelledError()
            return
        if seconds > 0:
            time.sleep(seconds)

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()
