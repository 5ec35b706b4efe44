"""Migration orchestrator - drives fetch, normalize, submit and poll per contract."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, List, Optional

from .errors import (
    AlreadyVerifiedError,
    CancelledError,
    InvalidRequestError,
    MigrationError,
    RejectedRequestError,
    SourceNotFoundError,
    TransientError,
)
from .explorer.client import ExplorerClient
from .models.contract import PollState, SubmissionGuid
from .models.migration import (
    ExplorerConfig,
    MigrationConfig,
    MigrationOutcome,
    MigrationStage,
    OutcomeStatus,
    PollPolicy,
)
from .services.normalizer import SourceNormalizer
from .services.reporter import MigrationReport, ResultReporter
from .services.validator import RequestValidator, validate_address

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[MigrationOutcome], None]


class MigrationOrchestrator:
    """
    Orchestrates verification migration for a batch of contract addresses.

    Handles:
    - Bounded parallel processing of independent addresses
    - The per-address workflow Fetching -> Normalizing -> Submitting -> Polling
    - Skipping the poll when the target already has the contract verified
    - Continue-on-error and fail-fast batch policies
    - Cancellation of the whole batch
    """

    def __init__(
        self,
        config: MigrationConfig,
        source_client: Optional[ExplorerClient] = None,
        target_client: Optional[ExplorerClient] = None,
        cancel_event: Optional[threading.Event] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration
            source_client: Client for the source explorer (built from config if omitted)
            target_client: Client for the target explorer (built from config if omitted)
            cancel_event: Set to cancel the batch
            on_outcome: Called once per finished address, from the calling thread
        """
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self.on_outcome = on_outcome

        self._owned_clients: List[ExplorerClient] = []
        self.source_client = source_client or self._create_client(config.source)
        self.target_client = target_client or self._create_client(config.target)
        self.normalizer = SourceNormalizer(self.target_client.dialect)
        self.validator = RequestValidator()

        self._stop = threading.Event()  # Set by fail-fast

    def _create_client(self, explorer: ExplorerConfig) -> ExplorerClient:
        client = ExplorerClient(
            explorer, cancel_event=self.cancel_event, pool_size=self.config.max_workers
        )
        self._owned_clients.append(client)
        return client

    def cancel(self) -> None:
        """Cancel the batch. In-flight contracts end as Failed(Cancelled)."""
        logger.warning("Cancellation requested")
        self.cancel_event.set()

    def run(self, addresses: Iterable[str]) -> MigrationReport:
        """
        Migrate every address and return the report.

        Args:
            addresses: Contract addresses, processed independently

        Returns:
            MigrationReport with one outcome per attempted address, in input order
        """
        addresses = list(addresses)
        reporter = ResultReporter(addresses)
        if not addresses:
            logger.info("No addresses to migrate")
            return reporter.build()

        workers = min(self.config.max_workers, len(addresses))
        logger.info(
            f"Migrating {len(addresses)} contract(s) from {self.config.source.base_url} "
            f"to {self.config.target.base_url} with {workers} worker(s)"
        )

        try:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="migrate") as executor:
                futures = {
                    executor.submit(self._process, address): index
                    for index, address in enumerate(addresses)
                }
                collected: set = set()
                try:
                    self._collect(futures, reporter, collected)
                except KeyboardInterrupt:
                    logger.warning("Interrupted; cancelling in-flight contracts")
                    self.cancel()
                    self._collect(futures, reporter, collected)
        finally:
            for client in self._owned_clients:
                client.close()

        report = reporter.build(cancelled=self.cancel_event.is_set())
        if report.skipped:
            logger.warning(f"{len(report.skipped)} address(es) were not attempted")
        return report

    def _collect(self, futures: dict, reporter: ResultReporter, collected: set) -> None:
        """Record outcomes as workers finish, skipping futures already collected."""
        pending = [f for f in futures if f not in collected]
        for future in as_completed(pending):
            collected.add(future)
            outcome = future.result()
            if outcome is None:
                continue
            reporter.record(futures[future], outcome)
            if self.on_outcome:
                self.on_outcome(outcome)

    def _process(self, address: str) -> Optional[MigrationOutcome]:
        """Worker entry point. Returns None if the address was never started."""
        if self._stop.is_set() or self.cancel_event.is_set():
            return None

        outcome = self.migrate(address)

        if outcome.is_failure:
            logger.error(f"{address}: {outcome.describe()}")
            if not self.config.continue_on_error:
                logger.warning("Fail-fast: not starting remaining addresses")
                self._stop.set()
        else:
            logger.info(f"{address}: {outcome.describe()}")
        return outcome

    def migrate(self, address: str) -> MigrationOutcome:
        """Run the full workflow for one address and return its terminal outcome."""
        stage = MigrationStage.FETCHING
        try:
            self._check_cancelled()
            address_error = validate_address(address)
            if address_error:
                raise InvalidRequestError(address_error)
            metadata = self.source_client.fetch_source(address)

            stage = MigrationStage.NORMALIZING
            self._check_cancelled()
            request = self.normalizer.normalize(metadata)
            self.validator.check(request)

            stage = MigrationStage.SUBMITTING
            self._check_cancelled()
            try:
                guid = self.target_client.submit(request)
            except AlreadyVerifiedError as e:
                return MigrationOutcome(
                    address=address,
                    status=OutcomeStatus.ALREADY_VERIFIED,
                    reason=e.reason,
                    stage=MigrationStage.VERIFIED,
                )

            stage = MigrationStage.POLLING
            return self._await_verification(address, guid)

        except SourceNotFoundError as e:
            return self._failure(address, OutcomeStatus.SOURCE_NOT_FOUND, e, stage)
        except TransientError as e:
            return self._failure(address, OutcomeStatus.TRANSIENT_ERROR_EXHAUSTED, e, stage)
        except MigrationError as e:
            return self._failure(address, OutcomeStatus.FAILED, e, stage)

    def _await_verification(self, address: str, guid: SubmissionGuid) -> MigrationOutcome:
        """Poll the target until the job finishes or the poll budget runs out."""
        policy: PollPolicy = self.config.poll
        last_reason = None

        for poll_number in range(1, policy.max_polls + 1):
            if self.cancel_event.wait(policy.delay_before(poll_number)):
                return self._failure(
                    address, OutcomeStatus.FAILED, CancelledError(), MigrationStage.POLLING,
                    guid=guid, elapsed_polls=poll_number - 1,
                )

            try:
                result = self.target_client.poll_status(guid)
            except CancelledError as e:
                return self._failure(
                    address, OutcomeStatus.FAILED, e, MigrationStage.POLLING,
                    guid=guid, elapsed_polls=poll_number - 1,
                )
            except TransientError as e:
                logger.warning(f"{address}: poll {poll_number}/{policy.max_polls} failed: {e.reason}")
                last_reason = e.reason
                continue
            except RejectedRequestError as e:
                return self._failure(
                    address, OutcomeStatus.FAILED, e, MigrationStage.POLLING,
                    guid=guid, elapsed_polls=poll_number,
                )

            if result.state == PollState.SUCCESS:
                return MigrationOutcome(
                    address=address,
                    status=(
                        OutcomeStatus.ALREADY_VERIFIED if result.already_verified
                        else OutcomeStatus.VERIFIED
                    ),
                    reason=result.reason,
                    elapsed_polls=poll_number,
                    stage=MigrationStage.VERIFIED,
                    guid=guid,
                )
            if result.state == PollState.FAILURE:
                return MigrationOutcome(
                    address=address,
                    status=OutcomeStatus.FAILED,
                    reason=result.reason,
                    error_code="verification_failed",
                    elapsed_polls=poll_number,
                    stage=MigrationStage.FAILED,
                    guid=guid,
                )

            logger.debug(f"{address}: {result.reason or 'pending'} (poll {poll_number}/{policy.max_polls})")
            last_reason = result.reason

        reason = f"Verification still pending after {policy.max_polls} polls"
        if last_reason:
            reason = f"{reason} (last status: {last_reason})"
        return MigrationOutcome(
            address=address,
            status=OutcomeStatus.TRANSIENT_ERROR_EXHAUSTED,
            reason=reason,
            error_code=TransientError.error_code,
            elapsed_polls=policy.max_polls,
            stage=MigrationStage.FAILED,
            guid=guid,
        )

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise CancelledError()

    def _failure(
        self,
        address: str,
        status: OutcomeStatus,
        error: MigrationError,
        stage: MigrationStage,
        guid: Optional[str] = None,
        elapsed_polls: int = 0,
    ) -> MigrationOutcome:
        if status == OutcomeStatus.FAILED:
            reason = error.describe()
        else:
            reason = error.reason if error.reason != error.label else None
        logger.debug(f"{address} failed during {stage.value}: {reason}")
        return MigrationOutcome(
            address=address,
            status=status,
            reason=reason,
            error_code=error.error_code,
            elapsed_polls=elapsed_polls,
            stage=stage,
            guid=guid,
        )


def copy_verification(
    addresses: List[str],
    source_api_key: str,
    source_url: str,
    target_api_key: str,
    target_url: str,
    continue_on_error: bool = True,
    *,
    max_workers: int = 4,
    poll: Optional[PollPolicy] = None,
    cancel_event: Optional[threading.Event] = None,
    on_outcome: Optional[OutcomeCallback] = None,
    source_dialect: str = "etherscan",
    target_dialect: str = "etherscan",
) -> MigrationReport:
    """
    Copy contract verifications from one explorer to another.

    Args:
        addresses: Contract addresses to migrate
        source_api_key: API key for the source explorer
        source_url: API URL of the source explorer
        target_api_key: API key for the target explorer
        target_url: API URL of the target explorer
        continue_on_error: Keep going after a failed contract (False = fail-fast)
        max_workers: Addresses processed concurrently
        poll: Status polling schedule
        cancel_event: Set to cancel the batch
        on_outcome: Called once per finished address
        source_dialect: Field table of the source explorer
        target_dialect: Field table of the target explorer

    Returns:
        MigrationReport with outcomes in input order
    """
    addresses = list(addresses)
    if not addresses:
        return ResultReporter([]).build()

    config = MigrationConfig(
        source=ExplorerConfig(base_url=source_url, api_key=source_api_key, dialect=source_dialect),
        target=ExplorerConfig(base_url=target_url, api_key=target_api_key, dialect=target_dialect),
        continue_on_error=continue_on_error,
        max_workers=max_workers,
        poll=poll or PollPolicy(),
    )
    orchestrator = MigrationOrchestrator(config, cancel_event=cancel_event, on_outcome=on_outcome)
    return orchestrator.run(addresses)
