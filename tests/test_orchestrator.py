"""Tests for MigrationOrchestrator and the copy_verification entry point."""

import threading

from unittest.mock import MagicMock, patch

from verification_migrator.errors import (
    CancelledError,
    RejectedRequestError,
    SourceNotFoundError,
    TransientError,
)
from verification_migrator.explorer.client import ExplorerClient
from verification_migrator.models.contract import PollResult, StandardJsonInput
from verification_migrator.models.migration import (
    MigrationStage,
    OutcomeStatus,
    PollPolicy,
)
from verification_migrator.orchestrator import MigrationOrchestrator, copy_verification

from tests.conftest import (
    ADDRESS_A,
    ADDRESS_B,
    ADDRESS_C,
    already_verified,
    envelope,
    make_metadata,
    make_response,
    pass_result,
)


def make_orchestrator(config, source, target, **kwargs):
    return MigrationOrchestrator(config, source_client=source, target_client=target, **kwargs)


def verifiable(source, target, address, guid, polls=None):
    """Register a contract that verifies on the first poll."""
    source.sources[address] = make_metadata(address)
    target.submissions[address] = [guid]
    target.polls[guid] = list(polls or [pass_result()])


class TestSingleContract:
    def test_verified(self, migration_config, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a", [
            PollResult.pending("Pending in queue"),
            pass_result(),
        ])

        report = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A])

        outcome = report.outcomes[0]
        assert outcome.status == OutcomeStatus.VERIFIED
        assert outcome.elapsed_polls == 2
        assert outcome.guid == "guid-a"
        assert report.verified == 1
        assert not report.has_failures

    def test_already_verified_skips_polling(self, migration_config, fake_source, fake_target):
        fake_source.sources[ADDRESS_A] = make_metadata(ADDRESS_A)
        fake_target.submissions[ADDRESS_A] = [already_verified()]

        report = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A])

        assert report.outcomes[0].status == OutcomeStatus.ALREADY_VERIFIED
        assert report.outcomes[0].elapsed_polls == 0
        assert len(fake_target.submit_calls) == 1
        assert fake_target.poll_calls == []

    def test_already_verified_reported_by_poll(self, migration_config, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a", [
            PollResult.success("Already Verified", already_verified=True),
        ])

        report = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A])

        assert report.outcomes[0].status == OutcomeStatus.ALREADY_VERIFIED

    def test_verification_failure(self, migration_config, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a", [
            PollResult.failure("Fail - Unable to verify"),
        ])

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.reason == "Fail - Unable to verify"
        assert outcome.elapsed_polls == 1

    def test_polling_is_bounded(self, migration_config, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a", [
            PollResult.pending("Pending in queue") for _ in range(3)
        ])

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.TRANSIENT_ERROR_EXHAUSTED
        assert outcome.elapsed_polls == 3
        assert len(fake_target.poll_calls) == 3
        assert "Pending in queue" in outcome.reason

    def test_transient_poll_errors_use_up_polls(self, migration_config, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a", [
            TransientError("HTTP 503"),
            pass_result(),
        ])

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.VERIFIED
        assert outcome.elapsed_polls == 2

    def test_rejected_poll_keeps_guid_and_poll_count(self, migration_config, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a", [
            PollResult.pending("Pending in queue"),
            RejectedRequestError("HTTP 403"),
        ])

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_code == "rejected_request"
        assert outcome.stage == MigrationStage.POLLING
        assert outcome.guid == "guid-a"
        assert outcome.elapsed_polls == 2

    def test_rejected_submission(self, migration_config, fake_source, fake_target):
        fake_source.sources[ADDRESS_A] = make_metadata(ADDRESS_A)
        fake_target.submissions[ADDRESS_A] = [RejectedRequestError("Invalid compiler version")]

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.reason == "RejectedRequest: Invalid compiler version"
        assert outcome.error_code == "rejected_request"
        assert outcome.stage == MigrationStage.SUBMITTING

    def test_transient_fetch_failure(self, migration_config, fake_source, fake_target):
        fake_source.sources[ADDRESS_A] = TransientError("HTTP 502 (after 3 attempts)")

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.TRANSIENT_ERROR_EXHAUSTED
        assert outcome.stage == MigrationStage.FETCHING
        assert fake_target.submit_calls == []

    def test_invalid_address_makes_no_calls(self, migration_config, fake_source, fake_target):
        outcome = make_orchestrator(migration_config, fake_source, fake_target).run(["0xAAA"]).outcomes[0]

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.reason.startswith("InvalidRequest: InvalidAddress")
        assert fake_source.fetch_calls == []

    def test_invalid_request_is_not_submitted(self, migration_config, fake_source, fake_target):
        fake_source.sources[ADDRESS_A] = make_metadata(ADDRESS_A, constructor_arguments="not hex")

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.stage == MigrationStage.NORMALIZING
        assert fake_target.submit_calls == []

    def test_too_many_libraries(self, migration_config, fake_source, fake_target):
        libraries = {f"Lib{i}": "0x" + f"{i:040x}" for i in range(11)}
        fake_source.sources[ADDRESS_A] = make_metadata(ADDRESS_A, libraries=libraries)

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_code == "unsupported_library_count"

    def test_standard_json_is_submitted_deterministically(
        self, migration_config, fake_source, fake_target, standard_json_document
    ):
        fake_source.sources[ADDRESS_A] = make_metadata(
            ADDRESS_A, source_code=StandardJsonInput(standard_json_document)
        )
        fake_target.submissions[ADDRESS_A] = ["guid-a"]
        fake_target.polls["guid-a"] = [pass_result()]

        make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A])

        request = fake_target.submit_calls[0]
        assert request.contract_name == "contracts/Token.sol:Token"
        assert request.source_code.startswith('{"language":"Solidity","settings":')


class TestBatch:
    def test_source_not_found_does_not_abort_batch(self, migration_config, fake_source, fake_target):
        fake_source.sources[ADDRESS_A] = SourceNotFoundError("Contract source code not verified")
        verifiable(fake_source, fake_target, ADDRESS_B, "guid-b")

        report = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A, ADDRESS_B])

        assert [o.address for o in report.outcomes] == [ADDRESS_A, ADDRESS_B]
        assert report.outcomes[0].status == OutcomeStatus.SOURCE_NOT_FOUND
        assert report.outcomes[0].describe().startswith("SourceNotFound")
        assert report.outcomes[1].status == OutcomeStatus.VERIFIED
        assert report.failed == 1
        assert report.verified == 1
        assert report.skipped == []

    def test_malformed_source_response_does_not_abort_batch(
        self, migration_config, source_config, source_item, fake_target
    ):
        bodies = {
            ADDRESS_A: envelope(result=["not-an-object"]),
            ADDRESS_B: envelope(result=[source_item]),
        }

        def respond(method, url, params=None, **kwargs):
            return make_response(json_data=bodies[params["address"]])

        session = MagicMock()
        session.request.side_effect = respond
        source = ExplorerClient(source_config, session=session)
        fake_target.submissions[ADDRESS_B] = ["guid-b"]
        fake_target.polls["guid-b"] = [pass_result()]

        report = make_orchestrator(migration_config, source, fake_target).run([ADDRESS_A, ADDRESS_B])

        assert report.outcomes[0].status == OutcomeStatus.FAILED
        assert report.outcomes[0].error_code == "unrecognized_format"
        assert report.outcomes[0].describe().startswith("Failed: UnrecognizedFormat")
        assert report.outcomes[1].status == OutcomeStatus.VERIFIED
        assert report.skipped == []

    def test_outcomes_follow_input_order(self, migration_config, fake_source, fake_target):
        addresses = ["0x" + f"{i:040x}" for i in range(1, 9)]
        for i, address in enumerate(addresses):
            verifiable(fake_source, fake_target, address, f"guid-{i}")
        migration_config.max_workers = 4

        report = make_orchestrator(migration_config, fake_source, fake_target).run(addresses)

        assert [o.address for o in report.outcomes] == addresses
        assert report.verified == len(addresses)

    def test_duplicate_addresses_get_separate_outcomes(self, migration_config, fake_source, fake_target):
        fake_source.sources[ADDRESS_A] = make_metadata(ADDRESS_A)
        fake_target.submissions[ADDRESS_A] = ["guid-1", already_verified()]
        fake_target.polls["guid-1"] = [pass_result()]
        migration_config.max_workers = 1

        report = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A, ADDRESS_A])

        assert [o.status for o in report.outcomes] == [
            OutcomeStatus.VERIFIED,
            OutcomeStatus.ALREADY_VERIFIED,
        ]

    def test_fail_fast_stops_remaining(self, migration_config, fake_source, fake_target):
        migration_config.continue_on_error = False
        migration_config.max_workers = 1
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a")
        fake_source.sources[ADDRESS_B] = SourceNotFoundError()
        verifiable(fake_source, fake_target, ADDRESS_C, "guid-c")

        report = make_orchestrator(migration_config, fake_source, fake_target).run(
            [ADDRESS_A, ADDRESS_B, ADDRESS_C]
        )

        assert [o.status for o in report.outcomes] == [
            OutcomeStatus.VERIFIED,
            OutcomeStatus.SOURCE_NOT_FOUND,
        ]
        assert report.skipped == [ADDRESS_C]
        assert ADDRESS_C not in fake_source.fetch_calls

    def test_on_outcome_called_per_address(self, migration_config, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a")
        fake_source.sources[ADDRESS_B] = SourceNotFoundError()
        seen = []

        make_orchestrator(migration_config, fake_source, fake_target, on_outcome=seen.append).run(
            [ADDRESS_A, ADDRESS_B]
        )

        assert sorted(o.address for o in seen) == [ADDRESS_A, ADDRESS_B]

    def test_empty_batch(self, migration_config, fake_source, fake_target):
        report = make_orchestrator(migration_config, fake_source, fake_target).run([])

        assert report.outcomes == []
        assert not report.has_failures
        assert fake_source.fetch_calls == []

    def test_injected_clients_are_not_closed(self, migration_config, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a")
        make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A])
        assert not fake_source.closed
        assert not fake_target.closed


class TestCancellation:
    def test_cancelled_before_start(self, migration_config, fake_source, fake_target):
        cancel = threading.Event()
        cancel.set()

        report = make_orchestrator(
            migration_config, fake_source, fake_target, cancel_event=cancel
        ).run([ADDRESS_A, ADDRESS_B])

        assert report.outcomes == []
        assert report.skipped == [ADDRESS_A, ADDRESS_B]
        assert report.cancelled
        assert fake_source.fetch_calls == []

    def test_in_flight_poll_is_abandoned(self, migration_config, fake_source, fake_target):
        cancel = threading.Event()
        migration_config.poll = PollPolicy(max_polls=5, interval=0.0)
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a")

        def cancelling_poll(guid):
            fake_target.poll_calls.append(guid)
            cancel.set()
            return PollResult.pending("Pending in queue")

        fake_target.poll_status = cancelling_poll

        report = make_orchestrator(
            migration_config, fake_source, fake_target, cancel_event=cancel
        ).run([ADDRESS_A])

        outcome = report.outcomes[0]
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.reason == "Cancelled"
        assert outcome.error_code == "cancelled"
        assert outcome.elapsed_polls == 1
        assert len(fake_target.poll_calls) == 1

    def test_cancelled_during_fetch(self, migration_config, fake_source, fake_target):
        fake_source.sources[ADDRESS_A] = CancelledError()

        outcome = make_orchestrator(migration_config, fake_source, fake_target).run([ADDRESS_A]).outcomes[0]

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.reason == "Cancelled"


class TestCopyVerification:
    def test_empty_list_touches_nothing(self):
        with patch("verification_migrator.orchestrator.ExplorerClient") as client_cls:
            report = copy_verification([], "s-key", "https://s/api", "t-key", "https://t/api")

        assert report.outcomes == []
        client_cls.assert_not_called()

    def test_builds_config_and_runs(self, fake_source, fake_target):
        verifiable(fake_source, fake_target, ADDRESS_A, "guid-a")
        fake_source.sources[ADDRESS_B] = SourceNotFoundError()

        with patch(
            "verification_migrator.orchestrator.ExplorerClient",
            side_effect=[fake_source, fake_target],
        ) as client_cls:
            report = copy_verification(
                [ADDRESS_A, ADDRESS_B],
                "s-key", "https://source.example/api",
                "t-key", "https://target.example/api",
                poll=PollPolicy(max_polls=2, interval=0.0),
            )

        source_config = client_cls.call_args_list[0].args[0]
        target_config = client_cls.call_args_list[1].args[0]
        assert source_config.base_url == "https://source.example/api"
        assert source_config.api_key == "s-key"
        assert target_config.api_key == "t-key"
        assert [o.status for o in report.outcomes] == [
            OutcomeStatus.VERIFIED,
            OutcomeStatus.SOURCE_NOT_FOUND,
        ]
        assert fake_source.closed and fake_target.closed

    def test_fail_fast_flag(self, fake_source, fake_target):
        fake_source.sources[ADDRESS_A] = SourceNotFoundError()
        verifiable(fake_source, fake_target, ADDRESS_B, "guid-b")

        with patch(
            "verification_migrator.orchestrator.ExplorerClient",
            side_effect=[fake_source, fake_target],
        ):
            report = copy_verification(
                [ADDRESS_A, ADDRESS_B],
                "s-key", "https://source.example/api",
                "t-key", "https://target.example/api",
                continue_on_error=False,
                max_workers=1,
            )

        assert len(report.outcomes) == 1
        assert report.skipped == [ADDRESS_B]
